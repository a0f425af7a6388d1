"""
MediaGen API client
===================
Small ``requests`` client for the generation API, including the
polling loop a caller uses to wait for an async job.
"""

import json
import os
import time
from typing import Any, Callable, Dict, Optional

import requests

from .logging_config import get_logger

logger = get_logger("client")

DEFAULT_TIMEOUT = 30  # seconds per HTTP call
POLL_INTERVAL_SECONDS = 5
POLL_MAX_ATTEMPTS = 120


class GenerationClientError(Exception):
    """Error reported by the API (or the network), mirroring the error envelope."""

    def __init__(self, code: str, message: str, retryable: bool = False, status_code: Optional[int] = None):
        super().__init__(message)
        self.code = code
        self.message = message
        self.retryable = retryable
        self.status_code = status_code


class GenerationClient:
    def __init__(self, base_url: str = "http://localhost:8000", timeout: float = DEFAULT_TIMEOUT, session=None):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()

    def _url(self, path: str) -> str:
        return f"{self.base_url}/api{path}"

    def _request(self, method: str, path: str, **kwargs) -> Dict[str, Any]:
        try:
            response = self.session.request(method, self._url(path), timeout=self.timeout, **kwargs)
        except requests.exceptions.RequestException as e:
            logger.warning("client_request_failed", method=method, path=path, error_type=type(e).__name__)
            raise GenerationClientError(
                "NETWORK_ERROR",
                "Network error. Please check your internet connection.",
                retryable=True,
            ) from e

        if response.status_code >= 400:
            try:
                error = response.json().get("error") or {}
            except ValueError:
                error = {}
            raise GenerationClientError(
                error.get("code", f"HTTP_{response.status_code}"),
                error.get("message", response.reason or "Request failed"),
                retryable=bool(error.get("retryable", response.status_code >= 500)),
                status_code=response.status_code,
            )
        return response.json()

    # ------------------------------------------------------------
    # Generation
    # ------------------------------------------------------------

    def text_to_video(self, prompt: str, parameters: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        return self._request("POST", "/generate/text-to-video", json={"prompt": prompt, "parameters": parameters})

    def image_to_video(
        self,
        image_path: str,
        prompt: str,
        parameters: Optional[Dict[str, Any]] = None,
        mime_type: str = "image/png",
    ) -> Dict[str, Any]:
        data = {"prompt": prompt}
        if parameters:
            data["parameters"] = json.dumps(parameters)
        with open(image_path, "rb") as fh:
            files = {"file": (os.path.basename(image_path), fh, mime_type)}
            return self._request("POST", "/generate/image-to-video", data=data, files=files)

    def text_to_image(self, prompt: str, parameters: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        return self._request("POST", "/generate/text-to-image", json={"prompt": prompt, "parameters": parameters})

    def get_job_status(self, job_id: str) -> Dict[str, Any]:
        return self._request("GET", f"/generate/status/{job_id}")

    def wait_for_job(
        self,
        job_id: str,
        interval: float = POLL_INTERVAL_SECONDS,
        max_attempts: int = POLL_MAX_ATTEMPTS,
        on_progress: Optional[Callable[[Dict[str, Any]], None]] = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> Dict[str, Any]:
        """Poll until the job finishes. Returns the completed status payload."""
        for attempt in range(1, max_attempts + 1):
            status = self.get_job_status(job_id)
            logger.debug("client_job_polled", job_id=job_id, attempt=attempt, status=status.get("status"))

            if status["status"] == "completed":
                return status
            if status["status"] == "failed":
                raise GenerationClientError("GENERATION_FAILED", status.get("error") or "Generation failed")

            if on_progress is not None:
                on_progress(status)
            sleep(interval)

        raise GenerationClientError("TIMEOUT", "Generation timed out. Please try again.", retryable=True)

    # ------------------------------------------------------------
    # History & media
    # ------------------------------------------------------------

    def get_history(self, limit: int = 50, offset: int = 0) -> Dict[str, Any]:
        return self._request("GET", "/history", params={"limit": limit, "offset": offset})

    def delete_history_item(self, generation_id: str) -> Dict[str, Any]:
        return self._request("DELETE", f"/history/{generation_id}")

    def media_url(self, media_path: str) -> str:
        """Absolute URL for a mediaUrl returned by the API."""
        if media_path.startswith(("http://", "https://")):
            return media_path
        return f"{self.base_url}{media_path}"

    def download_media(self, media_path: str, destination: str) -> str:
        with self.session.get(self.media_url(media_path), stream=True, timeout=self.timeout) as response:
            if response.status_code >= 400:
                raise GenerationClientError("NOT_FOUND", "Media file not found", status_code=response.status_code)
            with open(destination, "wb") as fh:
                for chunk in response.iter_content(chunk_size=64 * 1024):
                    fh.write(chunk)
        return destination

"""
Generation Orchestrator
=======================
Drives one generation request from prompt to stored media.

Text-to-image is synchronous: the provider answers inline, the image is
written and the caller gets the finished result.

Text-to-video and image-to-video are asynchronous: a job is registered
and returned immediately, while a background task submits the request,
polls the provider at a fixed interval, downloads the finished video and
completes the job. A per-job deadline timer races the polling task; both
go through the registry's compare-and-set, so whichever lands first wins
and the other is a no-op.
"""

import asyncio
import base64
import binascii
import json
import random
from typing import Any, Callable, Dict, Optional, Set

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..config import Settings
from ..logging_config import worker_logger as logger
from ..models.generation import media_url_for
from ..responses import ApiException, InternalError, NotFoundError
from ..schemas.generation import GenerationParams
from .history import HistoryRecorder, SaveGenerationInput
from .jobs import JobRegistry
from .materializer import ResultMaterializer
from .prompts import enhance_prompt, validate_and_clean_prompt, validate_prompt_tokens

ASPECT_RATIO_DIMENSIONS = {
    "16:9": "1280x720",
    "9:16": "720x1280",
    "1:1": "1024x1024",
}
DEFAULT_DIMENSION = "1280x720"

MAX_SEED = 2147483646
DEFAULT_IMAGE_SIZE = 1024
DEFAULT_CFG_SCALE = 8.0

TIMEOUT_MESSAGE = "Generation timed out. Please try again with a simpler prompt."
POLL_TIMEOUT_MESSAGE = "Job polling timed out"
GENERIC_VIDEO_FAILURE = "Video generation failed. Please try again."
GENERIC_IMAGE_FAILURE = "Image generation failed. Please try again."

VIDEO_MEDIA_TYPE = "video/mp4"
IMAGE_MEDIA_TYPE = "image/png"


class GenerationFailed(Exception):
    """The provider reported a failure; the message is shown to the client as-is."""


def map_aspect_ratio_to_dimension(aspect_ratio: Optional[str]) -> str:
    return ASPECT_RATIO_DIMENSIONS.get(aspect_ratio, DEFAULT_DIMENSION)


def random_seed() -> int:
    return random.randrange(MAX_SEED)


def image_format_for(mime_type: Optional[str]) -> str:
    return "png" if mime_type == "image/png" else "jpeg"


def parse_image_response(raw: bytes) -> bytes:
    """Decode the first base64 image of an inline image response."""
    try:
        body = json.loads(raw)
    except (TypeError, ValueError) as e:
        raise InternalError("The image service returned an unreadable response.") from e

    images = body.get("images") if isinstance(body, dict) else None
    if not images:
        raise InternalError("No images returned from model")

    try:
        return base64.b64decode(images[0], validate=True)
    except (binascii.Error, TypeError, ValueError) as e:
        raise InternalError("The image service returned an unreadable response.") from e


class GenerationOrchestrator:
    def __init__(
        self,
        provider,
        registry: JobRegistry,
        materializer: ResultMaterializer,
        session_factory: Callable[[], Session],
        settings: Settings,
    ):
        self.provider = provider
        self.registry = registry
        self.materializer = materializer
        self.session_factory = session_factory
        self.settings = settings
        self._history_writes: Set[asyncio.Task] = set()

    # ============================================================
    # ENTRY POINTS
    # ============================================================

    def prepare_prompt(self, prompt: str) -> str:
        cleaned = validate_and_clean_prompt(prompt)
        validate_prompt_tokens(cleaned, self.settings.max_prompt_tokens)
        return cleaned

    async def generate_text_to_video(self, prompt: str, params: Optional[GenerationParams] = None) -> Dict[str, Any]:
        params = params or GenerationParams()
        cleaned = self.prepare_prompt(prompt)

        enhanced = enhance_prompt(cleaned, style="cinematic", quality=params.quality or "standard", media_kind="video")
        model_input = self.build_video_input("TEXT_VIDEO", enhanced, params)
        return self._submit_async("text-to-video", prompt, model_input)

    async def generate_image_to_video(
        self,
        image_bytes: bytes,
        prompt: str,
        params: Optional[GenerationParams] = None,
        image_mime_type: Optional[str] = None,
        source_path: Optional[str] = None,
    ) -> Dict[str, Any]:
        params = params or GenerationParams()
        cleaned = self.prepare_prompt(prompt)

        enhanced = enhance_prompt(cleaned, style="cinematic", quality=params.quality or "standard", media_kind="video")
        image = {
            "format": image_format_for(image_mime_type),
            "source": {"bytes": base64.b64encode(image_bytes).decode("ascii")},
        }
        model_input = self.build_video_input("IMAGE_VIDEO", enhanced, params, image=image)
        return self._submit_async("image-to-video", prompt, model_input, source_path=source_path)

    async def generate_text_to_image(self, prompt: str, params: Optional[GenerationParams] = None) -> Dict[str, Any]:
        params = params or GenerationParams()
        cleaned = self.prepare_prompt(prompt)

        job = self.registry.create("text-to-image")
        enhanced = enhance_prompt(cleaned, style="photorealistic", quality=params.quality or "standard", media_kind="image")
        model_input = self.build_image_input(enhanced, params)
        model_id = self.settings.image_model_id

        try:
            raw = await self.provider.invoke_model(model_id, model_input)
            self.registry.advance_progress(job.id, 50)
            image_bytes = parse_image_response(raw)
            path = await self.materializer.save_bytes(job.id, image_bytes, "image")
        except ApiException as e:
            self.registry.fail(job.id, e.detail)
            raise
        except Exception as e:
            logger.error("image_generation_failed", error=e, job_id=job.id)
            self.registry.fail(job.id, GENERIC_IMAGE_FAILURE)
            raise InternalError(GENERIC_IMAGE_FAILURE) from e

        config = model_input["imageGenerationConfig"]
        metadata = {
            "model": model_id,
            "seed": config["seed"],
            "dimensions": {"width": config["width"], "height": config["height"]},
            "size": path.stat().st_size,
        }
        media_url = media_url_for(str(path))
        self.registry.complete(job.id, media_url, IMAGE_MEDIA_TYPE, metadata)
        await self._record_history(SaveGenerationInput(
            type="text-to-image",
            prompt=prompt,
            media_file_path=str(path),
            media_type=IMAGE_MEDIA_TYPE,
            status="completed",
            metadata=metadata,
        ))

        return {
            "jobId": job.id,
            "status": "completed",
            "mediaUrl": media_url,
            "mediaType": IMAGE_MEDIA_TYPE,
            "metadata": metadata,
        }

    def get_job_status(self, job_id: str) -> Dict[str, Any]:
        job = self.registry.get(job_id)
        if job is None:
            raise NotFoundError(f"Job not found: {job_id}")
        return job.to_status_dict()

    # ============================================================
    # PAYLOADS
    # ============================================================

    def build_video_input(
        self,
        task_type: str,
        text: str,
        params: GenerationParams,
        image: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        params_key = "textToVideoParams" if task_type == "TEXT_VIDEO" else "imageToVideoParams"
        video_params: Dict[str, Any] = {"text": text}
        if image is not None:
            video_params["images"] = [image]

        return {
            "taskType": task_type,
            params_key: video_params,
            "videoGenerationConfig": {
                "fps": self.settings.video_fps,
                "durationSeconds": params.duration or self.settings.default_video_duration_seconds,
                "dimension": map_aspect_ratio_to_dimension(params.aspectRatio),
                "seed": random_seed(),
            },
        }

    def build_image_input(self, text: str, params: GenerationParams) -> Dict[str, Any]:
        return {
            "taskType": "TEXT_IMAGE",
            "textToImageParams": {"text": text},
            "imageGenerationConfig": {
                "numberOfImages": 1,
                "quality": params.quality or "standard",
                "height": params.height or DEFAULT_IMAGE_SIZE,
                "width": params.width or DEFAULT_IMAGE_SIZE,
                "cfgScale": params.cfgScale or DEFAULT_CFG_SCALE,
                "seed": random_seed(),
            },
        }

    # ============================================================
    # ASYNC JOBS
    # ============================================================

    def _submit_async(
        self,
        kind: str,
        prompt: str,
        model_input: Dict[str, Any],
        source_path: Optional[str] = None,
    ) -> Dict[str, Any]:
        loop = asyncio.get_running_loop()
        job = self.registry.create(kind)
        job.metadata.update(prompt=prompt, source_path=source_path)
        job.timeout_handle = loop.call_later(
            self.settings.generation_timeout_seconds, self._on_timeout, job.id
        )
        job.task = asyncio.create_task(
            self._run_async_job(job.id, kind, prompt, model_input, source_path),
            name=f"generation-{job.id}",
        )
        return {"jobId": job.id, "status": "processing"}

    async def _run_async_job(
        self,
        job_id: str,
        kind: str,
        prompt: str,
        model_input: Dict[str, Any],
        source_path: Optional[str],
    ) -> None:
        model_id = self.settings.video_model_id
        config = model_input["videoGenerationConfig"]
        metadata = {
            "model": model_id,
            "seed": config["seed"],
            "duration": config["durationSeconds"],
            "dimension": config["dimension"],
        }

        try:
            handle = await self.provider.start_async_invoke(model_id, model_input, self.settings.output_s3_uri)
            if not self.registry.set_provider_handle(job_id, handle):
                return
            metadata["invocationArn"] = handle

            location = await self._poll_until_complete(job_id, handle)
            if location is None:
                return

            path = await self.materializer.download(job_id, location)
            media_url = media_url_for(str(path))
            if not self.registry.complete(job_id, media_url, VIDEO_MEDIA_TYPE, metadata):
                logger.warning("job_result_discarded", job_id=job_id, path=str(path))
                self.materializer.store.delete(str(path))
                return

            await self._record_history(SaveGenerationInput(
                type=kind,
                prompt=prompt,
                source_file_path=source_path,
                media_file_path=str(path),
                media_type=VIDEO_MEDIA_TYPE,
                status="completed",
                metadata=metadata,
            ))
        except asyncio.CancelledError:
            logger.info("job_task_cancelled", job_id=job_id)
            raise
        except GenerationFailed as e:
            await self._fail_async(job_id, kind, prompt, source_path, str(e))
        except ApiException as e:
            logger.error("video_generation_failed", error=e, job_id=job_id)
            await self._fail_async(job_id, kind, prompt, source_path, e.detail)
        except Exception as e:
            logger.error("video_generation_failed", error=e, job_id=job_id)
            await self._fail_async(job_id, kind, prompt, source_path, GENERIC_VIDEO_FAILURE)

    async def _poll_until_complete(self, job_id: str, handle: str) -> Optional[str]:
        """Poll until the provider finishes. Returns the result location, or None if the job was abandoned."""
        max_attempts = self.settings.poll_max_attempts
        for attempt in range(1, max_attempts + 1):
            await asyncio.sleep(self.settings.poll_interval_seconds)

            job = self.registry.get(job_id)
            if job is None or job.is_terminal:
                return None

            result = await self.provider.get_async_invoke_status(handle)
            logger.debug("job_polled", job_id=job_id, attempt=attempt, status=result.status)

            if result.status == "completed":
                return result.result_location
            if result.status == "failed":
                raise GenerationFailed(result.failure_message or "Video generation failed")

            self.registry.advance_progress(job_id, min(90, attempt * 2))

        raise GenerationFailed(POLL_TIMEOUT_MESSAGE)
    def _on_timeout(self, job_id: str) -> None:
        job = self.registry.get(job_id)
        if job is None:
            return
        if not self.registry.fail(job_id, TIMEOUT_MESSAGE):
            return

        logger.warning("job_timed_out", job_id=job_id, timeout_seconds=self.settings.generation_timeout_seconds)
        if job.task is not None and not job.task.done():
            job.task.cancel()

        # Timer callbacks are synchronous; the history write runs as its own task.
        write = asyncio.create_task(
            self._record_failure(job.kind, job.metadata.get("prompt"), job.metadata.get("source_path"), TIMEOUT_MESSAGE),
            name=f"history-{job_id}",
        )
        self._history_writes.add(write)
        write.add_done_callback(self._history_writes.discard)

    async def _fail_async(self, job_id: str, kind: str, prompt: str, source_path: Optional[str], reason: str) -> None:
        if self.registry.fail(job_id, reason):
            await self._record_failure(kind, prompt, source_path, reason)

    async def _record_failure(self, kind: str, prompt: Optional[str], source_path: Optional[str], reason: str) -> None:
        if not self.settings.record_failed_generations or prompt is None:
            return
        await self._record_history(SaveGenerationInput(
            type=kind,
            prompt=prompt,
            source_file_path=source_path,
            media_file_path="",
            media_type=VIDEO_MEDIA_TYPE,
            status="failed",
            error_message=reason,
        ))

    async def _record_history(self, record: SaveGenerationInput) -> Optional[str]:
        return await asyncio.to_thread(self._save_history, record)

    def _save_history(self, record: SaveGenerationInput) -> Optional[str]:
        db = self.session_factory()
        try:
            return HistoryRecorder(db).save_generation(record)
        except SQLAlchemyError as e:
            db.rollback()
            logger.error("history_save_failed", error=e, type=record.type, status=record.status)
            return None
        finally:
            db.close()

    # ============================================================
    # HOUSEKEEPING
    # ============================================================

    async def sweep(self) -> Dict[str, int]:
        """Drop stale jobs and, when retention is enabled, old history rows."""
        removed_jobs = self.registry.sweep(self.settings.job_max_age_seconds)
        removed_history = 0
        if self.settings.history_retention_days > 0:
            removed_history = await asyncio.to_thread(self._apply_retention)
        return {"jobs": removed_jobs, "history": removed_history}

    def _apply_retention(self) -> int:
        db = self.session_factory()
        try:
            return HistoryRecorder(db).delete_older_than(self.settings.history_retention_days)
        except SQLAlchemyError as e:
            db.rollback()
            logger.error("history_retention_failed", error=e)
            return 0
        finally:
            db.close()

    async def run_housekeeping(self) -> None:
        while True:
            await asyncio.sleep(self.settings.job_sweep_interval_seconds)
            await self.sweep()

    async def shutdown(self) -> None:
        tasks = []
        for job in self.registry.active():
            job.cancel_timers()
            if job.task is not None and not job.task.done():
                job.task.cancel()
                tasks.append(job.task)
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        if self._history_writes:
            await asyncio.gather(*self._history_writes, return_exceptions=True)
        logger.info("orchestrator_stopped", cancelled_jobs=len(tasks))

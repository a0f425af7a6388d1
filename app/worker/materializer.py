"""
Result Materializer
===================
Writes finished provider results to local media storage.

Inline results (base64 image bytes) and remote objects (S3 video output)
both go through the same write path: bytes are written to
``<target>.part`` and renamed onto ``<target>`` only after the last chunk
is flushed. Any error removes the partial file and re-raises, so a
truncated file is never left at the target path.

When the task awaiting a download is cancelled, the writer thread stops
at the next chunk and nothing is left at the target path.
"""

import asyncio
import os
import re
import threading
from pathlib import Path
from typing import Callable, Iterable, Optional, Tuple

from ..logging_config import get_logger
from ..responses import InternalError
from .media_store import MediaStore

logger = get_logger("materializer")

S3_URI_RE = re.compile(r"^s3://([^/]+)/(.+)$")

MEDIA_EXTENSIONS = {
    "video": ".mp4",
    "image": ".png",
}


def parse_s3_uri(uri: str) -> Tuple[str, str]:
    """Split s3://bucket/key into (bucket, key)."""
    match = S3_URI_RE.match(uri or "")
    if not match:
        raise InternalError("The generated result location could not be read.")
    return match.group(1), match.group(2)


class DownloadAborted(Exception):
    """The writer thread was told to stop before the last chunk."""


def _write_atomically(target: Path, chunks: Iterable[bytes], abort: Optional[threading.Event] = None) -> int:
    partial = target.with_name(target.name + ".part")
    written = 0
    try:
        with open(partial, "wb") as fh:
            for chunk in chunks:
                if abort is not None and abort.is_set():
                    raise DownloadAborted(str(target))
                if chunk:
                    fh.write(chunk)
                    written += len(chunk)
        os.replace(partial, target)
    except BaseException:
        try:
            partial.unlink()
        except FileNotFoundError:
            pass
        raise
    return written


class ResultMaterializer:
    def __init__(self, store: MediaStore, open_object: Callable[[str, str], Iterable[bytes]]):
        """
        open_object: callable(bucket, key) -> iterable of byte chunks
            Blocking; runs in a worker thread.
        """
        self.store = store
        self._open_object = open_object

    def target_path(self, job_id: str, media_kind: str) -> Path:
        return self.store.path_for(media_kind, f"{job_id}{MEDIA_EXTENSIONS[media_kind]}")

    async def save_bytes(self, job_id: str, data: bytes, media_kind: str = "image") -> Path:
        target = self.target_path(job_id, media_kind)
        size = await asyncio.to_thread(_write_atomically, target, [data])
        logger.info("result_saved", job_id=job_id, path=str(target), size_bytes=size)
        return target

    async def download(self, job_id: str, s3_uri: str, media_kind: str = "video") -> Path:
        """Stream a remote object to local storage."""
        bucket, key = parse_s3_uri(s3_uri)
        target = self.target_path(job_id, media_kind)
        logger.info("result_download_started", job_id=job_id, bucket=bucket, key=key)

        abort = threading.Event()

        def fetch() -> int:
            return _write_atomically(target, self._open_object(bucket, key), abort)

        worker = asyncio.ensure_future(asyncio.to_thread(fetch))
        try:
            size = await asyncio.shield(worker)
        except asyncio.CancelledError:
            abort.set()
            await asyncio.gather(worker, return_exceptions=True)
            target.unlink(missing_ok=True)
            logger.info("result_download_aborted", job_id=job_id, path=str(target))
            raise
        except Exception as e:
            logger.error("result_download_failed", error=e, job_id=job_id, s3_uri=s3_uri)
            raise
        logger.info("result_downloaded", job_id=job_id, path=str(target), size_bytes=size)
        return target

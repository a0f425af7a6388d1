"""
Media routes: serve stored uploads and generated results by file name.
"""
from fastapi import APIRouter, Depends
from fastapi.responses import FileResponse

from ..dependencies import get_media_store
from ..responses import NotFoundError
from ..worker.media_store import MediaStore

router = APIRouter(prefix="/api/media", tags=["media"])


@router.get("/{filename}")
def get_media_file(filename: str, store: MediaStore = Depends(get_media_store)):
    """Stream a stored media file with its inferred content type."""
    path = store.resolve(filename)
    if path is None:
        raise NotFoundError("Media file not found")
    return FileResponse(path, media_type=store.mime_type_for(filename))

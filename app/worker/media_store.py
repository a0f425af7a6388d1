"""
Local media storage: uploaded source images and generated results.
"""

import os
import uuid
from pathlib import Path
from typing import Optional

from ..responses import ValidationError

SUPPORTED_IMAGE_FORMATS = [
    "image/jpeg",
    "image/jpg",
    "image/png",
    "image/webp",
    "image/gif",
]

MIME_TYPE_MAP = {
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".png": "image/png",
    ".webp": "image/webp",
    ".gif": "image/gif",
    ".pdf": "application/pdf",
    ".mp4": "video/mp4",
    ".webm": "video/webm",
}

# Per-media-kind subdirectories under the media root
SUBDIRS = {
    "video": "videos",
    "image": "images",
    "upload": "uploads",
}


class MediaStore:
    """Owns the media root and its fixed subdirectories."""

    def __init__(self, media_path: str, max_file_size_mb: int = 10):
        self.root = Path(media_path).resolve()
        self.max_file_size_mb = max_file_size_mb
        self.max_file_size_bytes = max_file_size_mb * 1024 * 1024
        for subdir in SUBDIRS.values():
            (self.root / subdir).mkdir(parents=True, exist_ok=True)

    def dir_for(self, kind: str) -> Path:
        return self.root / SUBDIRS[kind]

    def path_for(self, kind: str, filename: str) -> Path:
        return self.dir_for(kind) / filename

    def validate_upload(self, mime_type: Optional[str], size_bytes: int) -> None:
        if mime_type not in SUPPORTED_IMAGE_FORMATS:
            raise ValidationError(
                f"Unsupported file format: {mime_type}. "
                f"Supported formats: {', '.join(SUPPORTED_IMAGE_FORMATS)}",
                {"file": "unsupported_format"},
                error_code="INVALID_FILE",
            )
        if size_bytes > self.max_file_size_bytes:
            raise ValidationError(
                f"File size exceeds maximum allowed size of {self.max_file_size_mb}MB. "
                f"File size: {size_bytes / 1024 / 1024:.2f}MB",
                {"file": "too_large"},
                error_code="INVALID_FILE",
            )

    def save_upload(self, data: bytes, original_name: str, mime_type: str) -> Path:
        """Validate and store an uploaded source image under a generated name."""
        self.validate_upload(mime_type, len(data))
        ext = os.path.splitext(original_name or "")[1].lower()
        if ext not in MIME_TYPE_MAP:
            ext = next((e for e, m in MIME_TYPE_MAP.items() if m == mime_type), ".bin")
        path = self.path_for("upload", f"{uuid.uuid4()}{ext}")
        path.write_bytes(data)
        return path

    def resolve(self, filename: str) -> Optional[Path]:
        """Find a stored file by bare name. Anything path-like is rejected."""
        if not filename or filename != os.path.basename(filename) or filename in (".", ".."):
            return None
        if "/" in filename or "\\" in filename:
            return None
        for subdir in SUBDIRS.values():
            candidate = self.root / subdir / filename
            if candidate.is_file():
                return candidate
        return None

    def delete(self, path: str) -> bool:
        """Delete a stored file if it lives under the media root."""
        target = Path(path).resolve()
        if self.root not in target.parents or not target.is_file():
            return False
        target.unlink()
        return True

    @staticmethod
    def mime_type_for(filename: str) -> str:
        ext = os.path.splitext(filename)[1].lower()
        return MIME_TYPE_MAP.get(ext, "application/octet-stream")

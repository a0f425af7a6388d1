"""
Generation model: one row per recorded generation request.
"""
import os
import uuid
from sqlalchemy import CheckConstraint, Column, String, DateTime, Text, JSON, Index
from datetime import datetime, timezone
from ..database import Base

GENERATION_TYPES = ("text-to-video", "image-to-video", "text-to-image")
GENERATION_STATUSES = ("processing", "completed", "failed")

MEDIA_URL_PREFIX = "/api/media/"


def media_url_for(path: str) -> str:
    """Servable URL for a stored media path (only the file name is exposed)."""
    return f"{MEDIA_URL_PREFIX}{os.path.basename(path)}"


class Generation(Base):
    __tablename__ = "generations"
    __table_args__ = (
        CheckConstraint(
            "type IN ('text-to-video', 'image-to-video', 'text-to-image')",
            name="ck_generations_type",
        ),
        CheckConstraint(
            "status IN ('processing', 'completed', 'failed')",
            name="ck_generations_status",
        ),
        Index("idx_generations_created_at", "created_at"),
    )

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    type = Column(String(20), nullable=False, index=True)
    prompt = Column(Text, nullable=False)
    source_file_path = Column(String(1000), nullable=True)  # image-to-video only
    media_file_path = Column(String(1000), nullable=False)
    media_type = Column(String(100), nullable=False)
    status = Column(String(20), nullable=False, index=True)
    error_message = Column(Text, nullable=True)
    metadata_ = Column("metadata", JSON, nullable=True)
    created_at = Column(DateTime, default=lambda: datetime.now(timezone.utc), nullable=False)

    def to_dict(self):
        """Convert to dictionary for API responses"""
        return {
            "id": self.id,
            "type": self.type,
            "prompt": self.prompt,
            "sourceFileUrl": media_url_for(self.source_file_path) if self.source_file_path else None,
            "mediaUrl": media_url_for(self.media_file_path) if self.media_file_path else None,
            "mediaType": self.media_type,
            "status": self.status,
            "errorMessage": self.error_message,
            "metadata": self.metadata_,
            "createdAt": self.created_at.isoformat() if self.created_at else None,
        }

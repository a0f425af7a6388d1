"""
History Recorder
================
Durable log of generation requests, backed by the ``generations`` table.
Deleting a row does not delete the media file it points at.
"""

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from ..logging_config import db_logger
from ..models.generation import GENERATION_STATUSES, GENERATION_TYPES, Generation


@dataclass
class SaveGenerationInput:
    type: str
    prompt: str
    media_file_path: str
    media_type: str
    status: str = "completed"
    source_file_path: Optional[str] = None
    error_message: Optional[str] = None
    metadata: Optional[Dict[str, Any]] = field(default=None)


class HistoryRecorder:
    def __init__(self, db: Session):
        self.db = db

    def save_generation(self, record: SaveGenerationInput) -> str:
        if record.type not in GENERATION_TYPES:
            raise ValueError(f"Unknown generation type: {record.type}")
        if record.status not in GENERATION_STATUSES:
            raise ValueError(f"Unknown generation status: {record.status}")

        generation = Generation(
            type=record.type,
            prompt=record.prompt,
            source_file_path=record.source_file_path,
            media_file_path=record.media_file_path,
            media_type=record.media_type,
            status=record.status,
            error_message=record.error_message,
            metadata_=record.metadata,
        )
        self.db.add(generation)
        self.db.commit()
        self.db.refresh(generation)

        db_logger.info("generation_saved", generation_id=generation.id, type=record.type, status=record.status)
        return generation.id

    def _filtered(self, kind: Optional[str] = None, status: Optional[str] = None):
        query = self.db.query(Generation)
        if kind:
            query = query.filter(Generation.type == kind)
        if status:
            query = query.filter(Generation.status == status)
        return query

    def get_history(
        self,
        limit: int = 50,
        offset: int = 0,
        kind: Optional[str] = None,
        status: Optional[str] = None,
    ) -> List[Generation]:
        """Most recent first."""
        return (
            self._filtered(kind, status)
            .order_by(Generation.created_at.desc())
            .offset(offset)
            .limit(limit)
            .all()
        )

    def get_by_id(self, generation_id: str) -> Optional[Generation]:
        return self.db.query(Generation).filter(Generation.id == generation_id).first()

    def delete_by_id(self, generation_id: str) -> bool:
        deleted = (
            self.db.query(Generation)
            .filter(Generation.id == generation_id)
            .delete(synchronize_session=False)
        )
        self.db.commit()
        return deleted > 0

    def get_count(self, kind: Optional[str] = None, status: Optional[str] = None) -> int:
        query = self.db.query(func.count(Generation.id))
        if kind:
            query = query.filter(Generation.type == kind)
        if status:
            query = query.filter(Generation.status == status)
        return query.scalar() or 0

    def get_by_type(self, kind: str, limit: int = 50) -> List[Generation]:
        return self.get_history(limit=limit, kind=kind)

    def get_by_status(self, status: str, limit: int = 50) -> List[Generation]:
        return self.get_history(limit=limit, status=status)

    def update_status(self, generation_id: str, status: str, error_message: Optional[str] = None) -> bool:
        if status not in GENERATION_STATUSES:
            raise ValueError(f"Unknown generation status: {status}")
        updated = (
            self.db.query(Generation)
            .filter(Generation.id == generation_id)
            .update({"status": status, "error_message": error_message}, synchronize_session=False)
        )
        self.db.commit()
        return updated > 0

    def delete_older_than(self, days: int) -> int:
        """Retention sweep. Returns the number of rows removed."""
        cutoff = datetime.now(timezone.utc) - timedelta(days=days)
        deleted = (
            self.db.query(Generation)
            .filter(Generation.created_at < cutoff)
            .delete(synchronize_session=False)
        )
        self.db.commit()
        if deleted:
            db_logger.info("history_retention_sweep", deleted=deleted, older_than_days=days)
        return deleted

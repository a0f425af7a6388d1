"""
Generation history routes.
"""
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from typing import Optional

from ..database import get_db
from ..responses import NotFoundError, ValidationError, deleted, paginated
from ..models.generation import GENERATION_STATUSES, GENERATION_TYPES
from ..worker.history import HistoryRecorder

router = APIRouter(prefix="/api/history", tags=["history"])

DEFAULT_LIMIT = 50
MAX_LIMIT = 100


@router.get("")
def get_history(
    limit: int = DEFAULT_LIMIT,
    offset: int = 0,
    type: Optional[str] = None,
    status: Optional[str] = None,
    db: Session = Depends(get_db),
):
    """List recorded generations, newest first."""
    if type and type not in GENERATION_TYPES:
        raise ValidationError(f"Unknown generation type: {type}", {"type": "invalid"})
    if status and status not in GENERATION_STATUSES:
        raise ValidationError(f"Unknown generation status: {status}", {"status": "invalid"})

    limit = min(max(limit, 1), MAX_LIMIT)
    offset = max(offset, 0)

    recorder = HistoryRecorder(db)
    items = recorder.get_history(limit=limit, offset=offset, kind=type, status=status)
    total = recorder.get_count(kind=type, status=status)
    return paginated([g.to_dict() for g in items], total, limit, offset)


@router.get("/{generation_id}")
def get_history_item(generation_id: str, db: Session = Depends(get_db)):
    generation = HistoryRecorder(db).get_by_id(generation_id)
    if not generation:
        raise NotFoundError("History item not found")
    return generation.to_dict()


@router.delete("/{generation_id}")
def delete_history_item(generation_id: str, db: Session = Depends(get_db)):
    """Delete a history record. The media file is left in place."""
    if not HistoryRecorder(db).delete_by_id(generation_id):
        raise NotFoundError("History item not found")
    return deleted()

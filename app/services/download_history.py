"""
Download history shown on My Page.
"""
import logging
from datetime import datetime, timedelta, timezone
from typing import List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.errors import Forbidden, UpstreamFailure
from app.models.download_history import DownloadHistory

logger = logging.getLogger(__name__)

HISTORY_LIMIT = 100
DEFAULT_REDOWNLOAD_DAYS = 7


def owns_storage_path(user_id: str, storage_path: str) -> bool:
    """Stored masters live under "<user_id>/"; anything else belongs to someone else."""
    if not storage_path.startswith(f"{user_id}/"):
        return False
    return ".." not in storage_path.split("/")


def list_history(db: Session, user_id: str, limit: int = HISTORY_LIMIT) -> List[DownloadHistory]:
    """The user's deliveries, newest first."""
    try:
        return (
            db.query(DownloadHistory)
            .filter(DownloadHistory.user_id == user_id)
            .order_by(DownloadHistory.created_at.desc())
            .limit(limit)
            .all()
        )
    except SQLAlchemyError as e:
        db.rollback()
        logger.error("[HISTORY] listing for user %s failed: %s", user_id, e)
        raise UpstreamFailure("db_error")


def record_download(
    db: Session,
    user_id: str,
    file_name: str,
    mastering_target: str,
    amount_cents: Optional[int] = None,
    storage_path: Optional[str] = None,
    redownload_days: int = DEFAULT_REDOWNLOAD_DAYS,
    now: Optional[datetime] = None,
) -> DownloadHistory:
    """
    Record a completed delivery.
    Only deliveries with a stored file get a re-download window (expires_at).
    """
    if storage_path and not owns_storage_path(user_id, storage_path):
        logger.warning("[HISTORY] user %s tried to record foreign storage path %s", user_id, storage_path)
        raise Forbidden("forbidden", "storage_path must be inside your own folder")

    now = now or datetime.now(timezone.utc)
    record = DownloadHistory(
        user_id=user_id,
        file_name=file_name,
        mastering_target=mastering_target,
        amount_cents=amount_cents,
        storage_path=storage_path or None,
        created_at=now,
        expires_at=now + timedelta(days=redownload_days) if storage_path else None,
    )
    try:
        db.add(record)
        db.commit()
        db.refresh(record)
    except SQLAlchemyError as e:
        db.rollback()
        logger.error("[HISTORY] insert for user %s failed: %s", user_id, e)
        raise UpstreamFailure("db_error")
    return record

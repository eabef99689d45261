"""
Re-download of a past delivery from My Page.
Ownership and the re-download window are checked before storage is touched.
"""
import logging
import re
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.errors import BadRequest, Forbidden, Gone, NotFound, UpstreamFailure
from app.models.download_history import DownloadHistory
from app.schemas.auth import Identity
from app.services.download_history import owns_storage_path

logger = logging.getLogger(__name__)

AUDIO_MEDIA_TYPE = "audio/wav"
_EXTENSION = re.compile(r"\.[^/.]+$")


def _as_utc(value: datetime) -> datetime:
    # SQLite (tests) hands back naive datetimes; stored values are always UTC.
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def suggested_file_name(record: DownloadHistory) -> str:
    """'song.mp3' mastered for 'spotify' -> 'song_spotify_mastered.wav'."""
    base_name = _EXTENSION.sub("", record.file_name or "master") or "master"
    return f"{base_name}_{record.mastering_target}_mastered.wav"


def get_redownloadable(
    db: Session,
    identity: Identity,
    history_id: Optional[str],
    now: Optional[datetime] = None,
) -> DownloadHistory:
    """
    Return the caller's history record if it can still be re-downloaded.

    Raises NotFound, Forbidden (not the owner, or a file outside their folder)
    or Gone (no stored file, or now >= expires_at). Expiry is exclusive: a record is gone at expires_at.
    """
    if not history_id:
        raise BadRequest("bad_request", "history_id required")

    try:
        record = db.query(DownloadHistory).filter(DownloadHistory.id == history_id).first()
    except SQLAlchemyError as e:
        db.rollback()
        logger.error("[REDOWNLOAD] lookup of %s failed: %s", history_id, e)
        raise UpstreamFailure("db_error")

    if record is None:
        raise NotFound()
    if record.user_id != identity.id:
        logger.warning("[REDOWNLOAD] user %s asked for history %s owned by another user", identity.id, history_id)
        raise Forbidden()
    if not record.storage_path or not record.expires_at:
        raise Gone()
    if not owns_storage_path(identity.id, record.storage_path):
        logger.warning("[REDOWNLOAD] history %s points outside the folder of user %s", history_id, identity.id)
        raise Forbidden()

    now = now or datetime.now(timezone.utc)
    if now >= _as_utc(record.expires_at):
        raise Gone()
    return record

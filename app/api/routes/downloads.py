"""
Download entitlement, history and re-download routes.
"""
import logging
from typing import Optional
from urllib.parse import quote

from fastapi import APIRouter, Depends, Query, status
from fastapi.responses import JSONResponse, Response
from sqlalchemy.orm import Session

from app.core.config import Settings, get_settings
from app.core.errors import Misconfigured, UpstreamFailure
from app.db.session import get_db
from app.dependencies.auth import get_current_identity
from app.dependencies.services import get_storage
from app.schemas.auth import Identity
from app.schemas.download import (
    HistoryItem,
    HistoryResponse,
    RecordDownloadRequest,
    RecordDownloadResponse,
    RedownloadLink,
)
from app.services.download_history import list_history, record_download
from app.services.entitlement import check_entitlement, consume_credit
from app.services.redownload import AUDIO_MEDIA_TYPE, get_redownloadable, suggested_file_name
from app.services.storage import StorageError, SupabaseStorage

logger = logging.getLogger(__name__)

router = APIRouter()


@router.api_route("/check-download-entitlement", methods=["GET", "POST"])
def check_download_entitlement(
    db: Session = Depends(get_db),
    identity: Identity = Depends(get_current_identity),
):
    """
    Server-side download permission check.
    Admins, or users holding at least one paid credit, get 200 {"allowed": true}.
    A tampered client can't grant itself a download without passing through here.
    """
    result = check_entitlement(db, identity)
    if not result["allowed"]:
        return JSONResponse(
            status_code=status.HTTP_403_FORBIDDEN,
            content={**result, "error": "no_entitlement", "message": "Purchase a download pack to continue"},
        )
    return result


@router.post("/consume-download-token")
def consume_download_token(
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
    identity: Identity = Depends(get_current_identity),
):
    """Spend one credit when a download actually happens. Admins don't spend."""
    return consume_credit(db, identity, max_attempts=settings.consume_max_attempts)


@router.get("/get-download-history", response_model=HistoryResponse)
def get_download_history(
    db: Session = Depends(get_db),
    identity: Identity = Depends(get_current_identity),
):
    """My Page: the caller's download history, newest first (max 100)."""
    rows = list_history(db, identity.id)
    return {"history": [HistoryItem.model_validate(row) for row in rows]}


@router.post("/record-download", response_model=RecordDownloadResponse, status_code=status.HTTP_201_CREATED)
def create_download_record(
    body: RecordDownloadRequest,
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
    identity: Identity = Depends(get_current_identity),
):
    """Record a completed delivery so it shows on My Page (and can be re-downloaded if stored)."""
    record = record_download(
        db,
        identity.id,
        body.file_name,
        body.mastering_target,
        amount_cents=body.amount_cents,
        storage_path=body.storage_path,
        redownload_days=settings.redownload_days,
    )
    return {"id": record.id, "expires_at": record.expires_at}


@router.get("/re-download")
def re_download(
    history_id: str = Query(""),
    stream: Optional[str] = Query(None),
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
    storage: Optional[SupabaseStorage] = Depends(get_storage),
    identity: Identity = Depends(get_current_identity),
):
    """
    Re-download from My Page while the history row is the caller's and still in its window.
    ?stream=1 returns the WAV bytes; otherwise a signed URL valid for about a minute.
    """
    record = get_redownloadable(db, identity, history_id)

    if storage is None:
        logger.error("[REDOWNLOAD] SUPABASE_URL / SUPABASE_SERVICE_ROLE_KEY not configured")
        raise Misconfigured()

    name = suggested_file_name(record)

    if stream in ("1", "true"):
        try:
            data = storage.download(record.storage_path)
        except StorageError as e:
            logger.error("[REDOWNLOAD] storage download of %s failed: %s", record.storage_path, e)
            raise UpstreamFailure("storage_error")
        return Response(
            content=data,
            media_type=AUDIO_MEDIA_TYPE,
            headers={"Content-Disposition": f'attachment; filename="{quote(name)}"'},
        )

    try:
        url = storage.create_signed_url(record.storage_path, settings.signed_url_ttl_seconds, download=True)
    except StorageError as e:
        logger.error("[REDOWNLOAD] signed url for %s failed: %s", record.storage_path, e)
        raise UpstreamFailure("storage_error")
    return RedownloadLink(url=url, suggested_name=name)

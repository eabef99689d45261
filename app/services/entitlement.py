"""
Download entitlement: who may download a mastered file, and consuming credits.

The store is the single source of truth. There is no balance column: a user's
balance is the number of paid download_tokens rows, and consuming a credit
deletes exactly one of them by primary key.
"""
import logging
from typing import Optional

from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.errors import NoCreditsRemaining, UpstreamFailure
from app.models.admin_email import AdminEmail
from app.models.download_token import DownloadToken
from app.schemas.auth import Identity

logger = logging.getLogger(__name__)

DEFAULT_CONSUME_ATTEMPTS = 3


def is_admin(db: Session, email: Optional[str]) -> bool:
    """True when the email is on the admin allow-list (case-insensitive)."""
    if not email:
        return False
    row = (
        db.query(AdminEmail.email)
        .filter(func.lower(AdminEmail.email) == email.strip().lower())
        .first()
    )
    return row is not None


def count_credits(db: Session, user_id: str) -> int:
    return (
        db.query(func.count(DownloadToken.id))
        .filter(DownloadToken.user_id == user_id, DownloadToken.paid.is_(True))
        .scalar()
        or 0
    )


def _oldest_credit_id(db: Session, user_id: str) -> Optional[str]:
    row = (
        db.query(DownloadToken.id)
        .filter(DownloadToken.user_id == user_id, DownloadToken.paid.is_(True))
        .order_by(DownloadToken.created_at.asc(), DownloadToken.id.asc())
        .first()
    )
    return row[0] if row else None


def _delete_credit(db: Session, token_id: str) -> int:
    """Delete one credit by primary key and commit. Returns the affected row count."""
    deleted = (
        db.query(DownloadToken)
        .filter(DownloadToken.id == token_id)
        .delete(synchronize_session=False)
    )
    db.commit()
    return deleted


def check_entitlement(db: Session, identity: Identity) -> dict:
    """
    Read-only entitlement check.
    Admins are unbounded (remaining=None); everyone else is allowed while they hold a paid credit.
    """
    try:
        if is_admin(db, identity.email):
            return {"allowed": True, "remaining": None, "admin": True}
        remaining = count_credits(db, identity.id)
    except SQLAlchemyError as e:
        db.rollback()
        logger.error("[ENTITLEMENT] check failed for user %s: %s", identity.id, e)
        raise UpstreamFailure("db_error", extra={"allowed": False})

    return {"allowed": remaining > 0, "remaining": remaining, "admin": False}


def consume_credit(db: Session, identity: Identity, max_attempts: int = DEFAULT_CONSUME_ATTEMPTS) -> dict:
    """
    Spend one download credit, oldest first. Admins never spend.

    The delete is scoped to the selected row id, so two concurrent calls can't
    both remove the same credit. The loser sees zero affected rows and
    re-selects, up to max_attempts, before giving up with NoCreditsRemaining.
    """
    no_credits = NoCreditsRemaining(extra={"consumed": False, "allowed": False, "remaining": 0})

    try:
        if is_admin(db, identity.email):
            return {"consumed": False, "allowed": True, "remaining": None, "admin": True}
    except SQLAlchemyError as e:
        db.rollback()
        logger.error("[ENTITLEMENT] admin lookup failed for user %s: %s", identity.id, e)
        raise UpstreamFailure("db_error", extra={"consumed": False})

    consumed_id = None
    for attempt in range(1, max(1, max_attempts) + 1):
        try:
            token_id = _oldest_credit_id(db, identity.id)
        except SQLAlchemyError as e:
            db.rollback()
            logger.error("[ENTITLEMENT] credit lookup failed for user %s: %s", identity.id, e)
            raise UpstreamFailure("db_error", extra={"consumed": False})

        if token_id is None:
            raise no_credits

        try:
            deleted = _delete_credit(db, token_id)
        except SQLAlchemyError as e:
            db.rollback()
            logger.error("[ENTITLEMENT] delete of credit %s failed for user %s: %s", token_id, identity.id, e)
            raise UpstreamFailure("db_error", extra={"consumed": False})

        if deleted == 1:
            consumed_id = token_id
            break
        logger.info(
            "[ENTITLEMENT] credit %s already consumed by a concurrent request (attempt %s/%s)",
            token_id, attempt, max_attempts,
        )

    if consumed_id is None:
        raise no_credits

    try:
        remaining = count_credits(db, identity.id)
    except SQLAlchemyError as e:
        # The credit is already gone; report the download as paid for.
        db.rollback()
        logger.error("[ENTITLEMENT] recount after consuming %s failed: %s", consumed_id, e)
        remaining = 0

    logger.info("[ENTITLEMENT] user %s consumed credit %s, %s remaining", identity.id, consumed_id, remaining)
    return {"consumed": True, "allowed": True, "remaining": remaining, "admin": False}

"""
Notify the admin once per new user.

The notified_signups row is claimed before the email goes out and is never
rolled back, so a failed send is not retried: at most one email per user.
"""
import logging
from typing import Optional

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.errors import UpstreamFailure
from app.models.notified_signup import NotifiedSignup
from app.schemas.auth import Identity
from app.services.notification_email import Mailer, render_signup_email

logger = logging.getLogger(__name__)


def _claim(db: Session, user_id: str) -> bool:
    """Insert the marker. False if it already exists (including a concurrent insert winning)."""
    try:
        existing = db.query(NotifiedSignup.user_id).filter(NotifiedSignup.user_id == user_id).first()
        if existing:
            return False
        db.add(NotifiedSignup(user_id=user_id))
        db.commit()
        return True
    except IntegrityError:
        db.rollback()
        logger.info("[SIGNUP] marker for %s inserted by a concurrent request", user_id)
        return False
    except SQLAlchemyError as e:
        db.rollback()
        logger.error("[SIGNUP] marker insert for %s failed: %s", user_id, e)
        raise UpstreamFailure("db_error")


def notify_signup(db: Session, identity: Identity, mailer: Optional[Mailer], notify_email: str = "") -> dict:
    if not _claim(db, identity.id):
        return {"notified": False, "already": True}

    if mailer is None or not notify_email:
        logger.warning("[SIGNUP] NOTIFY_EMAIL or RESEND_API_KEY not set, skip email for %s", identity.id)
        return {"notified": True, "email_skipped": True}

    subject, html = render_signup_email(identity.id, identity.email)
    try:
        mailer.send(notify_email, subject, html)
    except Exception as e:
        logger.error("[SIGNUP] notification email for %s failed: %s", identity.id, e)
        return {"notified": True, "email_failed": True}

    logger.info("[SIGNUP] admin notified of new user %s", identity.id)
    return {"notified": True}

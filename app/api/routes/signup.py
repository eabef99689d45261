"""
Signup notification route.
The client calls this after every login; the admin gets one email per new user.
"""
from typing import Optional

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.core.config import Settings, get_settings
from app.db.session import get_db
from app.dependencies.auth import get_current_identity
from app.dependencies.services import get_mailer
from app.schemas.auth import Identity
from app.services.notification_email import Mailer
from app.services.signup_notifier import notify_signup

router = APIRouter()


@router.api_route("/notify-new-signup", methods=["GET", "POST"])
def notify_new_signup(
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
    mailer: Optional[Mailer] = Depends(get_mailer),
    identity: Identity = Depends(get_current_identity),
):
    return notify_signup(db, identity, mailer, settings.notify_email)

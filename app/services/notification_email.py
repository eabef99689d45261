"""
Admin notification emails (new signups), sent through Resend.
"""
import html
import logging
from datetime import datetime, timezone
from typing import Optional

import resend

from app.core.config import Settings

logger = logging.getLogger(__name__)

APP_NAME = "AI Mastering"


class Mailer:
    def __init__(self, api_key: str, from_email: str):
        self.api_key = api_key
        self.from_email = from_email

    def send(self, to_email: str, subject: str, html: str) -> None:
        """Send one email. Raises whatever Resend raises on failure."""
        resend.api_key = self.api_key
        resend.Emails.send({
            "from": self.from_email,
            "to": [to_email],
            "subject": subject,
            "html": html.strip(),
        })


def build_mailer(settings: Settings) -> Optional[Mailer]:
    """A Mailer when Resend and the admin address are configured, else None."""
    if not settings.email_configured:
        return None
    return Mailer(settings.resend_api_key, settings.notify_from)


def render_signup_email(user_id: str, email: Optional[str], when: Optional[datetime] = None) -> tuple:
    when = when or datetime.now(timezone.utc)
    subject = f"[{APP_NAME}] New signup"
    body = f"""
    <p>A new user has signed up or logged in for the first time.</p>
    <ul>
      <li>User ID: {html.escape(user_id)}</li>
      <li>Email: {html.escape(email) if email else '(none)'}</li>
      <li>Time: {when.isoformat()}</li>
    </ul>
    """
    return subject, body

import uuid
from datetime import datetime, timezone

from sqlalchemy import Column, String, Boolean, DateTime, Integer, Index
from app.db.base import Base


def _utcnow():
    return datetime.now(timezone.utc)


class DownloadToken(Base):
    """
    One row = one purchased download credit.

    Rows are inserted by the Stripe webhook and deleted (never updated) when a
    download consumes them, oldest created_at first.
    """

    __tablename__ = "download_tokens"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = Column(String(64), nullable=False, index=True)  # Supabase auth user id (sub)
    paid = Column(Boolean, nullable=False, default=False)
    file_path = Column(String, nullable=True)
    file_name = Column(String, nullable=True)
    mastering_target = Column(String(64), nullable=True)
    amount_cents = Column(Integer, nullable=True)
    # Audit only; duplicate deliveries are de-duplicated by Stripe, not by us
    stripe_session_id = Column(String(255), nullable=True)
    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)

    __table_args__ = (
        Index("ix_download_tokens_user_paid_created", "user_id", "paid", "created_at"),
    )

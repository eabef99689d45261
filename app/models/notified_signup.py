"""
Idempotency marker for the "new signup" admin email.
The primary key is what makes concurrent first logins safe: only one INSERT can win.
"""
from sqlalchemy import Column, String, DateTime
from sqlalchemy.sql import func
from app.db.base import Base


class NotifiedSignup(Base):
    __tablename__ = "notified_signups"

    user_id = Column(String(64), primary_key=True, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

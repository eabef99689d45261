from sqlalchemy import Column, String, DateTime
from sqlalchemy.sql import func
from app.db.base import Base


class AdminEmail(Base):
    """Allow-list of admin accounts. Admins download without consuming credits."""

    __tablename__ = "admin_emails"

    email = Column(String(320), primary_key=True, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

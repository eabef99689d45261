import uuid
from datetime import datetime, timezone

from sqlalchemy import Column, String, DateTime, Integer
from app.db.base import Base


class DownloadHistory(Base):
    """
    One row per completed delivery of a mastered file.
    Re-downloadable from storage_path until expires_at; rows without either are history only.
    """

    __tablename__ = "download_history"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = Column(String(64), nullable=False, index=True)
    file_name = Column(String, nullable=True)
    mastering_target = Column(String(64), nullable=True)
    amount_cents = Column(Integer, nullable=True)
    storage_path = Column(String, nullable=True)
    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), nullable=False)
    expires_at = Column(DateTime(timezone=True), nullable=True)

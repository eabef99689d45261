from pydantic import BaseModel, Field
from typing import List, Optional
from datetime import datetime


class HistoryItem(BaseModel):
    id: str
    file_name: Optional[str] = None
    mastering_target: Optional[str] = None
    created_at: Optional[datetime] = None
    amount_cents: Optional[int] = None
    storage_path: Optional[str] = None
    expires_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class HistoryResponse(BaseModel):
    history: List[HistoryItem]


class RecordDownloadRequest(BaseModel):
    file_name: str = Field(..., min_length=1, max_length=512)
    mastering_target: str = Field(..., min_length=1, max_length=64)
    amount_cents: Optional[int] = Field(None, ge=0)
    storage_path: Optional[str] = Field(None, max_length=1024)


class RecordDownloadResponse(BaseModel):
    id: str
    expires_at: Optional[datetime] = None


class RedownloadLink(BaseModel):
    url: str
    suggested_name: str

from pydantic import BaseModel
from typing import Optional


class Identity(BaseModel):
    """Caller resolved from a verified Supabase access token. Never persisted."""

    id: str
    email: Optional[str] = None

from typing import Optional

from fastapi import Depends

from app.core.config import Settings, get_settings
from app.services.notification_email import Mailer, build_mailer
from app.services.storage import SupabaseStorage


def get_storage(settings: Settings = Depends(get_settings)) -> Optional[SupabaseStorage]:
    """Storage client for mastered files, or None when Supabase storage isn't configured."""
    if not (settings.supabase_url and settings.supabase_service_key):
        return None
    return SupabaseStorage(settings.supabase_url, settings.supabase_service_key, settings.storage_bucket)


def get_mailer(settings: Settings = Depends(get_settings)) -> Optional[Mailer]:
    return build_mailer(settings)

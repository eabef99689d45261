from app.models.admin_email import AdminEmail
from app.models.download_token import DownloadToken
from app.models.download_history import DownloadHistory
from app.models.notified_signup import NotifiedSignup

__all__ = [
    "AdminEmail",
    "DownloadToken",
    "DownloadHistory",
    "NotifiedSignup",
]

"""
API error taxonomy.
Services raise these; app.main renders them as {"error": code, "message": ...} plus any extra fields.
"""
from typing import Any, Dict, Optional

from fastapi import status


class ApiError(Exception):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    code = "server_error"
    message = "Internal server error"

    def __init__(
        self,
        code: Optional[str] = None,
        message: Optional[str] = None,
        extra: Optional[Dict[str, Any]] = None,
    ):
        if code:
            self.code = code
        if message:
            self.message = message
        self.extra = dict(extra or {})
        super().__init__(f"{self.code}: {self.message}")

    def to_dict(self) -> Dict[str, Any]:
        body = {"error": self.code, "message": self.message}
        body.update(self.extra)
        return body


class Unauthenticated(ApiError):
    status_code = status.HTTP_401_UNAUTHORIZED
    code = "auth_failed"
    message = "Invalid or expired token"

    def to_dict(self) -> Dict[str, Any]:
        body = super().to_dict()
        body.setdefault("code", "unauthorized")
        return body


class Forbidden(ApiError):
    status_code = status.HTTP_403_FORBIDDEN
    code = "forbidden"
    message = "You do not have access to this resource"


class NoCreditsRemaining(Forbidden):
    code = "no_tokens_left"
    message = "No download credits remaining"


class NotFound(ApiError):
    status_code = status.HTTP_404_NOT_FOUND
    code = "not_found"
    message = "Not found"


class Gone(ApiError):
    status_code = status.HTTP_410_GONE
    code = "redownload_expired"
    message = "Re-download period has ended."


class BadRequest(ApiError):
    status_code = status.HTTP_400_BAD_REQUEST
    code = "bad_request"
    message = "Bad request"


class InvalidSignature(BadRequest):
    code = "invalid_signature"
    message = "Invalid signature"


class Misconfigured(ApiError):
    code = "server_config"
    message = "Server is not configured"


class UpstreamFailure(ApiError):
    code = "db_error"
    message = "Upstream service failed, please retry later"


class ReconciliationError(ApiError):
    code = "configuration_error"
    message = "Payment event could not be reconciled"

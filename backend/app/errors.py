"""Error taxonomy shared by the auth and storage layers.

Every error knows the HTTP status it maps to and a stable ``reason`` code so
clients can branch on it. Upstream response bodies never end up in the
payload; they are logged where the failure is detected.
"""

from __future__ import annotations

from typing import Any


class ServiceError(Exception):
    """Base class for failures surfaced to API callers."""

    status_code = 500
    reason = "internal_error"
    default_message = "Internal server error"

    def __init__(self, message: str | None = None, *, details: dict[str, Any] | None = None) -> None:
        self.message = message or self.default_message
        self.details = details or {}
        super().__init__(self.message)

    def to_payload(self) -> dict[str, Any]:
        return {"error": self.message, "reason": self.reason}


class AuthError(ServiceError):
    status_code = 401
    reason = "unauthorized"
    default_message = "Authentication failed"


class MissingOrMalformedCredential(AuthError):
    reason = "missing_or_malformed_credential"
    default_message = "Authorization header required"


class TokenInvalid(AuthError):
    reason = "token_invalid"
    default_message = "Invalid token"


class SessionExpired(AuthError):
    reason = "session_expired"
    default_message = "Token expired"

    def to_payload(self) -> dict[str, Any]:
        payload = super().to_payload()
        payload["refreshRequired"] = True
        payload["errorDescription"] = "Please login again"
        return payload


class InvalidCredentials(AuthError):
    reason = "invalid_credentials"
    default_message = "Invalid login attempt"


class RefreshRejected(AuthError):
    reason = "refresh_rejected"
    default_message = "Invalid refresh token"


class AdminTokenUnavailable(ServiceError):
    status_code = 502
    reason = "admin_token_unavailable"
    default_message = "User registration is temporarily unavailable"


class UserCreateRejected(ServiceError):
    status_code = 400
    reason = "user_create_rejected"
    default_message = "Unable to create user"

    def __init__(
        self,
        message: str | None = None,
        *,
        conflict: bool = False,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, details=details)
        if conflict:
            self.status_code = 409


class LogoutRejected(ServiceError):
    reason = "logout_rejected"
    default_message = "Logout failed"


class UpstreamUnavailable(ServiceError):
    status_code = 503
    reason = "upstream_unavailable"
    default_message = "Upstream service unavailable"

    def __init__(self, upstream: str, operation: str, message: str | None = None) -> None:
        super().__init__(message, details={"upstream": upstream, "operation": operation})
        self.upstream = upstream
        self.operation = operation


class NotFound(ServiceError):
    status_code = 404
    reason = "not_found"
    default_message = "File not found"


class InvalidFileName(ServiceError):
    status_code = 400
    reason = "invalid_file_name"
    default_message = "Invalid file name"


class StoreError(ServiceError):
    reason = "store_error"
    default_message = "Storage operation failed"

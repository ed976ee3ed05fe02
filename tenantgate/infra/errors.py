"""Typed error taxonomy and the machine-readable error payload."""

import uuid
from enum import Enum
from typing import Any, Dict, Optional

from fastapi.responses import JSONResponse

from tenantgate.infra.config import config


class ErrorCode(str, Enum):
    """Stable error codes exposed to API clients."""
    UNAUTHENTICATED = "UNAUTHENTICATED"
    INSUFFICIENT_PERMISSIONS = "INSUFFICIENT_PERMISSIONS"
    INSUFFICIENT_ROLE = "INSUFFICIENT_ROLE"
    SESSION_NOT_FOUND = "SESSION_NOT_FOUND"
    SESSION_EXPIRED = "SESSION_EXPIRED"
    TENANT_NOT_FOUND = "TENANT_NOT_FOUND"
    CONNECTION_UNAVAILABLE = "CONNECTION_UNAVAILABLE"
    PROVISIONING_FAILED = "PROVISIONING_FAILED"
    REQUEST_TIMEOUT = "REQUEST_TIMEOUT"
    INTERNAL_ERROR = "INTERNAL_ERROR"


# Localised messages shown next to the English one
LOCALIZED_MESSAGES: Dict[str, Dict[ErrorCode, str]] = {
    "fa": {
        ErrorCode.UNAUTHENTICATED: "احراز هویت مورد نیاز است",
        ErrorCode.INSUFFICIENT_PERMISSIONS: "دسترسی کافی نیست",
        ErrorCode.INSUFFICIENT_ROLE: "نقش کاربری مناسب نیست",
        ErrorCode.SESSION_NOT_FOUND: "جلسه کاری یافت نشد",
        ErrorCode.SESSION_EXPIRED: "جلسه کاری به دلیل عدم فعالیت منقضی شده است",
        ErrorCode.TENANT_NOT_FOUND: "مستاجر یافت نشد",
    },
}


class TenancyError(Exception):
    """Base exception for tenant routing and session errors."""
    code: ErrorCode = ErrorCode.INTERNAL_ERROR
    status_code: int = 500
    retryable: bool = False

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        self.message = message
        self.details = details
        super().__init__(message)

    def to_payload(self, locale: Optional[str] = None) -> Dict[str, Any]:
        """Render the `{success: false, error: {...}}` payload."""
        error: Dict[str, Any] = {"code": self.code.value, "message": self.message}
        localized = LOCALIZED_MESSAGES.get(locale or "", {}).get(self.code)
        if localized:
            error["message_localized"] = localized
        if self.details:
            error["details"] = self.details
        return {"success": False, "error": error}


class TenantNotFound(TenancyError):
    """No routing key, unknown key, or tenant not active."""
    code = ErrorCode.TENANT_NOT_FOUND
    status_code = 404


class Unauthenticated(TenancyError):
    code = ErrorCode.UNAUTHENTICATED
    status_code = 401

    def __init__(self, message: str = "Authentication required", details: Optional[Dict[str, Any]] = None):
        super().__init__(message, details)


class InsufficientRole(TenancyError):
    code = ErrorCode.INSUFFICIENT_ROLE
    status_code = 403


class InsufficientPermissions(TenancyError):
    code = ErrorCode.INSUFFICIENT_PERMISSIONS
    status_code = 403


class SessionNotFound(TenancyError):
    """Authenticated request without an active session row."""
    code = ErrorCode.SESSION_NOT_FOUND
    status_code = 401

    def __init__(self, message: str = "Session not found", details: Optional[Dict[str, Any]] = None):
        super().__init__(message, details)


class SessionExpired(TenancyError):
    """Session idle for longer than the configured timeout."""
    code = ErrorCode.SESSION_EXPIRED
    status_code = 401

    def __init__(self, idle_minutes: int, timeout_minutes: int):
        super().__init__(
            "Session expired due to inactivity",
            {"idle_minutes": idle_minutes, "timeout_minutes": timeout_minutes},
        )
        self.idle_minutes = idle_minutes
        self.timeout_minutes = timeout_minutes


class ConnectionUnavailable(TenancyError):
    """A tenant or directory store could not be reached in time."""
    code = ErrorCode.CONNECTION_UNAVAILABLE
    status_code = 503
    retryable = True


class ProvisioningError(TenancyError):
    """An administrative provisioning step failed."""
    code = ErrorCode.PROVISIONING_FAILED
    status_code = 500
    retryable = True

    def __init__(self, step: str, subdomain: str, detail: str):
        super().__init__(
            f"Provisioning step '{step}' failed for tenant '{subdomain}': {detail}",
            {"step": step, "subdomain": subdomain, "detail": detail},
        )
        self.step = step
        self.subdomain = subdomain


class RequestTimeout(TenancyError):
    code = ErrorCode.REQUEST_TIMEOUT
    status_code = 504

    def __init__(self, timeout_seconds: int):
        super().__init__(f"Request timeout after {timeout_seconds} seconds")


def error_response(
    error: TenancyError,
    headers: Optional[Dict[str, str]] = None,
) -> JSONResponse:
    """Build the JSON response for a TenancyError."""
    return JSONResponse(
        status_code=error.status_code,
        content=error.to_payload(config.ERROR_LOCALE),
        headers=headers,
    )


def internal_error_payload() -> Dict[str, Any]:
    """Payload for unhandled exceptions, with an id to correlate with logs."""
    error_id = str(uuid.uuid4())
    return {
        "success": False,
        "error": {
            "code": ErrorCode.INTERNAL_ERROR.value,
            "message": f"Internal server error. Error ID: {error_id}",
            "details": {"error_id": error_id},
        },
    }

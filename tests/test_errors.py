"""Tests for the error taxonomy and its payload."""

from tenantgate.infra.errors import (
    ConnectionUnavailable,
    ErrorCode,
    InsufficientRole,
    ProvisioningError,
    SessionExpired,
    TenantNotFound,
    Unauthenticated,
    error_response,
    internal_error_payload,
)


def test_payload_shape_with_localised_message():
    payload = TenantNotFound("No valid subdomain provided").to_payload("fa")

    assert payload["success"] is False
    assert payload["error"]["code"] == "TENANT_NOT_FOUND"
    assert payload["error"]["message"] == "No valid subdomain provided"
    assert payload["error"]["message_localized"]
    assert "details" not in payload["error"]


def test_payload_without_locale():
    payload = Unauthenticated().to_payload(None)
    assert payload["error"] == {"code": "UNAUTHENTICATED", "message": "Authentication required"}


def test_session_expired_details():
    error = SessionExpired(idle_minutes=150, timeout_minutes=120)

    assert error.status_code == 401
    assert error.to_payload()["error"]["details"] == {"idle_minutes": 150, "timeout_minutes": 120}


def test_status_codes_and_retryability():
    assert TenantNotFound("x").status_code == 404
    assert InsufficientRole("x").status_code == 403
    assert ConnectionUnavailable("x").status_code == 503
    assert ConnectionUnavailable("x").retryable is True
    assert TenantNotFound("x").retryable is False


def test_provisioning_error_names_failed_step():
    error = ProvisioningError("migrate", "acme", "schema error")

    assert error.code is ErrorCode.PROVISIONING_FAILED
    assert error.retryable is True
    assert error.details == {"step": "migrate", "subdomain": "acme", "detail": "schema error"}
    assert "migrate" in error.message


def test_error_response():
    response = error_response(ConnectionUnavailable("Tenant data store is unavailable"))
    assert response.status_code == 503


def test_internal_error_payload_carries_error_id():
    payload = internal_error_payload()
    error_id = payload["error"]["details"]["error_id"]

    assert payload["error"]["code"] == "INTERNAL_ERROR"
    assert error_id in payload["error"]["message"]

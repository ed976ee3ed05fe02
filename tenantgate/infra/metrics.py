"""Prometheus metrics export."""

from prometheus_client import Counter, Gauge, generate_latest, CONTENT_TYPE_LATEST
from fastapi import Response

# Tenant resolution
tenant_resolutions_total = Counter(
    "tenant_resolutions_total",
    "Tenant resolution attempts",
    ["status"],  # resolved | skipped | not_found | unavailable
)

# Connection registry
tenant_connections_active = Gauge(
    "tenant_connections_active",
    "Number of cached tenant connection handles",
)

# Provisioning
provisioning_operations_total = Counter(
    "provisioning_operations_total",
    "Tenant store provisioning operations",
    ["operation", "status"],
)

# Sessions
session_checks_total = Counter(
    "session_checks_total",
    "Session timeout checks by outcome",
    ["outcome"],
)

sessions_cleaned_total = Counter(
    "sessions_cleaned_total",
    "Sessions logged out by the expired-session cleanup job",
)

# Login anomalies
login_anomalies_total = Counter(
    "login_anomalies_total",
    "Login anomaly findings",
    ["type", "severity"],
)


def get_metrics_response() -> Response:
    """Get Prometheus metrics as HTTP response."""
    return Response(
        content=generate_latest(),
        media_type=CONTENT_TYPE_LATEST,
    )

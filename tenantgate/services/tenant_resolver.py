"""Tenant resolution: routing key extraction and Tenant Context construction."""

import fnmatch
import logging
from typing import Iterable, Optional

from sqlalchemy.exc import SQLAlchemyError

from tenantgate.infra.config import config
from tenantgate.infra.errors import TenantNotFound
from tenantgate.infra.metrics import tenant_resolutions_total
from tenantgate.models.context import TenantContext
from tenantgate.services.connection_registry import ConnectionRegistry
from tenantgate.services.tenant_directory import TenantDirectory

logger = logging.getLogger(__name__)


def should_skip(path: str, patterns: Optional[Iterable[str]] = None) -> bool:
    """True when `path` matches a skip pattern (matched without leading slash)."""
    patterns = config.TENANT_SKIP_PATHS if patterns is None else patterns
    path = path.lstrip("/")
    return any(fnmatch.fnmatchcase(path, pattern) for pattern in patterns)


def extract_tenant_key(
    host: Optional[str],
    override: Optional[str] = None,
    local_root: Optional[str] = None,
) -> Optional[str]:
    """
    Derive the routing key of a request.

    A non-empty override header always wins. Otherwise the host (port
    stripped, lowercased) yields its first label when it has three or more
    labels, or two labels ending in the local root; anything else has no key.
    """
    if override and override.strip():
        return override.strip().lower()

    if not host:
        return None

    local_root = (local_root or config.TENANT_LOCAL_ROOT).lower()
    hostname = host.strip().lower().split(":", 1)[0]
    labels = hostname.split(".")

    if len(labels) >= 3 and labels[0]:
        return labels[0]
    if len(labels) == 2 and labels[1] == local_root and labels[0]:
        return labels[0]
    return None


def resolve_tenant(
    directory: TenantDirectory,
    registry: ConnectionRegistry,
    host: Optional[str],
    override: Optional[str] = None,
    local_root: Optional[str] = None,
) -> TenantContext:
    """
    Resolve the tenant addressed by a request and bind its connection.

    Raises TenantNotFound when there is no key or no active tenant for it,
    and ConnectionUnavailable when the tenant store cannot be configured.
    """
    key = extract_tenant_key(host, override, local_root)
    if key is None:
        tenant_resolutions_total.labels(status="not_found").inc()
        raise TenantNotFound("No valid subdomain provided", {"host": host})

    tenant = directory.find_active_by_subdomain(key)
    if tenant is None:
        tenant_resolutions_total.labels(status="not_found").inc()
        logger.info("Unknown or inactive tenant", extra={"subdomain": key})
        raise TenantNotFound("Invalid subdomain or inactive tenant", {"subdomain": key})

    context = TenantContext(tenant=tenant, connection=registry.get(tenant))

    try:
        directory.touch_last_accessed(tenant.id)
    except SQLAlchemyError as e:
        logger.warning(
            "Failed to record tenant access",
            extra={"tenant_id": tenant.id, "error": str(e)},
        )

    tenant_resolutions_total.labels(status="resolved").inc()
    return context

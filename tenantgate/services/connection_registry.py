"""Registry of per-tenant connection handles, keyed by tenant id."""

import logging
import threading
import time
from typing import Dict, Optional

from sqlalchemy import create_engine
from sqlalchemy.exc import ArgumentError
from sqlalchemy.orm import sessionmaker

from tenantgate.infra.config import config
from tenantgate.infra.database import engine_options
from tenantgate.infra.errors import ConnectionUnavailable
from tenantgate.infra.metrics import tenant_connections_active
from tenantgate.models.context import ConnectionHandle, TenantRecord

logger = logging.getLogger(__name__)


def connection_name(tenant_id: int) -> str:
    """Stable handle name for a tenant."""
    return f"tenant_{tenant_id}"


def build_tenant_url(database_name: str, template: Optional[str] = None) -> str:
    """Database URL for a tenant store, from the shared driver template."""
    template = template or config.TENANT_DATABASE_URL_TEMPLATE
    return template.format(database=database_name)


class ConnectionRegistry:
    """
    Creates, caches and tears down tenant connection handles.

    One handle (one engine and pool) per tenant id. Concurrent `get` calls for
    the same tenant return the same handle; handles idle for longer than
    `idle_ttl_seconds` are disposed on the next registry access.
    """

    def __init__(
        self,
        url_template: Optional[str] = None,
        pool_size: Optional[int] = None,
        max_overflow: Optional[int] = None,
        connect_timeout: Optional[int] = None,
        idle_ttl_seconds: Optional[int] = None,
    ):
        self.url_template = url_template or config.TENANT_DATABASE_URL_TEMPLATE
        self.pool_size = pool_size or config.TENANT_POOL_SIZE
        self.max_overflow = max_overflow if max_overflow is not None else config.TENANT_MAX_OVERFLOW
        self.connect_timeout = connect_timeout or config.CONNECTION_TIMEOUT_SECONDS
        self.idle_ttl_seconds = (
            idle_ttl_seconds if idle_ttl_seconds is not None else config.CONNECTION_IDLE_TTL_SECONDS
        )
        self._handles: Dict[int, ConnectionHandle] = {}
        self._lock = threading.Lock()

    def get(self, tenant: TenantRecord) -> ConnectionHandle:
        """Return the cached handle for `tenant`, creating it when absent."""
        handle = self._handles.get(tenant.id)
        if handle is not None and handle.database_name == tenant.database_name:
            handle.last_used = time.monotonic()
            self._evict_idle()
            return handle

        with self._lock:
            handle = self._handles.get(tenant.id)
            if handle is not None and handle.database_name != tenant.database_name:
                # Tenant was re-provisioned under another store name
                self._discard(tenant.id)
                handle = None
            if handle is None:
                handle = self._build(tenant)
                self._handles[tenant.id] = handle
                tenant_connections_active.set(len(self._handles))
                logger.info(
                    "Tenant connection handle created",
                    extra={"tenant_id": tenant.id, "database": tenant.database_name},
                )
            handle.last_used = time.monotonic()

        self._evict_idle()
        return handle

    def purge(self, tenant_id: int) -> bool:
        """Invalidate and dispose the cached handle of a tenant."""
        with self._lock:
            purged = self._discard(tenant_id)
        if purged:
            logger.info("Tenant connection handle purged", extra={"tenant_id": tenant_id})
        return purged

    def purge_all(self) -> None:
        with self._lock:
            for tenant_id in list(self._handles):
                self._discard(tenant_id)

    def is_cached(self, tenant_id: int) -> bool:
        return tenant_id in self._handles

    @property
    def active_count(self) -> int:
        return len(self._handles)

    def _build(self, tenant: TenantRecord) -> ConnectionHandle:
        url = build_tenant_url(tenant.database_name, self.url_template)
        try:
            engine = create_engine(
                url,
                **engine_options(
                    url,
                    pool_size=self.pool_size,
                    max_overflow=self.max_overflow,
                    timeout=self.connect_timeout,
                ),
            )
        except (ArgumentError, ImportError) as e:
            logger.error(
                "Could not configure tenant connection",
                extra={"tenant_id": tenant.id, "error": str(e)},
            )
            raise ConnectionUnavailable(
                "Tenant data store is not configured correctly",
                {"tenant_id": tenant.id},
            ) from e

        return ConnectionHandle(
            name=connection_name(tenant.id),
            tenant_id=tenant.id,
            database_name=tenant.database_name,
            url=url,
            engine=engine,
            session_factory=sessionmaker(
                autocommit=False, autoflush=False, expire_on_commit=False, bind=engine
            ),
        )

    def _discard(self, tenant_id: int) -> bool:
        # Caller holds self._lock
        handle = self._handles.pop(tenant_id, None)
        tenant_connections_active.set(len(self._handles))
        if handle is None:
            return False
        handle.engine.dispose()
        return True

    def _evict_idle(self) -> None:
        if not self.idle_ttl_seconds:
            return
        cutoff = time.monotonic() - self.idle_ttl_seconds
        stale = [tid for tid, handle in list(self._handles.items()) if handle.last_used < cutoff]
        if not stale:
            return
        with self._lock:
            for tenant_id in stale:
                handle = self._handles.get(tenant_id)
                if handle is not None and handle.last_used < cutoff:
                    self._discard(tenant_id)
                    logger.debug("Idle tenant connection evicted", extra={"tenant_id": tenant_id})

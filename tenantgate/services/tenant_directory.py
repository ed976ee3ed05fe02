"""Tenant directory: lookups over the shared store of tenant records."""

import logging
from typing import Any, Dict, List, Optional

from sqlalchemy import select, update
from sqlalchemy.orm import sessionmaker

from tenantgate.infra.database import get_db_session
from tenantgate.models.context import TenantRecord, utcnow
from tenantgate.models.directory import Tenant, TENANT_STATUSES

logger = logging.getLogger(__name__)


class TenantDirectory:
    """
    Read path (request hot path) and administrative write path over `tenants`.

    Only `find_active_by_subdomain` and `touch_last_accessed` are used while
    serving requests; everything else is for onboarding tooling.
    """

    def __init__(self, session_factory: sessionmaker):
        self.session_factory = session_factory

    def find_active_by_subdomain(self, subdomain: str) -> Optional[TenantRecord]:
        """Return the active tenant routed by `subdomain`, or None."""
        with get_db_session(self.session_factory) as session:
            row = session.execute(
                select(Tenant).where(
                    Tenant.subdomain == subdomain,
                    Tenant.status == "active",
                )
            ).scalar_one_or_none()
            return TenantRecord.from_row(row) if row else None

    def get_by_subdomain(self, subdomain: str) -> Optional[TenantRecord]:
        """Return the tenant for `subdomain` whatever its status."""
        with get_db_session(self.session_factory) as session:
            row = session.execute(
                select(Tenant).where(Tenant.subdomain == subdomain)
            ).scalar_one_or_none()
            return TenantRecord.from_row(row) if row else None

    def get(self, tenant_id: int) -> Optional[TenantRecord]:
        with get_db_session(self.session_factory) as session:
            row = session.get(Tenant, tenant_id)
            return TenantRecord.from_row(row) if row else None

    def list_active(self) -> List[TenantRecord]:
        with get_db_session(self.session_factory) as session:
            rows = session.execute(
                select(Tenant).where(Tenant.status == "active").order_by(Tenant.id)
            ).scalars().all()
            return [TenantRecord.from_row(row) for row in rows]

    def subdomain_exists(self, subdomain: str) -> bool:
        return self.get_by_subdomain(subdomain) is not None

    def touch_last_accessed(self, tenant_id: int) -> None:
        """Record that the tenant served a request just now."""
        with get_db_session(self.session_factory) as session:
            session.execute(
                update(Tenant)
                .where(Tenant.id == tenant_id)
                .values(last_accessed_at=utcnow())
            )

    # ------------------------------------------------------------------
    # Administrative writes
    # ------------------------------------------------------------------

    def add(
        self,
        name: str,
        subdomain: str,
        database_name: str,
        status: str = "active",
        subscription_plan: Optional[str] = None,
        settings: Optional[Dict[str, Any]] = None,
    ) -> TenantRecord:
        """Insert a tenant row and return its snapshot."""
        if status not in TENANT_STATUSES:
            raise ValueError(f"Invalid tenant status: {status}")

        with get_db_session(self.session_factory) as session:
            row = Tenant(
                name=name,
                subdomain=subdomain,
                database_name=database_name,
                status=status,
                subscription_plan=subscription_plan,
                settings=settings or {},
            )
            session.add(row)
            session.flush()
            record = TenantRecord.from_row(row)

        logger.info(
            "Tenant directory row created",
            extra={"tenant_id": record.id, "subdomain": subdomain, "status": status},
        )
        return record

    def set_status(self, tenant_id: int, status: str) -> None:
        if status not in TENANT_STATUSES:
            raise ValueError(f"Invalid tenant status: {status}")

        with get_db_session(self.session_factory) as session:
            session.execute(
                update(Tenant).where(Tenant.id == tenant_id).values(status=status)
            )
        logger.info("Tenant status changed", extra={"tenant_id": tenant_id, "status": status})

    def delete(self, tenant_id: int) -> None:
        """Remove a tenant row. Administrative flows only."""
        with get_db_session(self.session_factory) as session:
            row = session.get(Tenant, tenant_id)
            if row is not None:
                session.delete(row)
        logger.info("Tenant directory row deleted", extra={"tenant_id": tenant_id})

"""Request-scoped tenant context and the transient values passed between services."""

import logging
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Generator, Optional

from sqlalchemy.engine import Engine
from sqlalchemy.exc import OperationalError, TimeoutError as PoolTimeoutError
from sqlalchemy.orm import Session, sessionmaker

from tenantgate.infra.errors import ConnectionUnavailable

logger = logging.getLogger(__name__)


def utcnow() -> datetime:
    """Naive UTC timestamp, the representation stored in every table."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


@dataclass(frozen=True)
class TenantRecord:
    """Detached snapshot of a tenant directory row."""
    id: int
    name: str
    subdomain: str
    database_name: str
    status: str  # "active" | "inactive" | "suspended"
    subscription_plan: Optional[str] = None
    settings: Dict[str, Any] = field(default_factory=dict)
    last_accessed_at: Optional[datetime] = None

    @classmethod
    def from_row(cls, row) -> "TenantRecord":
        return cls(
            id=row.id,
            name=row.name,
            subdomain=row.subdomain,
            database_name=row.database_name,
            status=row.status,
            subscription_plan=row.subscription_plan,
            settings=dict(row.settings or {}),
            last_accessed_at=row.last_accessed_at,
        )

    @property
    def is_active(self) -> bool:
        return self.status == "active"


@dataclass(eq=False)
class ConnectionHandle:
    """
    Connection configuration bound to one tenant's isolated store.

    Owned by the ConnectionRegistry and shared by concurrent requests for the
    same tenant. Requests never hold on to a handle beyond their lifetime.
    """
    name: str
    tenant_id: int
    database_name: str
    url: str
    engine: Engine
    session_factory: sessionmaker
    last_used: float = 0.0

    @contextmanager
    def session(self) -> Generator[Session, None, None]:
        """
        Get a tenant store session.

        Commits on success, rolls back on error, and converts connectivity
        failures into ConnectionUnavailable.
        """
        session = self.session_factory()
        try:
            yield session
            session.commit()
        except (OperationalError, PoolTimeoutError) as e:
            session.rollback()
            logger.error(
                "Tenant store unavailable",
                extra={"tenant_id": self.tenant_id, "database": self.database_name, "error": str(e)},
            )
            raise ConnectionUnavailable(
                "Tenant data store is unavailable",
                {"tenant_id": self.tenant_id},
            ) from e
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()


@dataclass(frozen=True)
class TenantContext:
    """The {tenant, connection} binding for exactly one request."""
    tenant: TenantRecord
    connection: ConnectionHandle

    @property
    def tenant_id(self) -> int:
        return self.tenant.id


@dataclass(frozen=True)
class RequestMeta:
    """Network and client metadata of a request."""
    ip_address: str
    user_agent: str = ""

    @classmethod
    def from_request(cls, request) -> "RequestMeta":
        return cls(
            ip_address=request.client.host if request.client else "0.0.0.0",
            user_agent=request.headers.get("user-agent", ""),
        )


@dataclass(frozen=True)
class DeviceInfo:
    """Device fingerprint derived from a user agent string."""
    device_type: str  # "desktop" | "mobile" | "tablet" | "unknown"
    device_name: Optional[str] = None
    browser: Optional[str] = None
    platform: Optional[str] = None


@dataclass(frozen=True)
class AnomalyFinding:
    """Heuristic signal that a login differs from the user's history."""
    type: str  # "new_ip" | "new_device" | "rapid_location_change"
    message: str
    severity: str  # "medium" | "high"
    details: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.type,
            "message": self.message,
            "severity": self.severity,
            "details": dict(self.details),
        }

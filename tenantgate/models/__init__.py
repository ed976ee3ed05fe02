from .context import (
    AnomalyFinding,
    ConnectionHandle,
    DeviceInfo,
    RequestMeta,
    TenantContext,
    TenantRecord,
)
from .directory import DirectoryBase, Tenant
from .tenant import SessionState, TenantBase, User, UserSession

__all__ = [
    "AnomalyFinding",
    "ConnectionHandle",
    "DeviceInfo",
    "RequestMeta",
    "TenantContext",
    "TenantRecord",
    "DirectoryBase",
    "Tenant",
    "SessionState",
    "TenantBase",
    "User",
    "UserSession",
]

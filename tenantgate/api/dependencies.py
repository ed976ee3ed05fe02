"""FastAPI dependencies exposing the request's tenant context."""

from fastapi import Depends, Request

from tenantgate.infra.errors import TenantNotFound
from tenantgate.models.context import TenantContext
from tenantgate.services.session_manager import SessionLifecycleManager


def get_tenant_context(request: Request) -> TenantContext:
    tenant_context = getattr(request.state, "tenant_context", None)
    if tenant_context is None:
        raise TenantNotFound("No tenant context for this request")
    return tenant_context


def get_session_manager(
    tenant_context: TenantContext = Depends(get_tenant_context),
) -> SessionLifecycleManager:
    return SessionLifecycleManager(tenant_context.connection)

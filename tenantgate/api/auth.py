"""Authenticated identity, the authentication seam and authorization guards."""

import logging
from dataclasses import dataclass, field
from typing import Callable, FrozenSet, Optional

from fastapi import Depends, Request, Response
from starlette.concurrency import run_in_threadpool
from starlette.middleware.base import BaseHTTPMiddleware

from tenantgate.infra.config import config
from tenantgate.infra.errors import (
    InsufficientPermissions,
    InsufficientRole,
    TenancyError,
    Unauthenticated,
    error_response,
)
from tenantgate.models.context import TenantContext

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Identity:
    """The authenticated user of a request and the session it came in on."""
    user_id: int
    session_id: str
    email: Optional[str] = None
    roles: FrozenSet[str] = field(default_factory=frozenset)
    permissions: FrozenSet[str] = field(default_factory=frozenset)

    def has_any_role(self, *roles: str) -> bool:
        return bool(self.roles.intersection(roles))

    def has_permission(self, permission: str) -> bool:
        return permission in self.permissions


# (request, tenant_context) -> Identity or None; runs in the threadpool
Authenticator = Callable[[Request, TenantContext], Optional[Identity]]


class AuthenticationMiddleware(BaseHTTPMiddleware):
    """
    Runs the configured authenticator for tenant-bound requests.

    The resulting identity (or None) is stored on `request.state.identity`.
    Credential checking itself is left to the authenticator.
    """

    def __init__(self, app, authenticator: Optional[Authenticator] = None):
        super().__init__(app)
        self.authenticator = authenticator

    async def dispatch(self, request: Request, call_next):
        request.state.identity = None
        tenant_context = getattr(request.state, "tenant_context", None)

        if tenant_context is not None and self.authenticator is not None:
            try:
                request.state.identity = await run_in_threadpool(
                    self.authenticator, request, tenant_context
                )
            except TenancyError as e:
                return error_response(e)

        return await call_next(request)


def get_identity(request: Request) -> Identity:
    """Dependency: the authenticated identity, or 401 UNAUTHENTICATED."""
    identity = getattr(request.state, "identity", None)
    if identity is None:
        raise Unauthenticated()
    return identity


def require_roles(*roles: str):
    """Dependency factory: the identity must hold at least one of `roles`."""

    def check_roles(identity: Identity = Depends(get_identity)) -> Identity:
        if not identity.has_any_role(*roles):
            logger.info(
                "Role check failed",
                extra={"user_id": identity.user_id, "required_roles": list(roles)},
            )
            raise InsufficientRole(
                "You do not have the required role",
                {"required_roles": list(roles)},
            )
        return identity

    return check_roles


def require_permission(permission: str):
    """Dependency factory: the identity must hold `permission`."""

    def check_permission(identity: Identity = Depends(get_identity)) -> Identity:
        if not identity.has_permission(permission):
            logger.info(
                "Permission check failed",
                extra={"user_id": identity.user_id, "required_permission": permission},
            )
            raise InsufficientPermissions(
                "You do not have permission to perform this action",
                {"required_permission": permission},
            )
        return identity

    return check_permission


def force_logout(request: Request, response: Response) -> Response:
    """Drop the identity of the request and clear the session cookie."""
    request.state.identity = None
    response.delete_cookie(config.SESSION_COOKIE_NAME)
    return response

"""HTTP interceptors: tenant resolution, session timeout and login anomaly detection."""

import json
import logging
from typing import Callable, Iterable, List, Optional

from fastapi import Request, Response
from fastapi.responses import RedirectResponse
from sqlalchemy.exc import SQLAlchemyError
from starlette.concurrency import run_in_threadpool
from starlette.middleware.base import BaseHTTPMiddleware

from tenantgate.api.auth import Identity, force_logout
from tenantgate.infra.config import config
from tenantgate.infra.errors import ConnectionUnavailable, TenancyError, error_response
from tenantgate.infra.metrics import login_anomalies_total, tenant_resolutions_total
from tenantgate.models.context import AnomalyFinding, RequestMeta, TenantContext
from tenantgate.services.anomaly_detector import AnomalyDetector
from tenantgate.services.connection_registry import ConnectionRegistry
from tenantgate.services.session_manager import SessionLifecycleManager
from tenantgate.services.session_timeout import SessionDecision, evaluate_session
from tenantgate.services.tenant_directory import TenantDirectory
from tenantgate.services.tenant_resolver import resolve_tenant, should_skip

logger = logging.getLogger(__name__)

# (tenant_context, identity, findings) -> None
AnomalyNotifier = Callable[[TenantContext, Identity, List[AnomalyFinding]], None]


def expects_json(request: Request) -> bool:
    """Browsers asking for HTML get redirects; every other caller gets JSON."""
    if request.headers.get("x-requested-with") == "XMLHttpRequest":
        return True
    accept = request.headers.get("accept", "")
    if "json" in accept:
        return True
    return "text/html" not in accept


class TenantResolverMiddleware(BaseHTTPMiddleware):
    """Binds every non-skipped request to exactly one tenant."""

    def __init__(
        self,
        app,
        directory: TenantDirectory,
        registry: ConnectionRegistry,
        skip_paths: Optional[Iterable[str]] = None,
        header: Optional[str] = None,
        local_root: Optional[str] = None,
    ):
        super().__init__(app)
        self.directory = directory
        self.registry = registry
        self.skip_paths = list(skip_paths) if skip_paths is not None else config.TENANT_SKIP_PATHS
        self.header = header or config.TENANT_HEADER
        self.local_root = local_root or config.TENANT_LOCAL_ROOT

    async def dispatch(self, request: Request, call_next):
        request.state.tenant_context = None

        if should_skip(request.url.path, self.skip_paths):
            tenant_resolutions_total.labels(status="skipped").inc()
            return await call_next(request)

        try:
            tenant_context = await run_in_threadpool(
                resolve_tenant,
                self.directory,
                self.registry,
                request.headers.get("host"),
                request.headers.get(self.header),
                self.local_root,
            )
        except ConnectionUnavailable as e:
            tenant_resolutions_total.labels(status="unavailable").inc()
            return error_response(e)
        except TenancyError as e:
            return error_response(e)
        except SQLAlchemyError as e:
            tenant_resolutions_total.labels(status="unavailable").inc()
            logger.error("Tenant directory unavailable", extra={"error": str(e)}, exc_info=True)
            return error_response(ConnectionUnavailable("Tenant directory is unavailable"))

        request.state.tenant_context = tenant_context
        return await call_next(request)


class SessionTimeoutMiddleware(BaseHTTPMiddleware):
    """Rejects and logs out sessions idle for longer than the timeout."""

    def __init__(
        self,
        app,
        timeout_minutes: Optional[int] = None,
        enabled: Optional[bool] = None,
    ):
        super().__init__(app)
        self.timeout_minutes = timeout_minutes or config.SESSION_TIMEOUT_MINUTES
        self.enabled = config.session_timeout_enabled if enabled is None else enabled

    async def dispatch(self, request: Request, call_next):
        if not self.enabled:
            return await call_next(request)

        identity = getattr(request.state, "identity", None)
        tenant_context = getattr(request.state, "tenant_context", None)
        manager = SessionLifecycleManager(tenant_context.connection) if tenant_context else None

        try:
            check = await run_in_threadpool(evaluate_session, manager, identity, self.timeout_minutes)
        except TenancyError as e:
            return error_response(e)

        if check.rejected:
            if expects_json(request):
                response = error_response(check.error)
            else:
                response = RedirectResponse(config.LOGIN_URL, status_code=302)
            return force_logout(request, response)

        response = await call_next(request)

        if check.decision is SessionDecision.ACCEPTED and expects_json(request):
            response.headers["X-Session-Timeout"] = str(check.timeout_minutes * 60)
            response.headers["X-Session-Remaining"] = str(check.remaining_seconds)
        return response


class LoginAnomalyMiddleware(BaseHTTPMiddleware):
    """
    Flags successful logins that differ from the user's recent history.

    Runs after the login handler; findings are logged, counted and exposed
    in `X-Login-Anomalies`, never turned into errors.
    """

    def __init__(
        self,
        app,
        notifier: Optional[AnomalyNotifier] = None,
        login_paths: Optional[Iterable[str]] = None,
    ):
        super().__init__(app)
        self.notifier = notifier
        self.login_paths = set(login_paths if login_paths is not None else config.LOGIN_PATHS)

    async def dispatch(self, request: Request, call_next):
        is_login = await self._is_login_request(request)
        response = await call_next(request)

        if not is_login or not 200 <= response.status_code < 300:
            return response

        identity = getattr(request.state, "identity", None)
        tenant_context = getattr(request.state, "tenant_context", None)
        if identity is None or tenant_context is None:
            return response

        meta = RequestMeta.from_request(request)
        try:
            findings = await run_in_threadpool(self._detect, tenant_context, identity, meta)
        except Exception as e:
            logger.error(
                "Login anomaly detection failed",
                extra={"tenant_id": tenant_context.tenant_id, "user_id": identity.user_id, "error": str(e)},
                exc_info=True,
            )
            return response

        if findings:
            self._report(response, tenant_context, identity, meta, findings)
        return response

    async def _is_login_request(self, request: Request) -> bool:
        if request.url.path in self.login_paths:
            return True
        if request.method != "POST" or "json" not in request.headers.get("content-type", ""):
            return False
        try:
            body = json.loads(await request.body() or b"{}")
        except ValueError:
            return False
        return isinstance(body, dict) and "email" in body and "password" in body

    def _detect(
        self,
        tenant_context: TenantContext,
        identity: Identity,
        meta: RequestMeta,
    ) -> List[AnomalyFinding]:
        detector = AnomalyDetector(SessionLifecycleManager(tenant_context.connection))
        findings = detector.detect(identity.user_id, meta, exclude_session_id=identity.session_id)
        if findings and self.notifier is not None:
            self.notifier(tenant_context, identity, findings)
        return findings

    def _report(
        self,
        response: Response,
        tenant_context: TenantContext,
        identity: Identity,
        meta: RequestMeta,
        findings: List[AnomalyFinding],
    ) -> None:
        for finding in findings:
            login_anomalies_total.labels(type=finding.type, severity=finding.severity).inc()

        logger.warning(
            "Login anomalies detected",
            extra={
                "tenant_id": tenant_context.tenant_id,
                "subdomain": tenant_context.tenant.subdomain,
                "user_id": identity.user_id,
                "session_id": identity.session_id,
                "ip": meta.ip_address,
                "user_agent": meta.user_agent,
                "anomalies": [finding.to_dict() for finding in findings],
            },
        )
        response.headers["X-Login-Anomalies"] = ",".join(finding.type for finding in findings)

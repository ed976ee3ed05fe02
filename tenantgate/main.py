"""FastAPI application: multi-tenant request routing with session security."""

from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker
from starlette.exceptions import HTTPException as StarletteHTTPException

from tenantgate.api.auth import AuthenticationMiddleware, Authenticator
from tenantgate.api.interceptors import (
    AnomalyNotifier,
    LoginAnomalyMiddleware,
    SessionTimeoutMiddleware,
    TenantResolverMiddleware,
)
from tenantgate.api.routers import health, sessions
from tenantgate.infra import database
from tenantgate.infra.config import config
from tenantgate.infra.errors import TenancyError, error_response, internal_error_payload
from tenantgate.infra.logging import app_logger
from tenantgate.infra.middleware import RequestIDMiddleware, RequestLoggingMiddleware, setup_cors
from tenantgate.infra.timeout import TimeoutMiddleware
from tenantgate.services.connection_registry import ConnectionRegistry
from tenantgate.services.tenant_directory import TenantDirectory


def create_app(
    directory_engine: Optional[Engine] = None,
    registry: Optional[ConnectionRegistry] = None,
    authenticator: Optional[Authenticator] = None,
    anomaly_notifier: Optional[AnomalyNotifier] = None,
    session_timeout_enabled: Optional[bool] = None,
    session_timeout_minutes: Optional[int] = None,
) -> FastAPI:
    """
    Build the application.

    Middleware runs outermost first: request id, request logging, request
    timeout, tenant resolution, authentication, session timeout, login
    anomaly detection, then the route handler.
    """
    directory_engine = directory_engine or database.engine
    if directory_engine is database.engine:
        session_factory = database.SessionLocal
    else:
        session_factory = sessionmaker(autocommit=False, autoflush=False, bind=directory_engine)
    directory = TenantDirectory(session_factory)
    registry = registry or ConnectionRegistry()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Lifespan context manager for startup and shutdown."""
        app_logger.info("Application starting up", extra={"app_env": config.APP_ENV})
        database.init_directory(directory_engine)

        yield

        app_logger.info("Application shutting down")
        registry.purge_all()
        directory_engine.dispose()

    app = FastAPI(
        title="Tenantgate API",
        description="""
    Tenantgate routes every request to the isolated data store of exactly one
    tenant, addressed by subdomain or by the `X-Tenant-Subdomain` header, and
    guards user sessions with idle timeouts and login anomaly detection.
    """,
        version="1.0.0",
        lifespan=lifespan,
        tags_metadata=[
            {
                "name": "Sessions",
                "description": "List and log out the authenticated user's login sessions",
            },
            {
                "name": "Health",
                "description": "Health check and monitoring endpoints",
            },
        ],
    )
    app.state.directory = directory
    app.state.registry = registry

    def get_directory_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[database.get_db] = get_directory_db

    # Last added runs first
    app.add_middleware(LoginAnomalyMiddleware, notifier=anomaly_notifier)
    app.add_middleware(
        SessionTimeoutMiddleware,
        timeout_minutes=session_timeout_minutes,
        enabled=session_timeout_enabled,
    )
    app.add_middleware(AuthenticationMiddleware, authenticator=authenticator)
    app.add_middleware(TenantResolverMiddleware, directory=directory, registry=registry)
    app.add_middleware(TimeoutMiddleware, timeout=config.REQUEST_TIMEOUT_SECONDS)
    app.add_middleware(RequestLoggingMiddleware)
    app.add_middleware(RequestIDMiddleware)
    setup_cors(app)

    app.include_router(health.router)
    app.include_router(sessions.router)

    @app.exception_handler(TenancyError)
    async def tenancy_exception_handler(request: Request, exc: TenancyError):
        """Render typed errors as the standard error payload."""
        return error_response(exc)

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        """Handle request validation errors."""
        return JSONResponse(
            status_code=422,
            content={
                "success": False,
                "error": {
                    "code": "VALIDATION_ERROR",
                    "message": "Request validation failed",
                    "details": {"errors": jsonable_encoder(exc.errors())},
                },
            },
        )

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        """Handle HTTP exceptions."""
        return JSONResponse(
            status_code=exc.status_code,
            content={"success": False, "error": {"code": "HTTP_ERROR", "message": str(exc.detail)}},
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(Exception)
    async def general_exception_handler(request: Request, exc: Exception):
        """Handle all other exceptions."""
        payload = internal_error_payload()
        app_logger.error(
            f"Unhandled exception: {exc}",
            exc_info=True,
            extra={"error_id": payload["error"]["details"]["error_id"], "path": request.url.path},
        )
        return JSONResponse(status_code=500, content=payload)

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        app,
        host="0.0.0.0",
        port=8000,
        timeout_keep_alive=30,
        timeout_graceful_shutdown=30,
    )

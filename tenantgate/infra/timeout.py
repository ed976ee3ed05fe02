"""Request timeout middleware and connection timeout settings."""

import asyncio
import logging
from typing import Any, Dict
from fastapi import Request
from sqlalchemy.engine import make_url
from starlette.middleware.base import BaseHTTPMiddleware

from tenantgate.infra.errors import RequestTimeout, error_response

logger = logging.getLogger(__name__)


class TimeoutMiddleware(BaseHTTPMiddleware):
    """Middleware to enforce request timeouts."""

    def __init__(self, app, timeout: int = 60):
        """
        Initialize timeout middleware.

        Args:
            app: ASGI application
            timeout: Request timeout in seconds (default: 60)
        """
        super().__init__(app)
        self.timeout = timeout

    async def dispatch(self, request: Request, call_next):
        """Process request with timeout."""
        try:
            return await asyncio.wait_for(call_next(request), timeout=self.timeout)
        except asyncio.TimeoutError:
            logger.error(
                "Request timed out",
                extra={"path": request.url.path, "timeout_seconds": self.timeout},
            )
            return error_response(RequestTimeout(self.timeout))


def connect_args_for(url: str, timeout: int) -> Dict[str, Any]:
    """
    Driver-level connect timeout for a database URL.

    Keeps connection attempts to an unreachable tenant store bounded instead
    of hanging a request worker.
    """
    backend = make_url(url).get_backend_name()
    if backend == "postgresql":
        return {"connect_timeout": timeout}
    if backend == "sqlite":
        return {"timeout": timeout}
    return {}

"""Idle timeout enforcement for authenticated sessions."""

import logging
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional

from tenantgate.infra.errors import SessionExpired, SessionNotFound, TenancyError
from tenantgate.infra.metrics import session_checks_total
from tenantgate.models.tenant import SessionState
from tenantgate.services.session_manager import SessionLifecycleManager

logger = logging.getLogger(__name__)


class SessionDecision(str, Enum):
    PASSED_THROUGH = "passed_through"
    REJECTED_NOT_FOUND = "rejected_not_found"
    REJECTED_EXPIRED = "rejected_expired"
    ACCEPTED = "accepted"


@dataclass
class SessionCheck:
    """Outcome of one timeout check."""
    decision: SessionDecision
    timeout_minutes: int
    idle_minutes: int = 0
    idle_seconds: int = 0
    remaining_seconds: int = 0
    error: Optional[TenancyError] = None

    @property
    def rejected(self) -> bool:
        return self.error is not None


def seconds_remaining(timeout_minutes: int, idle_seconds: int) -> int:
    return max(0, timeout_minutes * 60 - idle_seconds)


def evaluate_session(
    manager: Optional[SessionLifecycleManager],
    identity,
    timeout_minutes: int,
    now: Optional[datetime] = None,
) -> SessionCheck:
    """
    Decide whether an authenticated request may proceed.

    A session idle for more than `timeout_minutes` whole minutes is logged
    out and rejected; an accepted session has its activity refreshed.
    Requests without an identity or without a tenant store pass through.
    """
    if identity is None or manager is None:
        session_checks_total.labels(outcome=SessionDecision.PASSED_THROUGH.value).inc()
        return SessionCheck(SessionDecision.PASSED_THROUGH, timeout_minutes)

    session = manager.get_session(identity.session_id)
    if session is None or session.user_id != identity.user_id or session.state is SessionState.LOGGED_OUT:
        session_checks_total.labels(outcome=SessionDecision.REJECTED_NOT_FOUND.value).inc()
        logger.info(
            "Session not found",
            extra={"user_id": identity.user_id, "session_id": identity.session_id},
        )
        return SessionCheck(
            SessionDecision.REJECTED_NOT_FOUND,
            timeout_minutes,
            error=SessionNotFound(),
        )

    now = now or manager.clock()
    idle_seconds = max(0, int((now - session.last_activity).total_seconds()))
    idle_minutes = idle_seconds // 60

    if idle_minutes > timeout_minutes:
        manager.logout_session(identity.user_id, identity.session_id)
        session_checks_total.labels(outcome=SessionDecision.REJECTED_EXPIRED.value).inc()
        logger.info(
            "Session expired due to inactivity",
            extra={
                "user_id": identity.user_id,
                "session_id": identity.session_id,
                "idle_minutes": idle_minutes,
                "timeout_minutes": timeout_minutes,
            },
        )
        return SessionCheck(
            SessionDecision.REJECTED_EXPIRED,
            timeout_minutes,
            idle_minutes=idle_minutes,
            idle_seconds=idle_seconds,
            error=SessionExpired(idle_minutes, timeout_minutes),
        )

    manager.update_activity(identity.session_id)
    session_checks_total.labels(outcome=SessionDecision.ACCEPTED.value).inc()
    return SessionCheck(
        SessionDecision.ACCEPTED,
        timeout_minutes,
        idle_minutes=idle_minutes,
        idle_seconds=idle_seconds,
        remaining_seconds=seconds_remaining(timeout_minutes, idle_seconds),
    )

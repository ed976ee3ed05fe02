"""Lifecycle of user login sessions inside one tenant store."""

import logging
from datetime import datetime, timedelta
from typing import Callable, Dict, List, Optional

from sqlalchemy import select, update

from tenantgate.infra.errors import TenancyError
from tenantgate.infra.metrics import sessions_cleaned_total
from tenantgate.models.context import ConnectionHandle, RequestMeta, utcnow
from tenantgate.models.tenant import User, UserSession
from tenantgate.services.geolocation import lookup_location
from tenantgate.services.user_agent import parse_user_agent

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_MINUTES = 120


class SessionLifecycleManager:
    """
    Creates, lists, refreshes and logs out sessions of one tenant store.

    Sessions are never physically deleted: logging out stamps `logged_out_at`
    and clears `is_current`. At most one session per user is current, and it
    is always the most recently created one.
    """

    def __init__(
        self,
        connection: ConnectionHandle,
        locate: Callable[[str], Optional[dict]] = lookup_location,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.connection = connection
        self.locate = locate
        self.clock = clock

    def create_session(self, user_id: int, meta: RequestMeta, session_id: str) -> UserSession:
        """
        Record a new login for `user_id` and make it the current session.

        Demoting the previous current session and inserting the new one happen
        in one transaction, serialised per user by a row lock on `users`.
        """
        device = parse_user_agent(meta.user_agent)
        location = self.locate(meta.ip_address)
        now = self.clock()

        with self.connection.session() as db:
            user = db.execute(
                select(User).where(User.id == user_id).with_for_update()
            ).scalar_one_or_none()
            if user is None:
                raise ValueError(f"User {user_id} does not exist in this tenant")

            db.execute(
                update(UserSession)
                .where(UserSession.user_id == user_id, UserSession.is_current.is_(True))
                .values(is_current=False, updated_at=now)
            )

            record = UserSession(
                user_id=user_id,
                session_id=session_id,
                ip_address=meta.ip_address,
                user_agent=meta.user_agent or "",
                device_type=device.device_type,
                device_name=device.device_name,
                browser=device.browser,
                platform=device.platform,
                location=location,
                is_current=True,
                last_activity=now,
                created_at=now,
                updated_at=now,
            )
            db.add(record)

            user.last_login_at = now
            user.last_login_ip = meta.ip_address
            db.flush()

        logger.info(
            "Session created",
            extra={
                "tenant_id": self.connection.tenant_id,
                "user_id": user_id,
                "session_id": session_id,
                "ip": meta.ip_address,
                "device_type": device.device_type,
            },
        )
        return record

    def update_activity(self, session_id: str) -> bool:
        with self.connection.session() as db:
            result = db.execute(
                update(UserSession)
                .where(UserSession.session_id == session_id, UserSession.logged_out_at.is_(None))
                .values(last_activity=self.clock())
            )
            return result.rowcount > 0

    def get_session(self, session_id: str) -> Optional[UserSession]:
        """Return a session row whatever its state."""
        with self.connection.session() as db:
            return db.execute(
                select(UserSession).where(UserSession.session_id == session_id)
            ).scalar_one_or_none()

    def get_active_sessions(self, user_id: int) -> List[UserSession]:
        """Sessions not logged out, most recently active first."""
        with self.connection.session() as db:
            return list(
                db.execute(
                    select(UserSession)
                    .where(UserSession.user_id == user_id, UserSession.logged_out_at.is_(None))
                    .order_by(UserSession.last_activity.desc(), UserSession.id.desc())
                ).scalars().all()
            )

    def find_active_session(self, user_id: int, session_id: str) -> Optional[UserSession]:
        with self.connection.session() as db:
            return db.execute(
                select(UserSession).where(
                    UserSession.user_id == user_id,
                    UserSession.session_id == session_id,
                    UserSession.logged_out_at.is_(None),
                )
            ).scalar_one_or_none()

    def logout_session(self, user_id: int, session_id: str) -> bool:
        """Log out one session. False when it was not active."""
        count = self._logout(
            UserSession.user_id == user_id,
            UserSession.session_id == session_id,
        )
        if count:
            logger.info(
                "Session logged out",
                extra={"tenant_id": self.connection.tenant_id, "user_id": user_id, "session_id": session_id},
            )
        return count > 0

    def logout_other_sessions(self, user_id: int, keep_session_id: str) -> int:
        """Log out every active session of the user except `keep_session_id`."""
        count = self._logout(
            UserSession.user_id == user_id,
            UserSession.session_id != keep_session_id,
        )
        logger.info(
            "Other sessions logged out",
            extra={"tenant_id": self.connection.tenant_id, "user_id": user_id, "count": count},
        )
        return count

    def logout_all_sessions(self, user_id: int) -> int:
        count = self._logout(UserSession.user_id == user_id)
        logger.info(
            "All sessions logged out",
            extra={"tenant_id": self.connection.tenant_id, "user_id": user_id, "count": count},
        )
        return count

    def cleanup_expired_sessions(self, timeout_minutes: int = DEFAULT_TIMEOUT_MINUTES) -> int:
        """Log out every session idle for longer than `timeout_minutes`."""
        cutoff = self.clock() - timedelta(minutes=timeout_minutes)
        count = self._logout(UserSession.last_activity < cutoff)
        if count:
            sessions_cleaned_total.inc(count)
            logger.info(
                "Expired sessions cleaned up",
                extra={"tenant_id": self.connection.tenant_id, "count": count},
            )
        return count

    def recent_sessions(
        self,
        user_id: int,
        since: datetime,
        exclude_session_id: Optional[str] = None,
    ) -> List[UserSession]:
        """Sessions of the user created at or after `since`, newest first."""
        query = select(UserSession).where(
            UserSession.user_id == user_id,
            UserSession.created_at >= since,
        )
        if exclude_session_id:
            query = query.where(UserSession.session_id != exclude_session_id)

        with self.connection.session() as db:
            return list(
                db.execute(
                    query.order_by(UserSession.created_at.desc(), UserSession.id.desc())
                ).scalars().all()
            )

    def _logout(self, *criteria) -> int:
        now = self.clock()
        with self.connection.session() as db:
            result = db.execute(
                update(UserSession)
                .where(UserSession.logged_out_at.is_(None), *criteria)
                .values(logged_out_at=now, is_current=False, updated_at=now)
                .execution_options(synchronize_session=False)
            )
            return result.rowcount


def cleanup_all_tenants(directory, registry, timeout_minutes: int = DEFAULT_TIMEOUT_MINUTES) -> Dict[str, Optional[int]]:
    """
    Run expired session cleanup against every active tenant.

    Returns the number of sessions logged out per subdomain; a tenant whose
    store could not be reached maps to None and does not stop the sweep.
    """
    results: Dict[str, Optional[int]] = {}
    for tenant in directory.list_active():
        try:
            manager = SessionLifecycleManager(registry.get(tenant))
            results[tenant.subdomain] = manager.cleanup_expired_sessions(timeout_minutes)
        except TenancyError as e:
            logger.error(
                "Session cleanup failed for tenant",
                extra={"tenant_id": tenant.id, "subdomain": tenant.subdomain, "error": e.message},
            )
            results[tenant.subdomain] = None
    return results

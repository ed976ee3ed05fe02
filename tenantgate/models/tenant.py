"""Schema of a tenant's isolated store: users and their login sessions."""

from enum import Enum

from sqlalchemy import (
    Boolean, Column, DateTime, ForeignKey, Index, Integer, JSON, String, Text
)
from sqlalchemy.orm import declarative_base, relationship

from tenantgate.models.context import utcnow

TenantBase = declarative_base()


class SessionState(str, Enum):
    """Lifecycle state of a UserSession, derived from (logged_out_at, is_current)."""
    CURRENT = "current"
    ACTIVE = "active"
    LOGGED_OUT = "logged_out"


class User(TenantBase):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(255), nullable=False)
    email = Column(String(255), unique=True, nullable=False)
    is_active = Column(Boolean, nullable=False, default=True)
    last_login_at = Column(DateTime, nullable=True)
    last_login_ip = Column(String(45), nullable=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)

    sessions = relationship("UserSession", back_populates="user")


class UserSession(TenantBase):
    __tablename__ = "user_sessions"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    session_id = Column(String(255), unique=True, nullable=False)
    ip_address = Column(String(45), nullable=False)
    user_agent = Column(Text, nullable=False, default="")
    device_type = Column(String(20), nullable=True)
    device_name = Column(String(255), nullable=True)
    browser = Column(String(255), nullable=True)
    platform = Column(String(255), nullable=True)
    location = Column(JSON, nullable=True)
    is_current = Column(Boolean, nullable=False, default=False)
    last_activity = Column(DateTime, nullable=False, default=utcnow)
    logged_out_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    user = relationship("User", back_populates="sessions")

    __table_args__ = (
        Index("ix_user_sessions_user_session", "user_id", "session_id"),
        Index("ix_user_sessions_user_current", "user_id", "is_current"),
    )

    @property
    def state(self) -> SessionState:
        if self.logged_out_at is not None:
            return SessionState.LOGGED_OUT
        if self.is_current:
            return SessionState.CURRENT
        return SessionState.ACTIVE

    @property
    def is_active(self) -> bool:
        return self.state is not SessionState.LOGGED_OUT

    @property
    def device_info(self) -> str:
        parts = [part for part in (self.device_name, self.browser, self.platform) if part]
        return " - ".join(parts) or "Unknown Device"

    @property
    def location_string(self) -> str:
        if not self.location:
            return "Unknown Location"
        parts = [part for part in (self.location.get("city"), self.location.get("country")) if part]
        return ", ".join(parts) or "Unknown Location"

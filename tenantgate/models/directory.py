"""Tenant directory schema (shared store, one row per tenant)."""

from sqlalchemy import Column, DateTime, Index, Integer, JSON, String
from sqlalchemy.orm import declarative_base

from tenantgate.models.context import utcnow

DirectoryBase = declarative_base()

TENANT_STATUSES = ("active", "inactive", "suspended")


class Tenant(DirectoryBase):
    __tablename__ = "tenants"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(255), nullable=False)
    subdomain = Column(String(63), unique=True, nullable=False)
    database_name = Column(String(128), unique=True, nullable=False)
    status = Column(String(20), nullable=False, default="active")  # active | inactive | suspended
    subscription_plan = Column(String(64), nullable=True)
    settings = Column(JSON, nullable=True)
    last_accessed_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    __table_args__ = (
        Index("ix_tenants_subdomain_status", "subdomain", "status"),
    )

    def __repr__(self) -> str:
        return f"<Tenant {self.subdomain} ({self.status})>"

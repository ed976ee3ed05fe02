"""Administrative provisioning of tenant stores: create, drop, migrate."""

import logging
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from alembic import command
from alembic.config import Config as AlembicConfig
from alembic.util.exc import CommandError
from sqlalchemy import create_engine, text
from sqlalchemy.engine import make_url
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.pool import NullPool

from tenantgate.infra.config import config
from tenantgate.infra.errors import TenancyError
from tenantgate.infra.metrics import provisioning_operations_total
from tenantgate.infra.timeout import connect_args_for
from tenantgate.models.context import TenantRecord
from tenantgate.services.connection_registry import ConnectionRegistry, build_tenant_url

logger = logging.getLogger(__name__)

MIGRATIONS_DIR = Path(__file__).resolve().parent.parent / "migrations" / "tenant"

DATABASE_NAME_PATTERN = re.compile(r"^[a-z0-9_]{1,63}$")

RESERVED_SUBDOMAINS = {"www", "api", "admin", "app", "mail", "ftp", "localhost", "staging", "test"}


def validate_subdomain(subdomain: str) -> bool:
    """
    Check that a subdomain can be used as a tenant routing key.

    Lowercase letters, digits and hyphens only, 3-63 characters, no leading
    or trailing hyphen, and not one of the reserved names.
    """
    if not re.match(r"^[a-z0-9-]+$", subdomain or ""):
        return False
    if len(subdomain) < 3 or len(subdomain) > 63:
        return False
    if subdomain.startswith("-") or subdomain.endswith("-"):
        return False
    return subdomain not in RESERVED_SUBDOMAINS


@dataclass
class ProvisioningResult:
    """Outcome of one provisioning operation, detailed enough to retry."""
    operation: str  # "create_store" | "drop_store" | "migrate"
    database_name: str
    success: bool
    already_existed: bool = False
    detail: str = ""


class TenantProvisioner:
    """
    Creates, drops and migrates isolated tenant stores.

    Every operation touches only the store named by the given tenant record
    and reports failures through ProvisioningResult instead of raising.
    """

    def __init__(
        self,
        registry: ConnectionRegistry,
        admin_url: Optional[str] = None,
        timeout_seconds: Optional[int] = None,
    ):
        self.registry = registry
        self.admin_url = admin_url or config.TENANT_ADMIN_DATABASE_URL
        self.timeout_seconds = timeout_seconds or config.PROVISIONING_TIMEOUT_SECONDS

    # ------------------------------------------------------------------
    # Public operations
    # ------------------------------------------------------------------

    def create_store(self, tenant: TenantRecord) -> ProvisioningResult:
        """Create the tenant store if it does not exist yet."""
        logger.info("Provisioning store", extra={"tenant_id": tenant.id, "database": tenant.database_name})
        try:
            self._check_database_name(tenant.database_name)
            if self._backend(tenant) == "sqlite":
                already_existed = self._create_sqlite(tenant)
            else:
                already_existed = self._create_postgres(tenant)
        except (SQLAlchemyError, OSError, ValueError) as e:
            return self._failed("create_store", tenant, e)

        if already_existed:
            logger.info("Tenant store already exists", extra={"database": tenant.database_name})
        return self._succeeded(
            ProvisioningResult("create_store", tenant.database_name, True, already_existed=already_existed)
        )

    def drop_store(self, tenant: TenantRecord) -> ProvisioningResult:
        """Drop the tenant store if present. Destructive."""
        # No pooled connection may outlive the store
        self.registry.purge(tenant.id)
        try:
            self._check_database_name(tenant.database_name)
            if self._backend(tenant) == "sqlite":
                existed = self._drop_sqlite(tenant)
            else:
                existed = self._drop_postgres(tenant)
        except (SQLAlchemyError, OSError, ValueError) as e:
            return self._failed("drop_store", tenant, e)

        logger.warning("Tenant store dropped", extra={"tenant_id": tenant.id, "database": tenant.database_name})
        return self._succeeded(
            ProvisioningResult("drop_store", tenant.database_name, True, already_existed=existed)
        )

    def migrate(self, tenant: TenantRecord, fresh: bool = False) -> ProvisioningResult:
        """
        Apply every tenant schema migration to the tenant store.

        Already-applied revisions are skipped, so re-running is a no-op.
        With `fresh`, the schema is downgraded to base before upgrading.
        """
        try:
            handle = self.registry.get(tenant)
            alembic_cfg = AlembicConfig()
            alembic_cfg.set_main_option("script_location", str(MIGRATIONS_DIR))
            alembic_cfg.set_main_option("sqlalchemy.url", handle.url.replace("%", "%%"))

            with handle.engine.begin() as connection:
                alembic_cfg.attributes["connection"] = connection
                if fresh:
                    command.downgrade(alembic_cfg, "base")
                command.upgrade(alembic_cfg, "head")
        except (SQLAlchemyError, CommandError, OSError, TenancyError) as e:
            return self._failed("migrate", tenant, e)

        logger.info("Tenant store migrated", extra={"tenant_id": tenant.id, "fresh": fresh})
        return self._succeeded(ProvisioningResult("migrate", tenant.database_name, True))

    def store_exists(self, tenant: TenantRecord) -> bool:
        """Verify, by asking the server, that the tenant store exists."""
        if self._backend(tenant) == "sqlite":
            return self._sqlite_path(tenant).exists()

        admin_engine = self._admin_engine()
        try:
            with admin_engine.connect() as conn:
                return bool(conn.execute(
                    text("SELECT 1 FROM pg_database WHERE datname = :db"),
                    {"db": tenant.database_name},
                ).scalar())
        finally:
            admin_engine.dispose()

    # ------------------------------------------------------------------
    # Backends
    # ------------------------------------------------------------------

    def _backend(self, tenant: TenantRecord) -> str:
        url = build_tenant_url(tenant.database_name, self.registry.url_template)
        return make_url(url).get_backend_name()

    def _sqlite_path(self, tenant: TenantRecord) -> Path:
        url = build_tenant_url(tenant.database_name, self.registry.url_template)
        return Path(make_url(url).database)

    def _admin_engine(self):
        return create_engine(
            self.admin_url,
            isolation_level="AUTOCOMMIT",
            poolclass=NullPool,
            connect_args=connect_args_for(self.admin_url, config.CONNECTION_TIMEOUT_SECONDS),
        )

    def _create_postgres(self, tenant: TenantRecord) -> bool:
        admin_engine = self._admin_engine()
        try:
            with admin_engine.connect() as conn:
                conn.execute(text(f"SET statement_timeout = {int(self.timeout_seconds) * 1000}"))
                exists = conn.execute(
                    text("SELECT 1 FROM pg_database WHERE datname = :db"),
                    {"db": tenant.database_name},
                ).scalar()
                if exists:
                    return True
                conn.execute(text(f'CREATE DATABASE "{tenant.database_name}"'))
                return False
        finally:
            admin_engine.dispose()

    def _drop_postgres(self, tenant: TenantRecord) -> bool:
        admin_engine = self._admin_engine()
        try:
            with admin_engine.connect() as conn:
                conn.execute(text(f"SET statement_timeout = {int(self.timeout_seconds) * 1000}"))
                exists = conn.execute(
                    text("SELECT 1 FROM pg_database WHERE datname = :db"),
                    {"db": tenant.database_name},
                ).scalar()
                # Close sessions still attached to the store
                conn.execute(
                    text("""
                        SELECT pg_terminate_backend(pid)
                        FROM pg_stat_activity
                        WHERE datname = :db
                          AND pid <> pg_backend_pid()
                    """),
                    {"db": tenant.database_name},
                )
                conn.execute(text(f'DROP DATABASE IF EXISTS "{tenant.database_name}"'))
                return bool(exists)
        finally:
            admin_engine.dispose()

    def _create_sqlite(self, tenant: TenantRecord) -> bool:
        path = self._sqlite_path(tenant)
        if path.exists():
            return True
        path.parent.mkdir(parents=True, exist_ok=True)
        # An empty file is a valid, empty SQLite database
        path.touch()
        return False

    def _drop_sqlite(self, tenant: TenantRecord) -> bool:
        path = self._sqlite_path(tenant)
        if not path.exists():
            return False
        path.unlink()
        return True

    # ------------------------------------------------------------------
    # Reporting
    # ------------------------------------------------------------------

    @staticmethod
    def _check_database_name(database_name: str) -> None:
        if not DATABASE_NAME_PATTERN.match(database_name):
            raise ValueError(f"Unsafe tenant database name: {database_name!r}")

    @staticmethod
    def _succeeded(result: ProvisioningResult) -> ProvisioningResult:
        provisioning_operations_total.labels(operation=result.operation, status="success").inc()
        return result

    @staticmethod
    def _failed(operation: str, tenant: TenantRecord, error: Exception) -> ProvisioningResult:
        provisioning_operations_total.labels(operation=operation, status="failure").inc()
        logger.error(
            "Provisioning operation failed",
            extra={
                "operation": operation,
                "tenant_id": tenant.id,
                "database": tenant.database_name,
                "error": str(error),
            },
            exc_info=True,
        )
        return ProvisioningResult(operation, tenant.database_name, False, detail=str(error))

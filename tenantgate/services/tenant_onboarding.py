"""Administrative tenant flows: onboarding, removal, status changes, migrations."""

import logging
import uuid
from typing import Any, Dict, List, Optional

from sqlalchemy.exc import SQLAlchemyError

from tenantgate.infra.errors import ProvisioningError, TenantNotFound
from tenantgate.models.context import TenantRecord
from tenantgate.models.directory import TENANT_STATUSES
from tenantgate.services.tenant_directory import TenantDirectory
from tenantgate.services.tenant_provisioner import (
    ProvisioningResult,
    TenantProvisioner,
    validate_subdomain,
)

logger = logging.getLogger(__name__)


def new_database_name() -> str:
    return f"tenant_{uuid.uuid4().hex[:13]}"


class TenantOnboarding:
    """
    Coordinates the tenant directory and the provisioner.

    The directory only ever shows a tenant with its desired status once its
    store has been created, migrated and verified.
    """

    def __init__(self, directory: TenantDirectory, provisioner: TenantProvisioner):
        self.directory = directory
        self.provisioner = provisioner

    def create_tenant(
        self,
        name: str,
        subdomain: str,
        status: str = "active",
        plan: Optional[str] = None,
        settings: Optional[Dict[str, Any]] = None,
    ) -> TenantRecord:
        """
        Register a tenant and provision its store.

        Raises:
            ValueError: invalid subdomain or status, or subdomain taken
            ProvisioningError: a provisioning step failed; nothing is left behind
        """
        subdomain = (subdomain or "").strip().lower()
        if not validate_subdomain(subdomain):
            raise ValueError(f"Invalid subdomain: {subdomain!r}")
        if status not in TENANT_STATUSES:
            raise ValueError(f"Invalid tenant status: {status}")
        if self.directory.subdomain_exists(subdomain):
            raise ValueError(f"Subdomain already taken: {subdomain}")

        tenant = self.directory.add(
            name=name,
            subdomain=subdomain,
            database_name=new_database_name(),
            status="inactive",
            subscription_plan=plan,
            settings=settings,
        )

        result = self.provisioner.create_store(tenant)
        if result.success:
            result = self.provisioner.migrate(tenant)
        if result.success:
            result = self._verify(tenant)

        if not result.success:
            self._roll_back(tenant)
            raise ProvisioningError(result.operation, subdomain, result.detail)

        if status != "inactive":
            self.directory.set_status(tenant.id, status)

        logger.info(
            "Tenant onboarded",
            extra={"tenant_id": tenant.id, "subdomain": subdomain, "database": tenant.database_name},
        )
        return self.directory.get(tenant.id)

    def delete_tenant(self, subdomain: str) -> None:
        """Drop the tenant store and remove the tenant row. Destructive."""
        tenant = self._require(subdomain)
        result = self.provisioner.drop_store(tenant)
        if not result.success:
            raise ProvisioningError(result.operation, subdomain, result.detail)
        self.directory.delete(tenant.id)
        logger.warning("Tenant deleted", extra={"tenant_id": tenant.id, "subdomain": subdomain})

    def set_tenant_status(self, subdomain: str, status: str) -> TenantRecord:
        tenant = self._require(subdomain)
        self.directory.set_status(tenant.id, status)
        # Next request re-resolves and rebuilds the handle if still active
        self.provisioner.registry.purge(tenant.id)
        return self.directory.get(tenant.id)

    def migrate_tenants(
        self,
        subdomain: Optional[str] = None,
        fresh: bool = False,
    ) -> Dict[str, ProvisioningResult]:
        """Migrate one tenant, or every active tenant when no subdomain is given."""
        tenants: List[TenantRecord]
        if subdomain:
            tenants = [self._require(subdomain)]
        else:
            tenants = self.directory.list_active()

        results: Dict[str, ProvisioningResult] = {}
        for tenant in tenants:
            results[tenant.subdomain] = self.provisioner.migrate(tenant, fresh=fresh)

        failed = [key for key, result in results.items() if not result.success]
        logger.info(
            "Tenant migrations finished",
            extra={"total": len(results), "failed": len(failed), "failed_tenants": failed},
        )
        return results

    def _require(self, subdomain: str) -> TenantRecord:
        tenant = self.directory.get_by_subdomain(subdomain)
        if tenant is None:
            raise TenantNotFound(f"Tenant not found: {subdomain}", {"subdomain": subdomain})
        return tenant

    def _verify(self, tenant: TenantRecord) -> ProvisioningResult:
        try:
            exists = self.provisioner.store_exists(tenant)
        except SQLAlchemyError as e:
            return ProvisioningResult("verify", tenant.database_name, False, detail=str(e))
        if not exists:
            return ProvisioningResult("verify", tenant.database_name, False, detail="store not found")
        return ProvisioningResult("verify", tenant.database_name, True)

    def _roll_back(self, tenant: TenantRecord) -> None:
        drop = self.provisioner.drop_store(tenant)
        if not drop.success:
            logger.error(
                "Could not drop store of failed tenant",
                extra={"tenant_id": tenant.id, "database": tenant.database_name, "detail": drop.detail},
            )
        self.directory.delete(tenant.id)

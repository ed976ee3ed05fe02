"""Tests for tenant store provisioning and the onboarding flows."""

from unittest.mock import patch

import pytest
from alembic.util.exc import CommandError
from sqlalchemy import inspect

from tenantgate.infra.errors import ProvisioningError, TenantNotFound
from tenantgate.services.tenant_onboarding import TenantOnboarding
from tenantgate.services.tenant_provisioner import ProvisioningResult, validate_subdomain


@pytest.fixture
def onboarding(directory, provisioner):
    return TenantOnboarding(directory, provisioner)


class TestValidateSubdomain:
    @pytest.mark.parametrize("subdomain", ["acme", "acme-corp", "a1b2", "x" * 63])
    def test_valid(self, subdomain):
        assert validate_subdomain(subdomain) is True

    @pytest.mark.parametrize("subdomain", [
        "ab", "x" * 64, "-acme", "acme-", "Acme", "ac_me", "ac.me", "", "www", "admin", "localhost",
    ])
    def test_invalid(self, subdomain):
        assert validate_subdomain(subdomain) is False


class TestTenantProvisioner:

    def test_create_store_is_idempotent(self, directory, provisioner, tmp_path):
        tenant = directory.add("Acme", "acme", "tenant_acme")

        first = provisioner.create_store(tenant)
        second = provisioner.create_store(tenant)

        assert first.success and not first.already_existed
        assert second.success and second.already_existed
        assert (tmp_path / "tenant_acme.db").exists()

    def test_migrate_creates_schema_and_reruns_cleanly(self, directory, provisioner, registry):
        tenant = directory.add("Acme", "acme", "tenant_acme")
        provisioner.create_store(tenant)

        assert provisioner.migrate(tenant).success
        assert provisioner.migrate(tenant).success

        tables = set(inspect(registry.get(tenant).engine).get_table_names())
        assert {"users", "user_sessions", "alembic_version"} <= tables

    def test_fresh_migrate_rebuilds_schema(self, tenant, handle, provisioner, make_user):
        make_user()
        assert provisioner.migrate(tenant, fresh=True).success

        with handle.engine.connect() as conn:
            count = conn.exec_driver_sql("SELECT COUNT(*) FROM users").scalar()
        assert count == 0

    def test_drop_store_removes_store_and_handle(self, tenant, registry, provisioner, tmp_path):
        registry.get(tenant)

        result = provisioner.drop_store(tenant)

        assert result.success and result.already_existed
        assert not (tmp_path / f"{tenant.database_name}.db").exists()
        assert registry.is_cached(tenant.id) is False

    def test_unsafe_database_name_is_reported_not_raised(self, directory, provisioner):
        tenant = directory.add("Bad", "bad-name", "tenant-bad; DROP")
        result = provisioner.create_store(tenant)

        assert result.success is False
        assert "Unsafe tenant database name" in result.detail

    def test_migration_failure_is_reported(self, tenant, provisioner):
        with patch("tenantgate.services.tenant_provisioner.command.upgrade", side_effect=CommandError("boom")):
            result = provisioner.migrate(tenant)

        assert result.success is False
        assert result.operation == "migrate"
        assert result.detail == "boom"

    def test_store_exists(self, directory, provisioner):
        tenant = directory.add("Acme", "acme", "tenant_acme")
        assert provisioner.store_exists(tenant) is False
        provisioner.create_store(tenant)
        assert provisioner.store_exists(tenant) is True


class TestTenantOnboarding:

    def test_create_tenant(self, onboarding, provisioner, registry):
        tenant = onboarding.create_tenant("Acme Corp", "acme", plan="pro", settings={"locale": "fa"})

        assert tenant.status == "active"
        assert tenant.subscription_plan == "pro"
        assert tenant.settings == {"locale": "fa"}
        assert tenant.database_name.startswith("tenant_")
        assert len(tenant.database_name) == len("tenant_") + 13
        assert provisioner.store_exists(tenant)
        assert "users" in inspect(registry.get(tenant).engine).get_table_names()

    def test_create_tenant_with_requested_status(self, onboarding):
        tenant = onboarding.create_tenant("Acme", "acme", status="suspended")
        assert tenant.status == "suspended"

    def test_duplicate_subdomain_rejected(self, onboarding):
        onboarding.create_tenant("Acme", "acme")
        with pytest.raises(ValueError, match="already taken"):
            onboarding.create_tenant("Acme Again", "acme")

    @pytest.mark.parametrize("subdomain", ["ab", "www", "bad_name"])
    def test_invalid_subdomain_rejected(self, onboarding, directory, subdomain):
        with pytest.raises(ValueError, match="Invalid subdomain"):
            onboarding.create_tenant("Bad", subdomain)
        assert directory.list_active() == []

    def test_failed_provisioning_leaves_nothing_behind(self, onboarding, provisioner, directory, tmp_path):
        failure = ProvisioningResult("migrate", "whatever", False, detail="schema error")
        with patch.object(provisioner, "migrate", return_value=failure):
            with pytest.raises(ProvisioningError) as exc_info:
                onboarding.create_tenant("Acme", "acme")

        assert exc_info.value.step == "migrate"
        assert exc_info.value.details["detail"] == "schema error"
        assert directory.get_by_subdomain("acme") is None
        assert list(tmp_path.glob("tenant_*.db")) == []

    def test_set_tenant_status_purges_cached_handle(self, onboarding, registry):
        tenant = onboarding.create_tenant("Acme", "acme")
        registry.get(tenant)

        updated = onboarding.set_tenant_status("acme", "suspended")

        assert updated.status == "suspended"
        assert registry.is_cached(tenant.id) is False

    def test_delete_tenant(self, onboarding, directory, provisioner):
        tenant = onboarding.create_tenant("Acme", "acme")
        onboarding.delete_tenant("acme")

        assert directory.get_by_subdomain("acme") is None
        assert provisioner.store_exists(tenant) is False

    def test_unknown_tenant(self, onboarding):
        with pytest.raises(TenantNotFound):
            onboarding.delete_tenant("ghost")

    def test_migrate_tenants(self, onboarding):
        onboarding.create_tenant("Acme", "acme")
        onboarding.create_tenant("Beta", "beta")
        onboarding.create_tenant("Gamma", "gamma", status="inactive")

        results = onboarding.migrate_tenants()
        assert set(results) == {"acme", "beta"}
        assert all(result.success for result in results.values())

        single = onboarding.migrate_tenants(subdomain="gamma", fresh=True)
        assert list(single) == ["gamma"]
        assert single["gamma"].success

"""Tests for routing key extraction and tenant resolution."""

from unittest.mock import patch

import pytest
from sqlalchemy.exc import SQLAlchemyError

from tenantgate.infra.errors import TenantNotFound
from tenantgate.services.tenant_resolver import extract_tenant_key, resolve_tenant, should_skip


class TestExtractTenantKey:
    """Key derivation from host and override header."""

    @pytest.mark.parametrize("host,expected", [
        ("acme.app.example", "acme"),
        ("acme.app.example:8443", "acme"),
        ("ACME.App.Example", "acme"),
        ("beta.eu.app.example.com", "beta"),
        ("acme.localhost", "acme"),
        ("acme.localhost:3000", "acme"),
    ])
    def test_host_yields_first_label(self, host, expected):
        assert extract_tenant_key(host) == expected

    @pytest.mark.parametrize("host", [
        "example",
        "example.com",
        "localhost",
        "localhost:8000",
        "",
        None,
    ])
    def test_host_without_key(self, host):
        assert extract_tenant_key(host) is None

    def test_local_root_is_configurable(self):
        assert extract_tenant_key("acme.test", local_root="test") == "acme"
        assert extract_tenant_key("acme.test") is None

    @pytest.mark.parametrize("host", [
        "acme.app.example",
        "example",
        "acme.localhost",
        "",
        None,
    ])
    def test_override_header_always_wins(self, host):
        assert extract_tenant_key(host, override="beta") == "beta"

    def test_blank_override_is_ignored(self):
        assert extract_tenant_key("acme.app.example", override="  ") == "acme"


class TestShouldSkip:
    @pytest.mark.parametrize("path", ["/health", "/health/ready", "/status", "/metrics", "/admin/tenants"])
    def test_default_skip_paths(self, path):
        assert should_skip(path) is True

    @pytest.mark.parametrize("path", ["/api/sessions", "/healthz", "/", "/login"])
    def test_tenant_paths(self, path):
        assert should_skip(path) is False

    def test_custom_patterns(self):
        assert should_skip("/docs", ["docs", "openapi.json"]) is True
        assert should_skip("/health", ["docs"]) is False


class TestResolveTenant:
    """Resolution against a real directory and registry."""

    def test_resolves_active_tenant_from_host(self, directory, registry, make_tenant):
        acme = make_tenant("acme")
        context = resolve_tenant(directory, registry, "acme.app.example")

        assert context.tenant.id == acme.id
        assert context.tenant_id == acme.id
        assert context.connection is registry.get(acme)

    def test_override_header_selects_other_tenant(self, directory, registry, make_tenant):
        make_tenant("acme")
        beta = make_tenant("beta")

        context = resolve_tenant(directory, registry, "acme.app.example", override="beta")
        assert context.tenant.subdomain == "beta"
        assert context.connection.database_name == beta.database_name

    def test_no_key_raises_not_found(self, directory, registry):
        with pytest.raises(TenantNotFound) as exc_info:
            resolve_tenant(directory, registry, "example")
        assert exc_info.value.message == "No valid subdomain provided"
        assert exc_info.value.status_code == 404

    def test_unknown_tenant_raises_not_found(self, directory, registry):
        with pytest.raises(TenantNotFound) as exc_info:
            resolve_tenant(directory, registry, "ghost.app.example")
        assert exc_info.value.message == "Invalid subdomain or inactive tenant"

    def test_inactive_tenant_raises_not_found(self, directory, registry, make_tenant):
        make_tenant("sleepy", status="suspended")
        with pytest.raises(TenantNotFound):
            resolve_tenant(directory, registry, "sleepy.app.example")

    def test_records_last_access(self, directory, registry, make_tenant):
        acme = make_tenant("acme")
        assert directory.get(acme.id).last_accessed_at is None

        resolve_tenant(directory, registry, "acme.app.example")
        assert directory.get(acme.id).last_accessed_at is not None

    def test_last_access_failure_does_not_fail_resolution(self, directory, registry, make_tenant):
        make_tenant("acme")
        with patch.object(directory, "touch_last_accessed", side_effect=SQLAlchemyError("directory down")):
            context = resolve_tenant(directory, registry, "acme.app.example")
        assert context.tenant.subdomain == "acme"

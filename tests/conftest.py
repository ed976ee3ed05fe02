"""Pytest configuration and fixtures."""

import os
from datetime import timedelta

import pytest

# Set test environment before any tenantgate import reads it
os.environ.setdefault("APP_ENV", "test")
os.environ.setdefault("DEBUG", "false")
os.environ["DIRECTORY_DATABASE_URL"] = "sqlite://"
os.environ["GEOLOCATION_ENABLED"] = "false"
os.environ["ERROR_LOCALE"] = "fa"

from sqlalchemy.orm import sessionmaker

from tenantgate.infra.database import create_directory_engine, init_directory
from tenantgate.models.context import RequestMeta, utcnow
from tenantgate.models.tenant import User
from tenantgate.services.connection_registry import ConnectionRegistry
from tenantgate.services.session_manager import SessionLifecycleManager
from tenantgate.services.tenant_directory import TenantDirectory
from tenantgate.services.tenant_provisioner import TenantProvisioner

DESKTOP_UA = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/91.0.4472.124 Safari/537.36"
)
MOBILE_UA = (
    "Mozilla/5.0 (iPhone; CPU iPhone OS 14_0 like Mac OS X) AppleWebKit/605.1.15 "
    "(KHTML, like Gecko) Version/14.0 Mobile/15E148 Safari/604.1"
)


class FakeClock:
    """Controllable replacement for utcnow()."""

    def __init__(self, now=None):
        self.now = now or utcnow()

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now += timedelta(**kwargs)


@pytest.fixture
def directory_engine():
    """In-memory tenant directory."""
    engine = create_directory_engine("sqlite://")
    init_directory(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def directory(directory_engine):
    return TenantDirectory(sessionmaker(autocommit=False, autoflush=False, bind=directory_engine))


@pytest.fixture
def registry(tmp_path):
    """Registry whose tenant stores are SQLite files under tmp_path."""
    registry = ConnectionRegistry(
        url_template=f"sqlite:///{tmp_path}/{{database}}.db",
        idle_ttl_seconds=0,
    )
    yield registry
    registry.purge_all()


@pytest.fixture
def provisioner(registry):
    return TenantProvisioner(registry)


@pytest.fixture
def make_tenant(directory, provisioner):
    """Factory: directory row plus a created and migrated store."""

    def _make(subdomain="acme", status="active"):
        tenant = directory.add(
            name=subdomain.title(),
            subdomain=subdomain,
            database_name=f"tenant_{subdomain.replace('-', '_')}",
            status=status,
        )
        assert provisioner.create_store(tenant).success
        assert provisioner.migrate(tenant).success
        return tenant

    return _make


@pytest.fixture
def tenant(make_tenant):
    return make_tenant("acme")


@pytest.fixture
def handle(registry, tenant):
    return registry.get(tenant)


@pytest.fixture
def make_user(handle):
    """Factory: insert a user into the acme store and return its id."""

    def _make(email="alice@example.com", name="Alice"):
        with handle.session() as db:
            user = User(name=name, email=email)
            db.add(user)
            db.flush()
            return user.id

    return _make


@pytest.fixture
def user_id(make_user):
    return make_user()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def manager(handle, clock):
    return SessionLifecycleManager(handle, locate=lambda ip: None, clock=clock)


@pytest.fixture
def desktop_meta():
    return RequestMeta(ip_address="192.168.1.1", user_agent=DESKTOP_UA)

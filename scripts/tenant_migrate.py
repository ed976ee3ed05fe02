#!/usr/bin/env python3
"""Run tenant store migrations.

Usage:
    python scripts/tenant_migrate.py [--tenant SUBDOMAIN] [--fresh]

Without --tenant every active tenant is migrated. --fresh downgrades each
store to an empty schema before upgrading, destroying its data.
"""

import argparse
import sys
from pathlib import Path

# Add project root to path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from tenantgate.infra.database import SessionLocal
from tenantgate.infra.errors import TenantNotFound
from tenantgate.services.connection_registry import ConnectionRegistry
from tenantgate.services.tenant_directory import TenantDirectory
from tenantgate.services.tenant_onboarding import TenantOnboarding
from tenantgate.services.tenant_provisioner import TenantProvisioner


def main():
    parser = argparse.ArgumentParser(description="Run migrations for tenant stores")
    parser.add_argument("--tenant", default=None, help="Specific tenant subdomain to migrate")
    parser.add_argument(
        "--fresh",
        action="store_true",
        help="Drop all tables and re-run all migrations",
    )

    args = parser.parse_args()

    registry = ConnectionRegistry()
    onboarding = TenantOnboarding(TenantDirectory(SessionLocal), TenantProvisioner(registry))

    try:
        results = onboarding.migrate_tenants(subdomain=args.tenant, fresh=args.fresh)
    except TenantNotFound as e:
        print(f"✗ {e.message}", file=sys.stderr)
        sys.exit(1)
    finally:
        registry.purge_all()

    if not results:
        print("No active tenants found.")
        return

    failed = 0
    for subdomain, result in results.items():
        if result.success:
            print(f"✓ {subdomain}")
        else:
            failed += 1
            print(f"✗ {subdomain}: {result.detail}", file=sys.stderr)

    print(f"Migration completed: {len(results) - failed} successful, {failed} failed")
    if failed:
        sys.exit(1)


if __name__ == "__main__":
    main()

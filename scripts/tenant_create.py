#!/usr/bin/env python3
"""Create a tenant: directory row plus a provisioned, migrated store.

Usage:
    python scripts/tenant_create.py NAME SUBDOMAIN [--plan PLAN] [--status active|inactive|suspended]
"""

import argparse
import sys
from pathlib import Path

# Add project root to path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from tenantgate.infra.database import SessionLocal, engine, init_directory
from tenantgate.infra.errors import ProvisioningError
from tenantgate.models.directory import TENANT_STATUSES
from tenantgate.services.connection_registry import ConnectionRegistry
from tenantgate.services.tenant_directory import TenantDirectory
from tenantgate.services.tenant_onboarding import TenantOnboarding
from tenantgate.services.tenant_provisioner import TenantProvisioner


def main():
    parser = argparse.ArgumentParser(description="Create a new tenant")
    parser.add_argument("name", help="The tenant name")
    parser.add_argument("subdomain", help="The tenant subdomain")
    parser.add_argument("--plan", default=None, help="Subscription plan")
    parser.add_argument(
        "--status",
        choices=TENANT_STATUSES,
        default="active",
        help="Tenant status (default: active)",
    )

    args = parser.parse_args()

    init_directory(engine)
    registry = ConnectionRegistry()
    onboarding = TenantOnboarding(TenantDirectory(SessionLocal), TenantProvisioner(registry))

    print(f"Creating tenant: {args.name} ({args.subdomain})")
    try:
        tenant = onboarding.create_tenant(
            name=args.name,
            subdomain=args.subdomain,
            status=args.status,
            plan=args.plan,
        )
    except (ValueError, ProvisioningError) as e:
        print(f"✗ Failed to create tenant: {e}", file=sys.stderr)
        sys.exit(1)
    finally:
        registry.purge_all()

    print("✓ Tenant created successfully")
    print(f"  ID: {tenant.id}")
    print(f"  Name: {tenant.name}")
    print(f"  Subdomain: {tenant.subdomain}")
    print(f"  Database: {tenant.database_name}")
    print(f"  Status: {tenant.status}")


if __name__ == "__main__":
    main()

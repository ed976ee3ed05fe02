#!/usr/bin/env python3
"""Periodic job script to log out expired sessions in every tenant.

Usage:
    python scripts/cleanup_sessions.py [--timeout MINUTES]

This script can be run as a cron job:
    # Every 15 minutes
    */15 * * * * cd /path/to/tenantgate && /path/to/venv/bin/python scripts/cleanup_sessions.py
"""

import argparse
import sys
from pathlib import Path

# Add project root to path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from tenantgate.infra.config import config
from tenantgate.infra.database import SessionLocal
from tenantgate.services.connection_registry import ConnectionRegistry
from tenantgate.services.session_manager import cleanup_all_tenants
from tenantgate.services.tenant_directory import TenantDirectory


def main():
    parser = argparse.ArgumentParser(description="Clean up expired user sessions")
    parser.add_argument(
        "--timeout",
        type=int,
        default=config.SESSION_TIMEOUT_MINUTES,
        help=f"Session timeout in minutes (default: {config.SESSION_TIMEOUT_MINUTES})",
    )

    args = parser.parse_args()

    print(f"Cleaning up sessions idle for more than {args.timeout} minutes...")
    registry = ConnectionRegistry()
    try:
        results = cleanup_all_tenants(TenantDirectory(SessionLocal), registry, args.timeout)
    finally:
        registry.purge_all()

    failed = [subdomain for subdomain, count in results.items() if count is None]
    total = sum(count for count in results.values() if count)
    for subdomain, count in results.items():
        if count is None:
            print(f"✗ {subdomain}: store unavailable", file=sys.stderr)
        elif count:
            print(f"  {subdomain}: {count}")

    print(f"✓ Cleaned up {total} expired sessions")
    if failed:
        sys.exit(1)


if __name__ == "__main__":
    main()

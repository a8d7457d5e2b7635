#!/usr/bin/env python3
"""CLI script to provision a new tenant.

Usage:
    python scripts/provision_tenant.py --name "Café Noël" --owner-email owner@cafe.fr --owner-password changeme
    python scripts/provision_tenant.py --name "Acme" --slug acme-support --owner-email a@acme.com --owner-password s3cret!!

Uses DATA_DIR from environment or .env file. Creates the master database if
needed, registers the tenant on a trial plan, creates the owner account and
opens the tenant's own store.
"""

from __future__ import annotations

import argparse
import asyncio
import os
import sys

# Ensure project root is on sys.path so we can import src.app
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from dotenv import load_dotenv  # noqa: E402

# Load .env from project root
load_dotenv(os.path.join(os.path.dirname(__file__), "..", ".env"))


async def provision(name: str, slug: str | None, owner_email: str, owner_password: str, owner_name: str) -> None:
    """Provision a tenant by calling the provisioning service directly."""
    from src.app.core.database import close_db, init_db
    from src.app.services.tenant_provisioning import provision_tenant

    await init_db()
    try:
        print(f"Provisioning tenant: name={name}")
        result = await provision_tenant(
            name=name,
            owner_email=owner_email,
            owner_password=owner_password,
            owner_name=owner_name,
            slug=slug,
        )
    finally:
        await close_db()

    print("Tenant provisioned successfully:")
    print(f"  ID:          {result['tenant_id']}")
    print(f"  Slug:        {result['slug']}")
    print(f"  Trial until: {result['trial_ends_at']}")
    print(f"  Owner:       {result['owner']['email']}")


def main() -> None:
    parser = argparse.ArgumentParser(description="Provision a new tenant")
    parser.add_argument("--name", required=True, help="Tenant display name (e.g., 'Acme')")
    parser.add_argument("--slug", default=None, help="Help-center slug, derived from the name when omitted")
    parser.add_argument("--owner-email", required=True, help="Owner login email")
    parser.add_argument("--owner-password", required=True, help="Owner login password")
    parser.add_argument("--owner-name", default=None, help="Owner full name")
    args = parser.parse_args()

    asyncio.run(
        provision(
            args.name,
            args.slug,
            args.owner_email,
            args.owner_password,
            args.owner_name or f"Admin ({args.name})",
        )
    )


if __name__ == "__main__":
    main()

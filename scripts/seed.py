#!/usr/bin/env python3
"""
scripts/seed.py -- Create the standard catalogue and a first admin account.

Usage (from the repository root):
  python -m scripts.seed --admin-email admin@harbordesk.local
  python -m scripts.seed --admin-email admin@harbordesk.local --admin-password 'S3cure!pass'
  python -m scripts.seed --catalogue-only

Safe to re-run: permissions, roles and menus that already exist are kept,
and an existing admin email is left untouched.

Environment variables:
  DATABASE_URL   Target database (default: sqlite file at the repo root).
  DEBUG          Set to true to auto-generate signing keys for local use.
"""

import argparse
import logging
import sys

from auth.audit import ActivityAuditor
from auth.catalogue import seed_catalogue
from auth.errors import AuthError
from auth.models import RoleName
from auth.passwords import generate_random_password
from auth.schema import create_auth_engine
from auth.service import AuthService
from auth.sessions import SessionStore
from auth.store import UserStore
from core.config import get_settings

logger = logging.getLogger("harbordesk.seed")


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(
        prog="harbordesk-seed",
        description="Seed the HarborDesk Identity database.",
    )
    parser.add_argument("--admin-email", metavar="EMAIL", help="Email of the admin account to create")
    parser.add_argument(
        "--admin-password",
        metavar="PASSWORD",
        help="Password for the admin account (default: generate one and print it once)",
    )
    parser.add_argument("--tenant", metavar="TENANT_ID", help="Tenant id stamped on the admin account")
    parser.add_argument(
        "--catalogue-only",
        action="store_true",
        help="Only create permissions, roles and menus",
    )
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)-5s %(name)s %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    if not args.catalogue_only and not args.admin_email:
        parser.error("--admin-email is required unless --catalogue-only is given")

    settings = get_settings()
    engine = create_auth_engine(settings.database_url)
    try:
        user_store = UserStore(engine)
        seed_catalogue(user_store)
        if args.catalogue_only:
            return 0

        if user_store.get_by_email(args.admin_email) is not None:
            logger.info("Admin %s already exists, leaving it unchanged", args.admin_email)
            return 0

        password = args.admin_password or generate_random_password(16)
        service = AuthService(user_store, SessionStore(engine), ActivityAuditor(engine))
        try:
            admin = service.register(
                args.admin_email,
                password,
                first_name="System",
                last_name="Administrator",
                roles=[RoleName.ADMIN],
                tenant_id=args.tenant,
            )
        except AuthError as exc:
            logger.error("Could not create admin: %s", exc.message)
            return 1

        logger.info("Created admin %s (id %s)", admin.email, admin.id)
        if not args.admin_password:
            print(f"Generated admin password (shown once): {password}")
        return 0
    finally:
        engine.dispose()


if __name__ == "__main__":
    sys.exit(main())

"""Script to run database migrations."""

import argparse
import sys

from alembic import command
from alembic.config import Config
from alembic.util.exc import CommandError


def main() -> None:
    """Upgrade, downgrade or create migrations."""
    parser = argparse.ArgumentParser(description="Manage database migrations")
    sub = parser.add_subparsers(dest="action")

    upgrade = sub.add_parser("upgrade", help="Upgrade to a revision (default: head)")
    upgrade.add_argument("revision", nargs="?", default="head")

    downgrade = sub.add_parser("downgrade", help="Downgrade to a revision")
    downgrade.add_argument("revision")

    create = sub.add_parser("create", help="Autogenerate a new revision")
    create.add_argument("message", nargs="+")

    args = parser.parse_args()
    alembic_cfg = Config("alembic.ini")

    try:
        if args.action == "downgrade":
            print(f"Downgrading database to {args.revision}...")
            command.downgrade(alembic_cfg, args.revision)
        elif args.action == "create":
            message = " ".join(args.message)
            print(f"Creating migration: {message}")
            command.revision(alembic_cfg, message=message, autogenerate=True)
        else:
            revision = getattr(args, "revision", "head")
            print(f"Upgrading database to {revision}...")
            command.upgrade(alembic_cfg, revision)
    except CommandError as e:
        print(f"✗ Migration failed: {e}", file=sys.stderr)
        sys.exit(1)

    print("✓ Done")


if __name__ == "__main__":
    main()

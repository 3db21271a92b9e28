#!/usr/bin/env python3
"""
Apply database migrations.
Usage: python3 run_migrations.py [revision]   (default: head)
"""
import sys
from pathlib import Path

from alembic import command
from alembic.config import Config


def run_migrations(revision: str = "head") -> None:
    """Upgrade the database configured by DB_* / MIGRATIONS_DATABASE_URL to `revision`."""
    backend_dir = Path(__file__).parent / "inventory_backend"
    config = Config(str(backend_dir / "alembic.ini"))
    config.set_main_option("script_location", str(backend_dir / "migrations"))

    print(f"Upgrading database to {revision}...")
    try:
        command.upgrade(config, revision)
    except Exception as e:
        print(f"Migration failed: {e}", file=sys.stderr)
        sys.exit(1)
    print("Migrations applied.")


if __name__ == "__main__":
    run_migrations(sys.argv[1] if len(sys.argv) > 1 else "head")

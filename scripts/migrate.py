#!/usr/bin/env python3
"""
Database migration script using Alembic.

Runs all pending catalog migrations, or downgrades with
`migrate.py downgrade [revision]`.
"""

import sys
from pathlib import Path

# Add project root to path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from alembic import command  # noqa: E402
from alembic.config import Config  # noqa: E402

from dualstore.config.settings import get_settings  # noqa: E402


def build_config() -> Config:
    """Alembic config pointed at the catalog database."""
    settings = get_settings()

    alembic_cfg = Config(str(project_root / "alembic.ini"))
    alembic_cfg.set_main_option(
        "script_location", str(project_root / "migrations"))
    alembic_cfg.set_main_option("sqlalchemy.url", settings.catalog_database_url)
    return alembic_cfg


def run_migrations():
    """Upgrade the catalog schema to the latest revision."""
    print("Running database migrations...")
    try:
        command.upgrade(build_config(), "head")
        print("✓ Migrations completed successfully")
    except Exception as e:
        print(f"✗ Migration failed: {e}", file=sys.stderr)
        sys.exit(1)


def downgrade_migrations(revision: str = "-1"):
    """
    Downgrade database migrations.

    Args:
        revision: Target revision to downgrade to (default: -1 for previous version)
    """
    print(f"Downgrading database to revision: {revision}...")
    try:
        command.downgrade(build_config(), revision)
        print("✓ Downgrade completed successfully")
    except Exception as e:
        print(f"✗ Downgrade failed: {e}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    if len(sys.argv) > 1 and sys.argv[1] == "downgrade":
        revision = sys.argv[2] if len(sys.argv) > 2 else "-1"
        downgrade_migrations(revision)
    else:
        run_migrations()

"""
Database command-line interface for schema migrations.

Wraps Alembic so migrations can be run programmatically (tests, deployment
hooks) or from the shell:

    goldsphere-db upgrade
    goldsphere-db downgrade -r base
    goldsphere-db current
"""

import argparse
import logging
import sys
from pathlib import Path
from typing import List, Optional

from alembic import command
from alembic.config import Config
from alembic.runtime.migration import MigrationContext
from sqlalchemy import create_engine

from goldsphere.core.config import get_settings

logger = logging.getLogger(__name__)

MIGRATIONS_DIR = Path(__file__).parent / "migrations"


def get_alembic_config(url: Optional[str] = None) -> Config:
    """
    Create an Alembic Config pointing at the bundled migrations.

    Args:
        url: Database URL; defaults to the configured PostgreSQL URI
    """
    config = Config()
    config.set_main_option("script_location", str(MIGRATIONS_DIR))
    url = url or str(get_settings().db.POSTGRES_URI)
    # ConfigParser interpolation treats % specially
    config.set_main_option("sqlalchemy.url", url.replace("%", "%%"))
    return config


def upgrade_database(url: Optional[str] = None, revision: str = "head") -> None:
    """
    Upgrade the database to the specified revision.
    
    Args:
        url: Database URL
        revision: The revision to upgrade to (default: 'head')
    """
    logger.info(f"Upgrading database to revision {revision}")
    command.upgrade(get_alembic_config(url), revision)


def downgrade_database(url: Optional[str] = None, revision: str = "base") -> None:
    """
    Downgrade the database to the specified revision.
    
    Args:
        url: Database URL
        revision: The revision to downgrade to (default: 'base')
    """
    logger.info(f"Downgrading database to revision {revision}")
    command.downgrade(get_alembic_config(url), revision)


def current_revision(url: Optional[str] = None) -> Optional[str]:
    """
    Get the current revision of the database.
    
    Returns:
        Current revision identifier, or None for an unversioned database
    """
    engine = create_engine(url or str(get_settings().db.POSTGRES_URI))
    try:
        with engine.connect() as conn:
            return MigrationContext.configure(conn).get_current_revision()
    finally:
        engine.dispose()


def main(argv: Optional[List[str]] = None) -> int:
    """Entry point for the ``goldsphere-db`` command."""
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    parser = argparse.ArgumentParser(description="GoldSphere database migrations")
    parser.add_argument("--url", help="Database URL (defaults to DB_ settings)")
    subparsers = parser.add_subparsers(dest="command", required=True)

    upgrade_parser = subparsers.add_parser("upgrade", help="Upgrade to a revision")
    upgrade_parser.add_argument("-r", "--revision", default="head")

    downgrade_parser = subparsers.add_parser("downgrade", help="Downgrade to a revision")
    downgrade_parser.add_argument("-r", "--revision", default="base")

    subparsers.add_parser("current", help="Show the current revision")

    args = parser.parse_args(argv)

    try:
        if args.command == "upgrade":
            upgrade_database(args.url, args.revision)
        elif args.command == "downgrade":
            downgrade_database(args.url, args.revision)
        else:
            print(current_revision(args.url) or "None")
    except Exception as e:
        logger.error(f"Migration command '{args.command}' failed: {e}")
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())

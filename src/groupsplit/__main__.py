"""
GroupSplit server startup.

Brings the database schema up to date, then serves the API with uvicorn:

    python -m groupsplit [--host HOST] [--port PORT] [--no-migrate] [--reload]
"""

import argparse
from pathlib import Path

import uvicorn
from alembic import command
from alembic.config import Config

from .config import get_config

PROJECT_ROOT = Path(__file__).resolve().parents[2]


def run_migrations(database_url: str) -> None:
    """Upgrade the database to the latest Alembic revision."""
    alembic_cfg = Config(str(PROJECT_ROOT / "alembic.ini"))
    alembic_cfg.set_main_option("script_location", str(PROJECT_ROOT / "alembic"))
    alembic_cfg.set_main_option("sqlalchemy.url", database_url)
    command.upgrade(alembic_cfg, "head")


def main(argv=None) -> None:
    config = get_config()

    parser = argparse.ArgumentParser(description=f"Run the {config.app.app_name} API server")
    parser.add_argument("--host", default=config.server.host)
    parser.add_argument("--port", type=int, default=config.server.port)
    parser.add_argument("--no-migrate", action="store_true", help="Skip alembic upgrade")
    parser.add_argument("--reload", action="store_true", help="Reload on code changes")
    args = parser.parse_args(argv)

    if not args.no_migrate:
        run_migrations(config.database.url)

    uvicorn.run(
        "groupsplit.main:app",
        host=args.host,
        port=args.port,
        reload=args.reload,
        log_level="debug" if config.server.debug else "info",
    )


if __name__ == "__main__":
    main()

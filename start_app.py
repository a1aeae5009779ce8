"""Bring the order store up to date and serve the ordering API."""

from __future__ import annotations

import argparse
import os
import sys
from pathlib import Path

import uvicorn
from alembic import command
from alembic.config import Config
from dotenv import load_dotenv

import config

ALEMBIC_INI = Path(__file__).resolve().parent / "api" / "alembic.ini"


def migrate(database_url: str) -> None:
    """Upgrade ``database_url`` to the latest Alembic revision."""

    cfg = Config(str(ALEMBIC_INI))
    cfg.cmd_opts = argparse.Namespace(x=[f"db_url={database_url}"])
    command.upgrade(cfg, "head")


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser()
    parser.add_argument(
        "--skip-db-migrations",
        action="store_true",
        help="Start against the existing schema",
    )
    parser.add_argument("--host", default=os.getenv("HOST", "127.0.0.1"))
    parser.add_argument("--port", type=int, default=int(os.getenv("PORT", "8000")))
    args = parser.parse_args(argv)

    load_dotenv()
    settings = config.get_settings()

    env_flag = os.getenv("SKIP_DB_MIGRATIONS", "")
    if not (args.skip_db_migrations or env_flag.lower() in {"1", "true", "yes"}):
        try:
            migrate(settings.database_url)
        except Exception as exc:
            print(f"database migration failed: {exc}", file=sys.stderr)
            raise SystemExit(1) from exc

    uvicorn.run(
        "api.gharse.main:app",
        host=args.host,
        port=args.port,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    main()

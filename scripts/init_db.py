from __future__ import annotations

import sys
from pathlib import Path

from alembic import command
from alembic.config import Config
from sqlalchemy import inspect, text

from kujifair.db.engine import make_engine

PROJECT_ROOT = Path(__file__).resolve().parents[1]


def alembic_config() -> Config:
    cfg = Config(str(PROJECT_ROOT / "alembic.ini"))
    cfg.set_main_option("script_location", str(PROJECT_ROOT / "alembic"))
    return cfg


def report_schema() -> None:
    """Print the tables and the Alembic revision of the configured database."""
    engine = make_engine()
    tables = sorted(inspect(engine).get_table_names())
    print("Tables:", ", ".join(tables) or "(none)")
    if "alembic_version" in tables:
        with engine.connect() as conn:
            revision = conn.execute(text("SELECT version_num FROM alembic_version")).scalar()
        print("Revision:", revision)


def main(argv: list[str]) -> None:
    """Upgrade to the revision given on the command line (default ``head``)."""
    target = argv[1] if len(argv) > 1 else "head"
    command.upgrade(alembic_config(), target)
    report_schema()


if __name__ == "__main__":
    main(sys.argv)

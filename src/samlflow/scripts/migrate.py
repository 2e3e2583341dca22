"""Upgrade the samlflow database schema to the latest revision."""

from __future__ import annotations

from pathlib import Path

from alembic import command
from alembic.config import Config

from samlflow.core.settings import settings

MIGRATIONS_DIR = Path(__file__).resolve().parents[3] / "migrations"


def build_config() -> Config:
    cfg = Config(str(MIGRATIONS_DIR / "alembic.ini"))
    cfg.set_main_option("script_location", str(MIGRATIONS_DIR))
    cfg.set_main_option("sqlalchemy.url", settings.database_url_sync)
    return cfg


def run_upgrade_head() -> None:
    command.upgrade(build_config(), "head")


if __name__ == "__main__":
    run_upgrade_head()

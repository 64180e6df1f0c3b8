"""
Tests for the Alembic migration chain.

The migrated schema must match what the ORM models expect, so a store
created with `alembic upgrade head` and one created by init_models() are
interchangeable.
"""

from pathlib import Path

import pytest
from alembic import command
from alembic.config import Config
from sqlalchemy import create_engine, inspect

from authgate.database import Base
import authgate.models  # noqa: F401

ROOT = Path(__file__).resolve().parents[1]


@pytest.fixture
def alembic_config(tmp_path):
    db_path = tmp_path / "migrated.db"
    config = Config(str(ROOT / "alembic.ini"))
    config.set_main_option("script_location", str(ROOT / "alembic"))
    config.set_main_option("sqlalchemy.url", f"sqlite+aiosqlite:///{db_path}")
    # Keep alembic.ini's logging config from replacing pytest's handlers
    config.attributes["configure_logger"] = False
    return config, f"sqlite:///{db_path}"


def test_upgrade_creates_model_tables(alembic_config):
    config, sync_url = alembic_config
    command.upgrade(config, "head")

    engine = create_engine(sync_url)
    inspector = inspect(engine)
    tables = set(inspector.get_table_names())
    assert set(Base.metadata.tables) <= tables

    for table in Base.metadata.tables.values():
        migrated = {c["name"] for c in inspector.get_columns(table.name)}
        assert {c.name for c in table.columns} == migrated, table.name

    unique = {
        ix["name"] for ix in inspector.get_indexes("users") if ix["unique"]
    }
    assert "ix_users_email" in unique
    engine.dispose()


def test_downgrade_to_base(alembic_config):
    config, sync_url = alembic_config
    command.upgrade(config, "head")
    command.downgrade(config, "base")

    engine = create_engine(sync_url)
    remaining = set(inspect(engine).get_table_names()) - {"alembic_version"}
    assert remaining == set()
    engine.dispose()

"""Shared fixtures for reelsync tests."""

from collections.abc import AsyncGenerator
from pathlib import Path

from helpers.alembic import run_migrations
import pytest_asyncio

from reelsync.db import AssetDatabase, SqlalchemyCore
from reelsync.db.sqlalchemy_core import DB_FILENAME


@pytest_asyncio.fixture
async def db_core(tmp_path: Path) -> AsyncGenerator[SqlalchemyCore]:
    """Provides a SqlalchemyCore over a freshly migrated database."""
    run_migrations(tmp_path / DB_FILENAME)

    core = SqlalchemyCore(tmp_path)
    yield core
    await core.close()


@pytest_asyncio.fixture
async def asset_db(db_core: SqlalchemyCore) -> AssetDatabase:
    """Provides an AssetDatabase backed by the migrated database."""
    return AssetDatabase(db_core)

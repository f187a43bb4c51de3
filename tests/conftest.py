"""Test fixtures and utilities."""

import logging

import pytest

from tests.fixtures import API_ROOT, RETAILER_ID, SECRET, TABLE, ZONE
from utils.config import Settings
from utils.db import DispensingRepository, get_conn, init_schema


@pytest.fixture
def zone():
    return ZONE


@pytest.fixture
def test_settings(tmp_path) -> Settings:
    """Complete settings pointing at a temporary database."""
    return Settings(
        _env_file=None,
        API_ROOT=API_ROOT,
        API_RETAILER_ID=RETAILER_ID,
        API_CRYPTO_KEY=SECRET,
        SQLITE_PATH=str(tmp_path / "db" / "app.db"),
        DB_TABLE_DISPENSING=TABLE,
        TIMEZONE="Europe/Rome",
    )


@pytest.fixture
def db_conn(test_settings):
    conn = get_conn(test_settings.SQLITE_PATH)
    init_schema(conn, TABLE)
    yield conn
    conn.close()


@pytest.fixture
def repository(db_conn) -> DispensingRepository:
    return DispensingRepository(db_conn, TABLE)


@pytest.fixture
def restore_root_logger():
    """Put back whatever handlers pytest installed on the root logger."""
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield root
    for handler in list(root.handlers):
        root.removeHandler(handler)
    for handler in handlers:
        root.addHandler(handler)
    root.setLevel(level)

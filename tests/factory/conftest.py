"""
Shared fixtures for factory tests.
"""

import pytest

from chronograph.config import Config, SQLiteConfig


@pytest.fixture
def sqlite_config(tmp_path):
    """Config pointing the SQLite backend at a temporary file."""
    return Config(sqlite=SQLiteConfig(db_path=str(tmp_path / "factory.db")))

"""Shared test fixtures for VersionKV tests."""

from __future__ import annotations

import sqlite3
from contextlib import contextmanager

import pytest

from versionkv import SqliteGateway, StoreConfig, VersionedStore

PERSON = {
    "name": "Ada",
    "age": 36,
    "tags": ["math", "engines"],
    "address": {"city": "London", "zip": None},
}


@contextmanager
def write_lock_held(db_path):
    """Hold the database write lock from a second connection."""
    conn = sqlite3.connect(db_path, isolation_level=None)
    try:
        conn.execute("BEGIN IMMEDIATE")
        yield conn
    finally:
        if conn.in_transaction:
            conn.rollback()
        conn.close()


@pytest.fixture
def tmp_db(tmp_path):
    """Create a temporary SQLite database path."""
    return str(tmp_path / "test.db")


@pytest.fixture
def gateway(tmp_db):
    """Create a SqliteGateway over a temporary database."""
    g = SqliteGateway(tmp_db)
    yield g
    g.close()


@pytest.fixture
def store(gateway):
    """Create a VersionedStore sharing the gateway fixture."""
    s = VersionedStore(gateway, config=StoreConfig(db_path=gateway.db_path))
    yield s
    s.close()

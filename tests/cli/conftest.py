"""Shared fixtures for CLI tests."""

from __future__ import annotations

from typing import TYPE_CHECKING

import pytest
from typer.testing import CliRunner

from tests.conftest import PERSON
from versionkv import VersionedStore
from versionkv.cli import app

if TYPE_CHECKING:
    from click.testing import Result


@pytest.fixture
def runner():
    """Create a CLI test runner."""
    return CliRunner()


@pytest.fixture
def cli_db(tmp_path):
    """Create a temp DB path for the CLI."""
    return str(tmp_path / "cli_test.db")


@pytest.fixture
def seeded_db(cli_db):
    """Create a DB with some seed data."""
    with VersionedStore.open(cli_db) as store:
        store.register("person/ada", PERSON, schema_key="Person")
        store.set("person/ada", dict(PERSON, age=37), schema_key="Person", job_id="job-1")
        store.set("person/bob", {"name": "Bob"}, schema_key="Person", job_id="job-1")
        store.register("empty")
    return cli_db


def invoke(runner: CliRunner, args: list[str], db_path: str | None = None) -> "Result":
    """Invoke CLI with proper state setup."""
    if db_path:
        # Inject --db before subcommand
        args = ["--db", db_path] + args
    result = runner.invoke(app, args, catch_exceptions=False)
    return result

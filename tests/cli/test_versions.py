"""Tests for vkv versions/history/job."""

import json

from tests.cli.conftest import invoke


def test_versions_by_type(runner, seeded_db):
    result = invoke(runner, ["--json", "versions", "Person"], seeded_db)
    assert result.exit_code == 0
    rows = json.loads(result.stdout)
    assert len(rows) == 3
    ids = [r["version_id"] for r in rows]
    assert ids == sorted(ids)
    assert all(isinstance(r["timestamp_ms"], int) for r in rows)


def test_versions_job_filter(runner, seeded_db):
    result = invoke(runner, ["--json", "versions", "Person", "--job", "job-*"], seeded_db)
    assert len(json.loads(result.stdout)) == 2


def test_versions_limit(runner, seeded_db):
    result = invoke(runner, ["--json", "versions", "Person", "--limit", "1"], seeded_db)
    assert len(json.loads(result.stdout)) == 1


def test_versions_empty(runner, seeded_db):
    result = invoke(runner, ["versions", "Nothing"], seeded_db)
    assert result.exit_code == 0
    assert "No versions" in result.stdout


def test_history_table(runner, seeded_db):
    result = invoke(runner, ["history", "person/ada"], seeded_db)
    assert result.exit_code == 0
    assert "version_id" in result.stdout
    assert len(result.stdout.strip().splitlines()) == 4


def test_job(runner, seeded_db):
    result = invoke(runner, ["--json", "job", "job-1"], seeded_db)
    assert result.exit_code == 0
    assert len(json.loads(result.stdout)) == 2


def test_job_not_found(runner, seeded_db):
    assert invoke(runner, ["job", "nope"], seeded_db).exit_code == 4

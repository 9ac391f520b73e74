"""
Test the one-shot CLI modes against SQLite stores.
"""

import asyncio
import json

import pytest
from typer.testing import CliRunner

from stakingstat.cli import app
from stakingstat.services.rewards import RewardSample
from stakingstat.services.sample_store import SampleStore


runner = CliRunner()


@pytest.fixture
def config_file(tmp_path):
    path = tmp_path / "config.json"
    path.write_text(json.dumps({
        "database_url": f"sqlite:///{tmp_path / 'primary.db'}",
        "secondary_database_url": f"sqlite:///{tmp_path / 'secondary.db'}",
        "log_level": "WARNING",
    }))
    return str(path)


def _entries(url, limit=10):
    async def _read():
        store = SampleStore.from_url("check", url)
        try:
            return await store.recent_entries(limit)
        finally:
            await store.close()
    return asyncio.run(_read())


def _insert(url, sample):
    async def _write():
        store = SampleStore.from_url("seed", url)
        try:
            await store.upsert(sample)
        finally:
            await store.close()
    asyncio.run(_write())


def test_init_db_then_reconcile(config_file, tmp_path):
    for ordinal in ("1", "2"):
        result = runner.invoke(app, ["--config", config_file, "init-db", "--store", ordinal])
        assert result.exit_code == 0, result.output

    primary = f"sqlite:///{tmp_path / 'primary.db'}"
    secondary = f"sqlite:///{tmp_path / 'secondary.db'}"
    _insert(primary, RewardSample(1000, 1700000000, 4.9, 98.0))

    result = runner.invoke(app, ["--config", config_file, "reconcile", "--last", "10"])

    assert result.exit_code == 0, result.output
    assert 1000 in _entries(secondary)


def test_init_db_twice_fails(config_file):
    assert runner.invoke(app, ["--config", config_file, "init-db"]).exit_code == 0

    result = runner.invoke(app, ["--config", config_file, "init-db"])

    assert result.exit_code == 1
    assert "Failed to initialize database" in result.output


def test_clear_db(config_file):
    runner.invoke(app, ["--config", config_file, "init-db", "--store", "2"])

    result = runner.invoke(app, ["--config", config_file, "clear-db", "--store", "2", "--yes"])
    assert result.exit_code == 0, result.output

    result = runner.invoke(app, ["--config", config_file, "clear-db", "--store", "2", "--yes"])
    assert result.exit_code == 1


def test_invalid_store_ordinal(config_file):
    result = runner.invoke(app, ["--config", config_file, "init-db", "--store", "3"])

    assert result.exit_code == 1


def test_reconcile_without_tables_fails(config_file):
    result = runner.invoke(app, ["--config", config_file, "reconcile"])

    assert result.exit_code == 1
    assert "Reconciliation failed" in result.output


def test_bad_config_file(tmp_path):
    result = runner.invoke(app, ["--config", str(tmp_path / "nope.json"), "health"])

    assert result.exit_code == 1

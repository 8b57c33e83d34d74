"""Shared fixtures for automation engine tests."""

from pathlib import Path

import pytest
import pytest_asyncio
from loguru import logger

from claimflow.automation.dispatcher import TriggerDispatcher
from claimflow.automation.storage import AutomationStorage
from claimflow.config import settings


@pytest.fixture(autouse=True)
def isolated_settings(tmp_path: Path, monkeypatch):
    """Pin timezone and keep data_dir inside the test's tmp dir."""
    monkeypatch.setattr(settings, "timezone", "UTC")
    monkeypatch.setattr(settings, "data_dir", tmp_path / "data")


@pytest_asyncio.fixture
async def storage(tmp_path: Path):
    """Fresh SQLite-backed storage per test."""
    store = AutomationStorage(str(tmp_path / "automations.sqlite"))
    yield store
    await store.close()


@pytest.fixture
def dispatcher(storage: AutomationStorage) -> TriggerDispatcher:
    return TriggerDispatcher(storage)


@pytest.fixture
def log_messages():
    """Capture loguru records as (level, message) tuples."""
    records: list[tuple[str, str]] = []

    def _sink(message) -> None:
        record = message.record
        records.append((record["level"].name, record["message"]))

    handler_id = logger.add(_sink, level="DEBUG")
    yield records
    logger.remove(handler_id)

"""Tests for centralized log persistence."""

import logging

import pytest
from sqlalchemy import select

from bustrack.config import settings as app_settings
from bustrack.logging_utils import (
    CentralizedLogManager,
    disable_centralized_logging,
    enable_centralized_logging,
)
from bustrack.models import SystemLog


def _record(message, level=logging.INFO, **extra):
    record = logging.LogRecord("bustrack.test", level, __file__, 1, message, None, None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


def test_serialize_record_keeps_json_extras():
    manager = CentralizedLogManager("api", logging.INFO, 10)

    payload = manager.serialize_record(_record("bus moved", bus_id=3, socket=object()))

    assert payload["service"] == "api"
    assert payload["level"] == "INFO"
    assert payload["message"] == "bus moved"
    assert payload["extra"]["bus_id"] == 3
    assert payload["extra"]["socket"].startswith("<object")


def test_handler_skips_lower_levels_and_sqlalchemy():
    manager = CentralizedLogManager("api", logging.WARNING, 10)
    handler = manager.create_handler()

    handler.emit(_record("ignored"))
    sql = _record("SELECT 1", level=logging.ERROR)
    sql.name = "sqlalchemy.engine"
    handler.emit(sql)

    assert manager.queue.empty()


@pytest.mark.asyncio
async def test_manager_persists_records(session_factory):
    manager = CentralizedLogManager("api", logging.INFO, 10, session_factory=session_factory)
    handler = manager.create_handler()

    await manager.start()
    handler.emit(_record("prediction generated", prediction_id=9))
    await manager.stop()

    async with session_factory() as session:
        result = await session.execute(select(SystemLog))
        entries = list(result.scalars())

    assert len(entries) == 1
    assert entries[0].message == "prediction generated"
    assert entries[0].extra == {"prediction_id": 9}


@pytest.mark.asyncio
async def test_enable_and_disable_round_trip(monkeypatch, session_factory):
    monkeypatch.setattr(app_settings, "centralized_logging_enabled", True)
    root_logger = logging.getLogger()
    previous_level = root_logger.level

    try:
        manager = await enable_centralized_logging("api", session_factory=session_factory)
        assert manager is not None
        assert await enable_centralized_logging("api", session_factory=session_factory) is manager

        logging.getLogger("bustrack.services.fleet_service").warning("bus offline", extra={"bus_id": 5})
        await disable_centralized_logging()
    finally:
        root_logger.setLevel(previous_level)

    async with session_factory() as session:
        result = await session.execute(select(SystemLog).where(SystemLog.message == "bus offline"))
        entry = result.scalar_one()

    assert entry.level == "WARNING"
    assert entry.extra == {"bus_id": 5}


@pytest.mark.asyncio
async def test_enable_is_noop_when_disabled(monkeypatch):
    monkeypatch.setattr(app_settings, "centralized_logging_enabled", False)

    assert await enable_centralized_logging("api") is None

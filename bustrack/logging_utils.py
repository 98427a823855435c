"""Console logging setup and optional persistence of log records to the database."""

from __future__ import annotations

import asyncio
import json
import logging
import sys
import traceback
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from .config import settings
from .database import AsyncSessionLocal
from .models.system_log import SystemLog

# Attributes every LogRecord carries; anything else arrived through ``extra=``
_STANDARD_RECORD_ATTRS = frozenset(
    vars(logging.LogRecord("", logging.INFO, "", 0, "", None, None))
) | {"message", "asctime"}

# Loggers whose records would feed back into the writer
_SKIPPED_LOGGER_PREFIXES = ("sqlalchemy", "aiosqlite")

_BATCH_SIZE = 50


def _jsonable(value: Any) -> Any:
    try:
        json.dumps(value)
    except (TypeError, ValueError):
        return repr(value)
    return value


class _DatabaseLogHandler(logging.Handler):
    """Hands records to the manager's queue without blocking the caller."""

    def __init__(self, manager: "CentralizedLogManager") -> None:
        super().__init__(manager.level)
        self.manager = manager

    def emit(self, record: logging.LogRecord) -> None:
        if record.levelno < self.manager.level or record.name.startswith(_SKIPPED_LOGGER_PREFIXES):
            return
        try:
            self.manager.queue.put_nowait(self.manager.serialize_record(record))
        except asyncio.QueueFull:
            self.manager.report_queue_full()


class CentralizedLogManager:
    """
    Persists log records as ``SystemLog`` rows from a background task.

    Records are written in batches of up to ``_BATCH_SIZE`` per transaction.
    When the queue is full new records are dropped and counted; the first
    drop is reported on stderr.
    """

    def __init__(
        self,
        service_name: str,
        level: int,
        queue_size: int,
        session_factory: Optional[async_sessionmaker[AsyncSession]] = None,
    ) -> None:
        self.service_name = service_name
        self.level = level
        self.queue: asyncio.Queue[Optional[Dict[str, Any]]] = asyncio.Queue(maxsize=queue_size)
        self.dropped = 0
        self._session_factory = session_factory or AsyncSessionLocal
        self._writer: Optional[asyncio.Task[None]] = None

    def create_handler(self) -> logging.Handler:
        return _DatabaseLogHandler(self)

    async def start(self) -> None:
        if self._writer is None:
            self._writer = asyncio.create_task(self._run(), name=f"log-writer-{self.service_name}")

    async def stop(self) -> None:
        """Write whatever is queued, then stop the writer."""
        if self._writer is None:
            return
        await self.queue.put(None)
        await self._writer
        self._writer = None

    async def _run(self) -> None:
        stopping = False
        while not stopping:
            batch: List[Dict[str, Any]] = []
            item = await self.queue.get()
            while True:
                if item is None:
                    stopping = True
                else:
                    batch.append(item)
                if stopping or len(batch) >= _BATCH_SIZE or self.queue.empty():
                    break
                item = self.queue.get_nowait()
            if batch:
                await self._write(batch)

    async def _write(self, batch: List[Dict[str, Any]]) -> None:
        try:
            async with self._session_factory() as session:
                session.add_all(SystemLog(**entry) for entry in batch)
                await session.commit()
        except Exception:  # pragma: no cover - database unavailable
            # logging here would only requeue the failure
            traceback.print_exc()

    def serialize_record(self, record: logging.LogRecord) -> Dict[str, Any]:
        """Build the ``SystemLog`` column values for a record."""
        payload: Dict[str, Any] = {
            "service": self.service_name,
            "level": record.levelname,
            "logger_name": record.name,
            "message": record.getMessage(),
            "created_at": datetime.fromtimestamp(record.created, tz=timezone.utc),
        }
        if record.exc_info:
            payload["traceback"] = "".join(traceback.format_exception(*record.exc_info))
        elif record.exc_text:
            payload["traceback"] = record.exc_text

        extra = {
            key: _jsonable(value)
            for key, value in vars(record).items()
            if key not in _STANDARD_RECORD_ATTRS and not key.startswith("_")
        }
        if extra:
            payload["extra"] = extra
        return payload

    def report_queue_full(self) -> None:
        self.dropped += 1
        if self.dropped == 1:
            print(
                f"Log queue for '{self.service_name}' is full; dropping records.",
                file=sys.stderr,
            )


_manager: Optional[CentralizedLogManager] = None


def configure_logging() -> None:
    """Console output at ``LOG_LEVEL`` for the API process."""
    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )


async def enable_centralized_logging(
    service_name: str,
    session_factory: Optional[async_sessionmaker[AsyncSession]] = None,
) -> Optional[CentralizedLogManager]:
    """Attach the database handler to the root logger when enabled in settings."""
    global _manager

    if not settings.centralized_logging_enabled:
        return None
    if _manager is not None:
        return _manager

    level = getattr(logging, settings.centralized_log_level.upper(), logging.INFO)
    manager = CentralizedLogManager(
        service_name,
        level,
        max(1, settings.centralized_log_queue_size),
        session_factory=session_factory,
    )

    root_logger = logging.getLogger()
    if root_logger.level > level:
        root_logger.setLevel(level)
    root_logger.addHandler(manager.create_handler())

    await manager.start()
    _manager = manager
    return manager


async def disable_centralized_logging() -> None:
    """Flush and detach the database handler."""
    global _manager

    if _manager is None:
        return
    manager, _manager = _manager, None

    root_logger = logging.getLogger()
    for handler in list(root_logger.handlers):
        if isinstance(handler, _DatabaseLogHandler) and handler.manager is manager:
            root_logger.removeHandler(handler)
    await manager.stop()

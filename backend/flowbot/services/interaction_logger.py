from __future__ import annotations

import asyncio
import logging
import threading
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Protocol

from flowbot.db import repository
from flowbot.db.session import db_transaction

if TYPE_CHECKING:
    from sqlalchemy.orm import Session, sessionmaker

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class InteractionRecord:
    bot_id: str
    owner_user_id: str | None
    telegram_user_id: str | None
    telegram_chat_id: str
    message_text: str
    interaction_type: str
    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))


class InteractionSink(Protocol):
    def save(self, record: InteractionRecord) -> None: ...


class InMemoryInteractionSink:
    def __init__(self) -> None:
        self.records: list[InteractionRecord] = []
        self._lock = threading.Lock()

    def save(self, record: InteractionRecord) -> None:
        with self._lock:
            self.records.append(record)


class SqlInteractionSink:
    """Writes records to the ``bot_logs`` table."""

    def __init__(self, session_factory: sessionmaker[Session]) -> None:
        self._session_factory = session_factory

    def save(self, record: InteractionRecord) -> None:
        with db_transaction(self._session_factory) as session:
            repository.create_bot_log(
                session,
                bot_id=record.bot_id,
                user_id=record.owner_user_id,
                telegram_user_id=record.telegram_user_id,
                telegram_chat_id=record.telegram_chat_id,
                message_text=record.message_text,
                interaction_type=record.interaction_type,
                created_at=record.created_at,
            )


class InteractionLogger:
    """
    Fire-and-forget recorder of processed events.

    Each record is written from a background task on a worker thread; the
    caller never waits for it. Failures are logged and dropped without retry:
    losing a log line is an observability loss, never a functional one.
    """

    def __init__(self, sink: InteractionSink) -> None:
        self._sink = sink
        self._pending: set[asyncio.Task[None]] = set()

    def log(self, record: InteractionRecord) -> None:
        try:
            task = asyncio.get_running_loop().create_task(self._save(record))
        except RuntimeError:
            logger.warning("No running event loop; interaction for bot %s dropped", record.bot_id)
            return
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def _save(self, record: InteractionRecord) -> None:
        try:
            await asyncio.to_thread(self._sink.save, record)
        except Exception as e:
            logger.warning("Failed to log interaction for bot %s: %s", record.bot_id, e)

    async def drain(self) -> None:
        """Wait for in-flight writes (shutdown and tests)."""
        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

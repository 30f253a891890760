import pytest
from sqlalchemy import select

from flowbot.db.base import Base
from flowbot.db.models import BotLog
from flowbot.db.session import build_engine, make_session_factory
from flowbot.services.interaction_logger import (
    InMemoryInteractionSink,
    InteractionLogger,
    InteractionRecord,
    SqlInteractionSink,
)


def _record(**overrides) -> InteractionRecord:
    values = dict(
        bot_id="bot-1",
        owner_user_id="owner-1",
        telegram_user_id="7",
        telegram_chat_id="42",
        message_text="/start",
        interaction_type="message_received",
    )
    values.update(overrides)
    return InteractionRecord(**values)


@pytest.mark.unit
@pytest.mark.asyncio
async def test_log_is_written_in_background():
    sink = InMemoryInteractionSink()
    interaction_logger = InteractionLogger(sink)

    interaction_logger.log(_record())
    await interaction_logger.drain()

    assert [r.message_text for r in sink.records] == ["/start"]


@pytest.mark.unit
@pytest.mark.asyncio
async def test_failed_write_is_dropped_without_retry(caplog):
    class FlakySink:
        def __init__(self):
            self.calls = 0

        def save(self, record):
            self.calls += 1
            raise ConnectionError("database unavailable")

    sink = FlakySink()
    interaction_logger = InteractionLogger(sink)

    interaction_logger.log(_record())
    await interaction_logger.drain()

    assert sink.calls == 1
    assert "Failed to log interaction for bot bot-1" in caplog.text


@pytest.mark.unit
def test_log_without_running_loop_is_dropped():
    sink = InMemoryInteractionSink()

    InteractionLogger(sink).log(_record())

    assert sink.records == []


@pytest.mark.unit
def test_sql_sink_writes_bot_log_row(tmp_path):
    engine = build_engine(f"sqlite:///{tmp_path / 'logs.db'}")
    Base.metadata.create_all(bind=engine)
    factory = make_session_factory(engine)

    SqlInteractionSink(factory).save(_record(interaction_type="no_match", message_text="hello"))

    with factory() as session:
        rows = session.execute(select(BotLog)).scalars().all()
    assert len(rows) == 1
    assert rows[0].interaction_type == "no_match"
    assert rows[0].telegram_chat_id == "42"
    assert rows[0].user_id == "owner-1"

"""Deployment records: which bots are deployed, with which credential and flow.

The runtime keeps active instances in memory only; these records are what
allows them to be reconstructed after a restart.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, replace
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any, Protocol

from flowbot.db import repository
from flowbot.db.session import db_transaction

if TYPE_CHECKING:
    from sqlalchemy.orm import Session, sessionmaker

    from flowbot.db.models import BotDeployment

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class DeploymentRecord:
    bot_id: str
    user_id: str | None
    credential: str
    flow_data: dict[str, Any]
    webhook_url: str
    bot_name: str | None = None
    status: str = "deployed"
    deployed_at: datetime | None = None
    stopped_at: datetime | None = None

    @property
    def is_active(self) -> bool:
        return self.status == "deployed"


class DeploymentStore(Protocol):
    def record_deployment(self, record: DeploymentRecord) -> None: ...

    def mark_stopped(self, bot_id: str) -> bool: ...

    def get_active(self, bot_id: str) -> DeploymentRecord | None: ...

    def list_active(self) -> list[DeploymentRecord]: ...


class InMemoryDeploymentStore:
    """Process-local store; records vanish with the process."""

    def __init__(self) -> None:
        self._records: dict[str, DeploymentRecord] = {}
        self._lock = threading.Lock()

    def record_deployment(self, record: DeploymentRecord) -> None:
        stamped = replace(
            record, status="deployed", deployed_at=record.deployed_at or datetime.now(UTC)
        )
        with self._lock:
            self._records[record.bot_id] = stamped

    def mark_stopped(self, bot_id: str) -> bool:
        with self._lock:
            record = self._records.get(bot_id)
            if record is None or not record.is_active:
                return False
            self._records[bot_id] = replace(
                record, status="stopped", stopped_at=datetime.now(UTC)
            )
            return True

    def get_active(self, bot_id: str) -> DeploymentRecord | None:
        record = self._records.get(bot_id)
        return record if record is not None and record.is_active else None

    def list_active(self) -> list[DeploymentRecord]:
        return [r for r in self._records.values() if r.is_active]


def _to_record(row: BotDeployment) -> DeploymentRecord:
    return DeploymentRecord(
        bot_id=row.bot_id,
        user_id=row.user_id,
        credential=row.bot_token,
        flow_data=dict(row.flow_data or {}),
        webhook_url=row.webhook_url,
        bot_name=row.bot_name,
        status=row.status.value,
        deployed_at=row.deployed_at,
        stopped_at=row.stopped_at,
    )


class SqlDeploymentStore:
    """Store backed by the ``bot_deployments`` table."""

    def __init__(self, session_factory: sessionmaker[Session]) -> None:
        self._session_factory = session_factory

    def record_deployment(self, record: DeploymentRecord) -> None:
        with db_transaction(self._session_factory) as session:
            # A redeploy supersedes the previous record
            repository.mark_deployments_stopped(session, record.bot_id)
            repository.create_deployment(
                session,
                bot_id=record.bot_id,
                user_id=record.user_id,
                bot_name=record.bot_name,
                bot_token=record.credential,
                flow_data=record.flow_data,
                webhook_url=record.webhook_url,
            )

    def mark_stopped(self, bot_id: str) -> bool:
        with db_transaction(self._session_factory) as session:
            return repository.mark_deployments_stopped(session, bot_id) > 0

    def get_active(self, bot_id: str) -> DeploymentRecord | None:
        with db_transaction(self._session_factory) as session:
            row = repository.get_active_deployment(session, bot_id)
            return _to_record(row) if row is not None else None

    def list_active(self) -> list[DeploymentRecord]:
        with db_transaction(self._session_factory) as session:
            return [_to_record(row) for row in repository.list_active_deployments(session)]

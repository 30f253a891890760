"""Database models for deployment records and interaction logs.

Bot tokens are stored through ``EncryptedString``; everything else is system
metadata or message text kept for the bot owner's logs.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from uuid import uuid4

from sqlalchemy import JSON, DateTime, Index, String, Text, func
from sqlalchemy import Enum as SaEnum
from sqlalchemy.orm import Mapped, mapped_column

from flowbot.db.base import Base
from flowbot.db.types import EncryptedString


def _new_id() -> str:
    return uuid4().hex


class DeploymentStatus(str, Enum):
    deployed = "deployed"
    stopped = "stopped"


class BotDeployment(Base):
    __tablename__ = "bot_deployments"
    __table_args__ = (Index("ix_bot_deployments_bot_status", "bot_id", "status"),)

    id: Mapped[str] = mapped_column(String(32), primary_key=True, default=_new_id)
    bot_id: Mapped[str] = mapped_column(String(128), nullable=False)
    user_id: Mapped[str | None] = mapped_column(String(128), nullable=True)
    bot_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    bot_token: Mapped[str] = mapped_column(EncryptedString(512), nullable=False)
    flow_data: Mapped[dict] = mapped_column(JSON, nullable=False)
    webhook_url: Mapped[str] = mapped_column(String(1024), nullable=False)
    status: Mapped[DeploymentStatus] = mapped_column(
        SaEnum(DeploymentStatus, name="deployment_status"),
        nullable=False,
        default=DeploymentStatus.deployed,
    )
    deployed_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )
    stopped_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)


class BotLog(Base):
    __tablename__ = "bot_logs"

    id: Mapped[str] = mapped_column(String(32), primary_key=True, default=_new_id)
    bot_id: Mapped[str] = mapped_column(String(128), nullable=False, index=True)
    user_id: Mapped[str | None] = mapped_column(String(128), nullable=True)
    telegram_user_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    telegram_chat_id: Mapped[str] = mapped_column(String(64), nullable=False)
    message_text: Mapped[str] = mapped_column(Text, nullable=False, default="")
    interaction_type: Mapped[str] = mapped_column(String(64), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from flowbot.db.models import BotDeployment, BotLog, DeploymentStatus


def create_deployment(
    session: Session,
    *,
    bot_id: str,
    user_id: str | None,
    bot_name: str | None,
    bot_token: str,
    flow_data: dict[str, Any],
    webhook_url: str,
) -> BotDeployment:
    deployment = BotDeployment(
        bot_id=bot_id,
        user_id=user_id,
        bot_name=bot_name,
        bot_token=bot_token,
        flow_data=flow_data,
        webhook_url=webhook_url,
        status=DeploymentStatus.deployed,
        deployed_at=datetime.now(UTC),
    )
    session.add(deployment)
    session.flush()
    return deployment


def get_active_deployment(session: Session, bot_id: str) -> BotDeployment | None:
    stmt = (
        select(BotDeployment)
        .where(BotDeployment.bot_id == bot_id, BotDeployment.status == DeploymentStatus.deployed)
        .order_by(BotDeployment.deployed_at.desc())
        .limit(1)
    )
    return session.execute(stmt).scalars().first()


def list_active_deployments(session: Session) -> list[BotDeployment]:
    stmt = (
        select(BotDeployment)
        .where(BotDeployment.status == DeploymentStatus.deployed)
        .order_by(BotDeployment.deployed_at)
    )
    return list(session.execute(stmt).scalars().all())


def mark_deployments_stopped(session: Session, bot_id: str) -> int:
    stmt = (
        update(BotDeployment)
        .where(BotDeployment.bot_id == bot_id, BotDeployment.status == DeploymentStatus.deployed)
        .values(status=DeploymentStatus.stopped, stopped_at=datetime.now(UTC))
    )
    result = session.execute(stmt)
    return result.rowcount or 0


def create_bot_log(
    session: Session,
    *,
    bot_id: str,
    user_id: str | None,
    telegram_user_id: str | None,
    telegram_chat_id: str,
    message_text: str,
    interaction_type: str,
    created_at: datetime,
) -> BotLog:
    log = BotLog(
        bot_id=bot_id,
        user_id=user_id,
        telegram_user_id=telegram_user_id,
        telegram_chat_id=telegram_chat_id,
        message_text=message_text,
        interaction_type=interaction_type,
        created_at=created_at,
    )
    session.add(log)
    return log

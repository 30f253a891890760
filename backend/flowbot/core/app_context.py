from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, cast

if TYPE_CHECKING:
    from fastapi import FastAPI
    from sqlalchemy.engine import Engine

    from flowbot.flow_core.runner import FlowRunner
    from flowbot.runtime.registry import InstanceRegistry
    from flowbot.services.deployment_store import DeploymentStore
    from flowbot.services.interaction_logger import InteractionLogger
    from flowbot.settings import Settings


@dataclass(slots=True)
class AppContext:
    settings: Settings
    registry: InstanceRegistry
    runner: FlowRunner
    deployment_store: DeploymentStore
    interaction_logger: InteractionLogger
    # Set when DATABASE_URL is configured
    db_engine: Engine | None = None


def set_app_context(app: FastAPI, ctx: AppContext) -> None:
    # Store one typed context object under app.state
    app.state.ctx = ctx


def get_app_context(app: FastAPI) -> AppContext:
    # Retrieve and cast from app.state
    return cast("AppContext", app.state.ctx)

from __future__ import annotations

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse, PlainTextResponse

from flowbot.core.app_context import AppContext, get_app_context, set_app_context
from flowbot.core.errors import FlowBotError, FlowValidationError
from flowbot.core.http import CorsHeadersMiddleware
from flowbot.core.logging import RequestIdMiddleware, setup_logging
from flowbot.db.base import Base
from flowbot.db.session import build_engine, make_session_factory
from flowbot.flow_core.integrations import IntegrationRegistry, default_integration_registry
from flowbot.flow_core.ir import load_flow_graph
from flowbot.flow_core.runner import FlowRunner
from flowbot.router import api_router
from flowbot.runtime.registry import InstanceRegistry
from flowbot.services.deployment_store import (
    DeploymentStore,
    InMemoryDeploymentStore,
    SqlDeploymentStore,
)
from flowbot.services.interaction_logger import (
    InMemoryInteractionSink,
    InteractionLogger,
    InteractionSink,
    SqlInteractionSink,
)
from flowbot.settings import Settings, get_settings
from flowbot.telegram.client import ClientFactory, telegram_client_factory

setup_logging()
logger = logging.getLogger(__name__)


async def restore_deployments(ctx: AppContext) -> int:
    """Redeploy every active deployment record; returns how many came back."""
    restored = 0
    for record in ctx.deployment_store.list_active():
        try:
            graph = load_flow_graph(record.flow_data)
            await ctx.registry.deploy(
                record.bot_id,
                record.credential,
                graph,
                record.webhook_url,
                owner_id=record.user_id,
                name=record.bot_name,
            )
            restored += 1
        except FlowValidationError as e:
            logger.warning("Stored flow of bot %s is invalid: %s", record.bot_id, e.details)
        except Exception as e:
            logger.warning("Failed to restore bot %s: %s", record.bot_id, e)
    return restored


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    ctx = get_app_context(app)
    if ctx.db_engine is not None:
        try:
            Base.metadata.create_all(bind=ctx.db_engine)
            logger.info("Database tables ensured (create_all)")
        except Exception as e:
            logger.warning("Failed to create DB tables on startup: %s", e)

    if ctx.settings.restore_deployments:
        restored = await restore_deployments(ctx)
        logger.info("Restored %d bot deployment(s)", restored)
    else:
        logger.info("Deployment restore disabled; bots stay offline until redeployed")

    yield

    await ctx.interaction_logger.drain()
    if ctx.db_engine is not None:
        ctx.db_engine.dispose()
    logger.info("Application shutting down")


def create_app(
    settings: Settings | None = None,
    *,
    client_factory: ClientFactory | None = None,
    deployment_store: DeploymentStore | None = None,
    interaction_sink: InteractionSink | None = None,
    integrations: IntegrationRegistry | None = None,
) -> FastAPI:
    """Build the application; collaborators default to what settings select."""
    settings = settings or get_settings()

    db_engine = build_engine(settings.database_url) if settings.persistence_enabled else None
    session_factory = make_session_factory(db_engine) if db_engine is not None else None

    if deployment_store is None:
        deployment_store = (
            SqlDeploymentStore(session_factory)
            if session_factory is not None
            else InMemoryDeploymentStore()
        )
    if interaction_sink is None:
        interaction_sink = (
            SqlInteractionSink(session_factory)
            if session_factory is not None
            else InMemoryInteractionSink()
        )
    interaction_logger = InteractionLogger(interaction_sink)

    registry = InstanceRegistry(
        client_factory or telegram_client_factory(settings),
        webhook_secret=settings.webhook_secret_token,
    )
    runner = FlowRunner.from_settings(
        settings,
        interaction_logger=interaction_logger,
        integrations=integrations
        or default_integration_registry(
            settings.integration_timeout_seconds,
            webhook_enabled=settings.integration_webhook_enabled,
            allow_private_hosts=settings.integration_webhook_allow_private,
        ),
    )

    app = FastAPI(
        title="Flowbot Runtime",
        version="0.1.0",
        description="Telegram bot flow execution runtime",
        lifespan=lifespan,
    )
    app.add_middleware(RequestIdMiddleware)
    app.add_middleware(CorsHeadersMiddleware)

    set_app_context(
        app,
        AppContext(
            settings=settings,
            registry=registry,
            runner=runner,
            deployment_store=deployment_store,
            interaction_logger=interaction_logger,
            db_engine=db_engine,
        ),
    )

    @app.exception_handler(FlowBotError)
    async def _flowbot_error(_request: Request, exc: FlowBotError) -> JSONResponse:
        return JSONResponse(exc.to_payload(), status_code=exc.status_code)

    @app.get("/health", response_class=PlainTextResponse)
    async def health() -> str:
        return "ok"

    app.include_router(api_router)
    return app


app = create_app()

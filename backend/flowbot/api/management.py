"""Management surface: synchronous deploy/stop of bot instances."""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import Callable
from typing import Any, TypeVar

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from flowbot.core.app_context import AppContext, get_app_context
from flowbot.core.errors import (
    BotIdRequiredError,
    FlowBotError,
    InstanceNotFoundError,
    ManagementValidationError,
)
from flowbot.flow_core.ir import load_flow_graph
from flowbot.services.deployment_store import DeploymentRecord

logger = logging.getLogger(__name__)

router = APIRouter(tags=["management"])

T = TypeVar("T")


class ManagementRequest(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True, coerce_numbers_to_str=True)

    action: str | None = None
    bot_id: str | None = Field(default=None, alias="botId")
    user_id: str | None = Field(default=None, alias="userId")
    bot_token: str | None = Field(default=None, alias="botToken")
    flow_data: dict[str, Any] | str | None = Field(default=None, alias="flowData")
    bot_name: str | None = Field(default=None, alias="botName")


def _origin(ctx: AppContext, request: Request) -> str:
    if ctx.settings.public_base_url:
        return ctx.settings.public_base_url.rstrip("/")
    return str(request.base_url).rstrip("/")


async def _best_effort(what: str, fn: Callable[..., T], *args: Any) -> T | None:
    """Run a blocking store call off the loop; failures are logged, not raised."""
    try:
        return await asyncio.to_thread(fn, *args)
    except Exception as e:
        logger.warning("Failed to %s: %s", what, e)
        return None


async def deploy_bot(ctx: AppContext, body: ManagementRequest, origin: str) -> dict[str, Any]:
    if not body.bot_token or body.flow_data is None or not body.bot_id:
        raise ManagementValidationError()

    graph = load_flow_graph(body.flow_data)
    webhook_url = f"{origin}/webhook/{body.bot_id}"

    await ctx.registry.deploy(
        body.bot_id,
        body.bot_token,
        graph,
        webhook_url,
        owner_id=body.user_id,
        name=body.bot_name,
    )

    flow_data = body.flow_data if isinstance(body.flow_data, dict) else json.loads(body.flow_data)
    await _best_effort(
        f"record deployment of bot {body.bot_id}",
        ctx.deployment_store.record_deployment,
        DeploymentRecord(
            bot_id=body.bot_id,
            user_id=body.user_id,
            credential=body.bot_token,
            flow_data=flow_data,
            webhook_url=webhook_url,
            bot_name=body.bot_name,
        ),
    )

    logger.info("Bot %s deployed successfully with webhook: %s", body.bot_id, webhook_url)
    return {"success": True, "message": "Bot deployed successfully", "webhookUrl": webhook_url}


async def stop_bot(ctx: AppContext, body: ManagementRequest) -> dict[str, Any]:
    if not body.bot_id:
        raise BotIdRequiredError()
    bot_id = body.bot_id

    try:
        await ctx.registry.stop(bot_id)
    except InstanceNotFoundError:
        # Not live in this process (e.g. after a restart); use the stored credential
        record = await _best_effort(
            f"load deployment of bot {bot_id}", ctx.deployment_store.get_active, bot_id
        )
        if record is not None:
            await ctx.registry.release_webhook(record.credential, bot_id)

    await _best_effort(
        f"mark bot {bot_id} stopped", ctx.deployment_store.mark_stopped, bot_id
    )
    logger.info("Bot %s stopped successfully", bot_id)
    return {"success": True, "message": "Bot stopped successfully"}


@router.post("/")
async def management(request: Request) -> JSONResponse:
    """Deploy or stop a bot; responds only after the platform round trips complete."""
    ctx = get_app_context(request.app)
    try:
        try:
            body = ManagementRequest.model_validate(await request.json())
        except (json.JSONDecodeError, UnicodeDecodeError, ValidationError):
            return JSONResponse({"error": "Invalid JSON payload"}, status_code=400)

        logger.info("Received %s request for bot %s", body.action, body.bot_id)

        if body.action == "deploy":
            return JSONResponse(await deploy_bot(ctx, body, _origin(ctx, request)))
        if body.action == "stop":
            return JSONResponse(await stop_bot(ctx, body))
        return JSONResponse({"error": "Unknown action"}, status_code=400)

    except FlowBotError as exc:
        return JSONResponse(exc.to_payload(), status_code=exc.status_code)
    except Exception as exc:
        logger.exception("Error in management request")
        return JSONResponse(
            {"error": "Internal server error", "details": str(exc)}, status_code=500
        )

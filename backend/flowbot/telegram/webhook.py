"""Inbound Telegram webhook handling.

The platform only needs a fast acknowledgement. Once an update is routed to a
registered instance, processing runs as a background task after the response
is produced, and nothing it does can change the status code.
"""

from __future__ import annotations

import hmac
import json
import logging
from typing import TYPE_CHECKING

from fastapi import BackgroundTasks, Request, Response
from fastapi.responses import PlainTextResponse
from pydantic import ValidationError

from flowbot.core.app_context import get_app_context
from flowbot.core.errors import InstanceNotFoundError

from .types import TelegramUpdate

if TYPE_CHECKING:
    from flowbot.flow_core.runner import FlowRunner
    from flowbot.runtime.registry import BotInstance

    from .types import InboundEvent

logger = logging.getLogger(__name__)

SECRET_TOKEN_HEADER = "X-Telegram-Bot-Api-Secret-Token"


async def _process_in_background(
    runner: FlowRunner, instance: BotInstance, event: InboundEvent
) -> None:
    try:
        await runner.process_event(instance, event)
    except Exception:
        logger.exception(
            "Unhandled error processing update %s for bot %s", event.update_id, instance.bot_id
        )


async def handle_telegram_webhook(
    request: Request, bot_id: str, background_tasks: BackgroundTasks
) -> Response:
    """Route one update to its bot instance and acknowledge it."""
    ctx = get_app_context(request.app)

    try:
        instance = ctx.registry.lookup(bot_id)
    except InstanceNotFoundError:
        logger.error("No active bot found for ID: %s", bot_id)
        return PlainTextResponse("Bot not found", status_code=404)

    secret = ctx.settings.webhook_secret_token
    if secret:
        provided = request.headers.get(SECRET_TOKEN_HEADER, "")
        if not hmac.compare_digest(provided.encode(), secret.encode()):
            logger.warning("Rejected webhook for bot %s: secret token mismatch", bot_id)
            return PlainTextResponse("Forbidden", status_code=403)

    try:
        payload = json.loads(await request.body() or b"null")
        update = TelegramUpdate.model_validate(payload)
    except (json.JSONDecodeError, UnicodeDecodeError, ValidationError) as e:
        logger.warning("Invalid update payload for bot %s: %s", bot_id, e)
        return PlainTextResponse("Invalid JSON payload", status_code=400)

    logger.debug("Received webhook for bot %s: update %s", bot_id, update.update_id)

    event = update.to_event()
    if event is None:
        logger.debug("Ignoring update %s without message", update.update_id)
        return Response(status_code=200)

    background_tasks.add_task(_process_in_background, ctx.runner, instance, event)
    return Response(status_code=200)

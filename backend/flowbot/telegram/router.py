from __future__ import annotations

from fastapi import APIRouter, BackgroundTasks, Request, Response

from .webhook import handle_telegram_webhook

router = APIRouter()


@router.post("/webhook/{bot_id}")
async def telegram_webhook_post(
    bot_id: str, request: Request, background_tasks: BackgroundTasks
) -> Response:
    """Handle an update pushed by Telegram for one deployed bot."""
    return await handle_telegram_webhook(request, bot_id, background_tasks)

from __future__ import annotations

from fastapi import APIRouter

from flowbot.api.management import router as management_router
from flowbot.telegram.router import router as telegram_router

api_router = APIRouter()

api_router.include_router(telegram_router)
api_router.include_router(management_router)

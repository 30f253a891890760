from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from typing import TYPE_CHECKING, Any, Protocol

import requests
from tenacity import (
    Retrying,
    before_sleep_log,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

if TYPE_CHECKING:
    from flowbot.settings import Settings

logger = logging.getLogger(__name__)


class TelegramError(Exception):
    """Base exception for Bot API failures."""


class TelegramApiError(TelegramError):
    """The Bot API answered with ``ok: false``."""

    def __init__(self, method: str, error_code: int | None, description: str | None) -> None:
        self.method = method
        self.error_code = error_code
        self.description = description or "unknown error"
        super().__init__(f"{method} failed ({error_code}): {self.description}")


class TelegramTransportError(TelegramError):
    """The request never produced a usable Bot API response."""


class MessagingClient(Protocol):
    """Outbound calls the runtime makes on behalf of one bot credential."""

    async def send_message(
        self, chat_id: int, text: str, reply_markup: dict[str, Any] | None = None
    ) -> dict[str, Any]: ...

    async def send_photo(
        self,
        chat_id: int,
        photo: str,
        caption: str | None = None,
        reply_markup: dict[str, Any] | None = None,
    ) -> dict[str, Any]: ...

    async def set_webhook(self, url: str, secret_token: str | None = None) -> Any: ...

    async def delete_webhook(self) -> Any: ...

    async def get_me(self) -> dict[str, Any]: ...


ClientFactory = Callable[[str], MessagingClient]


class TelegramClient:
    """Telegram Bot API client keyed by one bot token.

    Calls are plain JSON POSTs made with ``requests`` on a worker thread so the
    event loop is never blocked. Idempotent calls (``getMe``, ``setWebhook``,
    ``deleteWebhook``) retry transport errors; sends are attempted once.
    """

    def __init__(
        self,
        token: str,
        *,
        api_base: str = "https://api.telegram.org",
        timeout: float = 10.0,
        retry_attempts: int = 3,
        session: requests.Session | None = None,
    ) -> None:
        self._token = token
        self._api_base = api_base.rstrip("/")
        self._timeout = timeout
        self._retry_attempts = max(1, retry_attempts)
        self._session = session or requests.Session()

    def _redact(self, text: str) -> str:
        return text.replace(self._token, "***") if self._token else text

    def _call(self, method: str, payload: dict[str, Any] | None = None) -> Any:
        url = f"{self._api_base}/bot{self._token}/{method}"
        try:
            response = self._session.post(url, json=payload or {}, timeout=self._timeout)
        except requests.RequestException as exc:
            raise TelegramTransportError(f"{method}: {self._redact(str(exc))}") from None

        try:
            data = response.json()
        except ValueError:
            raise TelegramTransportError(
                f"{method}: non-JSON response (HTTP {response.status_code})"
            ) from None

        if not isinstance(data, dict) or not data.get("ok"):
            body = data if isinstance(data, dict) else {}
            raise TelegramApiError(
                method, body.get("error_code", response.status_code), body.get("description")
            )
        logger.debug("Telegram %s succeeded", method)
        return data.get("result")

    def _call_with_retry(self, method: str, payload: dict[str, Any] | None = None) -> Any:
        retrying = Retrying(
            stop=stop_after_attempt(self._retry_attempts),
            wait=wait_exponential(multiplier=0.5, min=0.5, max=5),
            retry=retry_if_exception_type(TelegramTransportError),
            before_sleep=before_sleep_log(logger, logging.WARNING),
            reraise=True,
        )
        return retrying(self._call, method, payload)

    async def send_message(
        self, chat_id: int, text: str, reply_markup: dict[str, Any] | None = None
    ) -> dict[str, Any]:
        payload: dict[str, Any] = {"chat_id": chat_id, "text": text, "parse_mode": "HTML"}
        if reply_markup:
            payload["reply_markup"] = reply_markup
        return await asyncio.to_thread(self._call, "sendMessage", payload)

    async def send_photo(
        self,
        chat_id: int,
        photo: str,
        caption: str | None = None,
        reply_markup: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        payload: dict[str, Any] = {"chat_id": chat_id, "photo": photo}
        if caption:
            payload["caption"] = caption
            payload["parse_mode"] = "HTML"
        if reply_markup:
            payload["reply_markup"] = reply_markup
        return await asyncio.to_thread(self._call, "sendPhoto", payload)

    async def set_webhook(self, url: str, secret_token: str | None = None) -> Any:
        payload: dict[str, Any] = {"url": url, "allowed_updates": ["message", "callback_query"]}
        if secret_token:
            payload["secret_token"] = secret_token
        return await asyncio.to_thread(self._call_with_retry, "setWebhook", payload)

    async def delete_webhook(self) -> Any:
        return await asyncio.to_thread(self._call_with_retry, "deleteWebhook")

    async def get_me(self) -> dict[str, Any]:
        return await asyncio.to_thread(self._call_with_retry, "getMe")


def telegram_client_factory(settings: Settings) -> ClientFactory:
    """Return a factory building TelegramClients configured from settings."""

    def _factory(token: str) -> MessagingClient:
        return TelegramClient(
            token,
            api_base=settings.telegram_api_base,
            timeout=settings.telegram_timeout_seconds,
            retry_attempts=settings.telegram_retry_attempts,
        )

    return _factory

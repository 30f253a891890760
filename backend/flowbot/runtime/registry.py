"""Process-wide registry of deployed bot instances.

Readers (one per webhook delivery) never lock: every write publishes a fresh
read-only mapping, so a lookup observes either the previous or the next
instance for a bot id, never a partially built one. Deploy and stop for the
same bot id are serialized by a per-id lock; different bots never wait on each
other.
"""

from __future__ import annotations

import asyncio
import logging
import threading
from collections.abc import AsyncIterator, Mapping
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import UTC, datetime
from types import MappingProxyType
from typing import TYPE_CHECKING

from flowbot.core.errors import (
    CredentialInvalidError,
    InstanceNotFoundError,
    WebhookRegistrationError,
)
from flowbot.telegram.client import TelegramApiError, TelegramError

if TYPE_CHECKING:
    from flowbot.flow_core.ir import FlowGraph
    from flowbot.telegram.client import ClientFactory, MessagingClient

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class BotInstance:
    bot_id: str
    credential: str = field(repr=False)
    graph: FlowGraph = field(repr=False)
    client: MessagingClient = field(repr=False)
    webhook_url: str = ""
    owner_id: str | None = None
    name: str | None = None
    deployed_at: datetime = field(default_factory=lambda: datetime.now(UTC))


@dataclass(slots=True)
class _BotLock:
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    users: int = 0


class InstanceRegistry:
    def __init__(self, client_factory: ClientFactory, *, webhook_secret: str | None = None) -> None:
        self._client_factory = client_factory
        self._webhook_secret = webhook_secret
        self._instances: Mapping[str, BotInstance] = MappingProxyType({})
        self._publish_lock = threading.Lock()
        self._bot_locks: dict[str, _BotLock] = {}

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------
    def lookup(self, bot_id: str) -> BotInstance:
        instance = self._instances.get(bot_id)
        if instance is None:
            raise InstanceNotFoundError(bot_id)
        return instance

    def get(self, bot_id: str) -> BotInstance | None:
        return self._instances.get(bot_id)

    def bot_ids(self) -> list[str]:
        return list(self._instances.keys())

    def __contains__(self, bot_id: object) -> bool:
        return bot_id in self._instances

    def __len__(self) -> int:
        return len(self._instances)

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------
    @asynccontextmanager
    async def _locked(self, bot_id: str) -> AsyncIterator[None]:
        # Entries live only while someone holds or waits for them
        entry = self._bot_locks.get(bot_id)
        if entry is None:
            entry = self._bot_locks[bot_id] = _BotLock()
        entry.users += 1
        try:
            async with entry.lock:
                yield
        finally:
            entry.users -= 1
            if entry.users == 0:
                self._bot_locks.pop(bot_id, None)

    def _publish(self, bot_id: str, instance: BotInstance | None) -> BotInstance | None:
        with self._publish_lock:
            updated = dict(self._instances)
            previous = updated.pop(bot_id, None)
            if instance is not None:
                updated[bot_id] = instance
            self._instances = MappingProxyType(updated)
        return previous

    async def deploy(
        self,
        bot_id: str,
        credential: str,
        graph: FlowGraph,
        webhook_url: str,
        *,
        owner_id: str | None = None,
        name: str | None = None,
    ) -> BotInstance:
        """Verify the credential, register the webhook, then publish the instance.

        Raises:
            CredentialInvalidError: The platform rejected the token
            WebhookRegistrationError: The webhook could not be registered
        """
        async with self._locked(bot_id):
            client = self._client_factory(credential)
            try:
                me = await client.get_me()
            except TelegramApiError as exc:
                logger.warning("Bot token rejected for bot %s: %s", bot_id, exc.description)
                raise CredentialInvalidError() from exc

            try:
                await client.set_webhook(webhook_url, secret_token=self._webhook_secret)
            except TelegramError as exc:
                logger.error("Failed to set webhook for bot %s: %s", bot_id, exc)
                raise WebhookRegistrationError(details=str(exc)) from exc

            instance = BotInstance(
                bot_id=bot_id,
                credential=credential,
                graph=graph,
                client=client,
                webhook_url=webhook_url,
                owner_id=owner_id,
                name=name,
            )
            previous = self._publish(bot_id, instance)

        logger.info(
            "Bot %s deployed as @%s with webhook %s",
            bot_id,
            (me or {}).get("username", "?"),
            webhook_url,
        )
        if previous is not None and previous.credential != credential:
            # The old token still points at this webhook URL
            await self._release_webhook(previous.client, bot_id)
        return instance

    async def stop(self, bot_id: str) -> BotInstance:
        """Remove the instance and best-effort unregister its webhook.

        Raises:
            InstanceNotFoundError: No instance is registered for ``bot_id``
        """
        async with self._locked(bot_id):
            instance = self._publish(bot_id, None)
        if instance is None:
            raise InstanceNotFoundError(bot_id)
        await self._release_webhook(instance.client, bot_id)
        logger.info("Bot %s stopped", bot_id)
        return instance

    async def release_webhook(self, credential: str, bot_id: str) -> bool:
        """Best-effort ``deleteWebhook`` for a credential with no live instance."""
        return await self._release_webhook(self._client_factory(credential), bot_id)

    async def _release_webhook(self, client: MessagingClient, bot_id: str) -> bool:
        try:
            await client.delete_webhook()
        except Exception as e:
            logger.warning("Failed to delete webhook for bot %s: %s", bot_id, e)
            return False
        return True

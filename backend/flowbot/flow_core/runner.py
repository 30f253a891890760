"""Per-event pipeline: trigger matching, traversal and interaction logging."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from flowbot.core.logging import bot_id_ctx_var
from flowbot.services.interaction_logger import InteractionLogger, InteractionRecord

from .context import ExecutionContext
from .executor import FlowTraversal, NodeExecutor, SleepFunction, TraversalLimits, TraversalResult
from .integrations import IntegrationRegistry
from .matcher import match_triggers

if TYPE_CHECKING:
    from flowbot.runtime.registry import BotInstance
    from flowbot.settings import Settings
    from flowbot.telegram.types import InboundEvent

    from .ir import TriggerNode

logger = logging.getLogger(__name__)

DEFAULT_FALLBACK_MESSAGE = "I didn't understand that. Try typing /start to begin."
DEFAULT_ERROR_MESSAGE = "Sorry, something went wrong. Please try again."


@dataclass(slots=True)
class EventOutcome:
    """What processing one inbound event did."""

    matched_triggers: list[str] = field(default_factory=list)
    fallback_sent: bool = False
    traversals: dict[str, TraversalResult] = field(default_factory=dict)
    # Node ids whose failure skipped the rest of their path
    failed_nodes: list[str] = field(default_factory=list)


class FlowRunner:
    """Runs a bot's flow for inbound events.

    Stateless across events: every event gets its own ExecutionContext and
    executor, so concurrent events for any number of bots never share state.
    """

    def __init__(
        self,
        *,
        interaction_logger: InteractionLogger | None = None,
        integrations: IntegrationRegistry | None = None,
        limits: TraversalLimits | None = None,
        max_traversal_seconds: float = 600.0,
        fallback_message: str = DEFAULT_FALLBACK_MESSAGE,
        error_message: str = DEFAULT_ERROR_MESSAGE,
        sleep: SleepFunction = asyncio.sleep,
    ) -> None:
        self.interaction_logger = interaction_logger
        self.integrations = integrations or IntegrationRegistry()
        self.limits = limits or TraversalLimits()
        self.max_traversal_seconds = max_traversal_seconds
        self.fallback_message = fallback_message
        self.error_message = error_message
        self._sleep = sleep

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        *,
        interaction_logger: InteractionLogger | None = None,
        integrations: IntegrationRegistry | None = None,
    ) -> FlowRunner:
        return cls(
            interaction_logger=interaction_logger,
            integrations=integrations,
            limits=TraversalLimits.from_settings(settings),
            max_traversal_seconds=settings.max_traversal_seconds,
            fallback_message=settings.fallback_message,
            error_message=settings.error_message,
        )

    async def process_event(self, instance: BotInstance, event: InboundEvent) -> EventOutcome:
        token = bot_id_ctx_var.set(instance.bot_id)
        try:
            return await self._process(instance, event)
        finally:
            bot_id_ctx_var.reset(token)

    async def _process(self, instance: BotInstance, event: InboundEvent) -> EventOutcome:
        logger.info(
            'Processing message: "%s" from user %s in chat %s',
            event.text,
            event.user_id,
            event.chat_id,
        )
        outcome = EventOutcome()
        triggers = match_triggers(instance.graph, event.text)

        if not triggers:
            await self._send_safely(instance, event.chat_id, self.fallback_message)
            outcome.fallback_sent = True
            self._log_interaction(instance, event, "no_match")
            return outcome

        context = ExecutionContext.from_event(event)
        executor = NodeExecutor(
            instance.graph,
            instance.client,
            integrations=self.integrations,
            limits=self.limits,
            sleep=self._sleep,
        )
        for trigger in triggers:
            outcome.matched_triggers.append(trigger.id)
            result = await self._traverse(instance, executor, trigger, context)
            outcome.traversals[trigger.id] = result
            outcome.failed_nodes.extend(result.failed_nodes)

        self._log_interaction(instance, event, "message_received")
        return outcome

    async def _traverse(
        self,
        instance: BotInstance,
        executor: NodeExecutor,
        trigger: TriggerNode,
        context: ExecutionContext,
    ) -> TraversalResult:
        traversal = FlowTraversal(executor)
        try:
            await asyncio.wait_for(
                traversal.run(trigger, context), timeout=self.max_traversal_seconds
            )
        except TimeoutError:
            logger.warning(
                "Traversal from trigger %s exceeded %ss and was abandoned",
                trigger.id,
                self.max_traversal_seconds,
            )
            traversal.result.truncated = True
        if traversal.result.failed_nodes:
            # One apology per traversal, however many branches failed
            await self._send_safely(instance, context.chat_id, self.error_message)
        return traversal.result

    async def _send_safely(self, instance: BotInstance, chat_id: int, text: str) -> bool:
        try:
            await instance.client.send_message(chat_id, text)
        except Exception as e:
            logger.error("Failed to send message to chat %s: %s", chat_id, e)
            return False
        return True

    def _log_interaction(
        self, instance: BotInstance, event: InboundEvent, interaction_type: str
    ) -> None:
        if self.interaction_logger is None:
            return
        self.interaction_logger.log(
            InteractionRecord(
                bot_id=instance.bot_id,
                owner_user_id=instance.owner_id,
                telegram_user_id=str(event.user_id) if event.user_id is not None else None,
                telegram_chat_id=str(event.chat_id),
                message_text=event.text,
                interaction_type=interaction_type,
            )
        )

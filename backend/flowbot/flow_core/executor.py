"""Node execution and bounded graph traversal.

``NodeExecutor`` runs the side effect of a single node and returns the ids of
the nodes to visit next. ``FlowTraversal`` walks the graph from one matched
trigger, guarding against cycles and runaway fan-out.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from flowbot.core.errors import NodeExecutionError

from .integrations import IntegrationRegistry
from .ir import (
    NODE_CLASSES,
    ActionNode,
    BaseNode,
    FlowGraph,
    IntegrationNode,
    KeyboardButton,
    LogicNode,
    TriggerNode,
)

if TYPE_CHECKING:
    from flowbot.settings import Settings
    from flowbot.telegram.client import MessagingClient

    from .context import ExecutionContext

logger = logging.getLogger(__name__)

SleepFunction = Callable[[float], Awaitable[Any]]


@dataclass(frozen=True, slots=True)
class TraversalLimits:
    max_depth: int = 50
    max_steps: int = 200
    max_delay_seconds: float = 300.0

    @classmethod
    def from_settings(cls, settings: Settings) -> TraversalLimits:
        return cls(
            max_depth=settings.max_traversal_depth,
            max_steps=settings.max_traversal_steps,
            max_delay_seconds=settings.max_delay_seconds,
        )


@dataclass(frozen=True, slots=True)
class NodeOutcome:
    # Branch handle chosen by a branching node; None follows every outgoing edge
    handle: str | None = None


_CONTINUE = NodeOutcome()

NodeHandler = Callable[[Any, "ExecutionContext"], Awaitable[NodeOutcome]]


# Telegram limit on callback_data, in bytes
CALLBACK_DATA_MAX_BYTES = 64


def callback_data(value: str) -> str:
    """``value`` cut to the callback_data byte limit on a character boundary."""
    return value.encode("utf-8")[:CALLBACK_DATA_MAX_BYTES].decode("utf-8", errors="ignore")


def inline_keyboard(buttons: tuple[KeyboardButton, ...]) -> dict[str, Any]:
    """Telegram inline keyboard markup, one button per row."""
    return {
        "inline_keyboard": [
            [{"text": button.text, "callback_data": callback_data(button.action or button.text)}]
            for button in buttons
        ]
    }


class NodeExecutor:
    """Runs node side effects for one bot's graph."""

    def __init__(
        self,
        graph: FlowGraph,
        client: MessagingClient,
        *,
        integrations: IntegrationRegistry | None = None,
        limits: TraversalLimits | None = None,
        sleep: SleepFunction = asyncio.sleep,
    ) -> None:
        self.graph = graph
        self._client = client
        self._integrations = integrations or IntegrationRegistry()
        self.limits = limits or TraversalLimits()
        self._sleep = sleep
        self._handlers: dict[type[BaseNode], NodeHandler] = {
            TriggerNode: self._run_trigger,
            ActionNode: self._run_action,
            LogicNode: self._run_logic,
            IntegrationNode: self._run_integration,
        }
        missing = [cls.__name__ for cls in NODE_CLASSES if cls not in self._handlers]
        if missing:
            raise TypeError(f"No handler for node kinds: {', '.join(missing)}")

    async def execute(self, node: BaseNode, context: ExecutionContext) -> list[str]:
        """Run ``node`` and return the ids of its successors.

        Raises:
            NodeExecutionError: If the node's side effect failed
        """
        logger.debug("Executing node: %s - %s", node.type, node.id)
        handler = self._handlers[type(node)]
        try:
            outcome = await handler(node, context)
        except NodeExecutionError:
            raise
        except Exception as exc:
            raise NodeExecutionError(node.id, exc) from exc
        return [edge.target for edge in self.graph.outgoing_edges(node.id, outcome.handle)]

    async def _run_trigger(self, node: TriggerNode, context: ExecutionContext) -> NodeOutcome:
        return _CONTINUE

    async def _run_action(self, node: ActionNode, context: ExecutionContext) -> NodeOutcome:
        data = node.data
        text = data.message_text
        markup = inline_keyboard(data.buttons) if data.buttons else None

        if data.action_type == "image" and data.image_url:
            await self._client.send_photo(
                context.chat_id, data.image_url, caption=text, reply_markup=markup
            )
        elif text:
            await self._client.send_message(context.chat_id, text, reply_markup=markup)
        return _CONTINUE

    async def _run_logic(self, node: LogicNode, context: ExecutionContext) -> NodeOutcome:
        data = node.data

        if data.delay and data.delay > 0:
            seconds = min(float(data.delay), self.limits.max_delay_seconds)
            if seconds < data.delay:
                logger.warning(
                    "Delay of node %s capped from %ss to %ss", node.id, data.delay, seconds
                )
            await self._sleep(seconds)

        if data.variable and data.value is not None:
            context.set(data.variable, data.value)

        if data.is_branching:
            handle = data.compiled_condition.handle(context)
            logger.debug("Condition %r of node %s -> %s", data.condition, node.id, handle)
            return NodeOutcome(handle=handle)
        return _CONTINUE

    async def _run_integration(
        self, node: IntegrationNode, context: ExecutionContext
    ) -> NodeOutcome:
        data = node.data
        executor = self._integrations.get_executor(data.integration_type)
        if executor is None:
            logger.info(
                "Integration node executed: %s (no executor for type %s)",
                data.label,
                data.integration_type,
            )
            return _CONTINUE

        result = await executor.execute(data.options(), context)
        if result.is_failure:
            raise NodeExecutionError(node.id, RuntimeError(result.error or result.message))
        return _CONTINUE


@dataclass(slots=True)
class TraversalResult:
    # Node ids in execution order
    visited: list[str] = field(default_factory=list)
    # Nodes whose side effect failed; their successors were skipped
    failed_nodes: list[str] = field(default_factory=list)
    truncated: bool = False


class FlowTraversal:
    """A single walk from one matched trigger.

    A node is never revisited along the path that reached it, descent stops at
    ``max_depth`` and the whole walk stops after ``max_steps`` node executions.
    A failed node skips its own successors; sibling branches still run.
    """

    def __init__(self, executor: NodeExecutor) -> None:
        self._executor = executor
        self._limits = executor.limits
        self.result = TraversalResult()

    async def run(self, start: BaseNode, context: ExecutionContext) -> TraversalResult:
        await self._visit(start, context, frozenset(), 0)
        return self.result

    async def _visit(
        self, node: BaseNode, context: ExecutionContext, path: frozenset[str], depth: int
    ) -> None:
        if self.result.truncated:
            return
        if len(self.result.visited) >= self._limits.max_steps:
            logger.warning(
                "Traversal stopped at node %s: step budget of %d exhausted",
                node.id,
                self._limits.max_steps,
            )
            self.result.truncated = True
            return

        self.result.visited.append(node.id)
        try:
            successor_ids = await self._executor.execute(node, context)
        except NodeExecutionError as exc:
            logger.error("Error executing node %s: %s", exc.node_id, exc.cause)
            self.result.failed_nodes.append(exc.node_id)
            return
        path = path | {node.id}

        for successor_id in successor_ids:
            if successor_id in path:
                logger.warning("Cycle detected: %s -> %s skipped", node.id, successor_id)
                continue
            if depth + 1 > self._limits.max_depth:
                logger.warning(
                    "Traversal depth limit %d reached at node %s", self._limits.max_depth, node.id
                )
                continue
            successor = self._executor.graph.node_by_id(successor_id)
            if successor is None:  # pragma: no cover - rejected at load time
                continue
            await self._visit(successor, context, path, depth + 1)

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from flowbot.telegram.types import InboundEvent

# Names resolvable in conditions without a prior variable write
BUILTIN_OPERANDS = ("text", "chat_id", "user_id")


@dataclass(slots=True)
class ExecutionContext:
    """Transient state for one inbound event.

    Shared by every trigger traversal of that event and discarded afterwards.
    Variable writes are never persisted.
    """

    chat_id: int
    user_id: int | None
    text: str
    variables: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_event(cls, event: InboundEvent) -> ExecutionContext:
        return cls(chat_id=event.chat_id, user_id=event.user_id, text=event.text)

    def set(self, name: str, value: Any) -> None:
        self.variables[name] = value

    def get(self, name: str, default: Any = None) -> Any:
        return self.variables.get(name, default)

    def resolve(self, name: str) -> Any:
        """Return a variable, falling back to the event's built-in fields."""
        if name in self.variables:
            return self.variables[name]
        if name in BUILTIN_OPERANDS:
            return getattr(self, name)
        return None

    def snapshot(self) -> dict[str, Any]:
        return {
            "chatId": self.chat_id,
            "userId": self.user_id,
            "text": self.text,
            "variables": dict(self.variables),
        }

"""Telegram update payloads and their normalized inbound event."""

from __future__ import annotations

from dataclasses import dataclass

from pydantic import BaseModel, ConfigDict, Field


class TelegramUser(BaseModel):
    model_config = ConfigDict(extra="allow")

    id: int
    is_bot: bool = False
    first_name: str = ""
    username: str | None = None


class TelegramChat(BaseModel):
    model_config = ConfigDict(extra="allow")

    id: int
    type: str = "private"
    first_name: str | None = None
    username: str | None = None


class TelegramMessage(BaseModel):
    model_config = ConfigDict(extra="allow", populate_by_name=True)

    message_id: int
    from_user: TelegramUser | None = Field(default=None, alias="from")
    chat: TelegramChat
    date: int = 0
    text: str | None = None


class TelegramUpdate(BaseModel):
    """A single update delivered to a bot webhook.

    Only ``message`` updates are processed; other update kinds are accepted
    and ignored.
    """

    model_config = ConfigDict(extra="allow")

    update_id: int
    message: TelegramMessage | None = None

    def to_event(self) -> InboundEvent | None:
        if self.message is None:
            return None
        message = self.message
        return InboundEvent(
            chat_id=message.chat.id,
            user_id=message.from_user.id if message.from_user else None,
            text=message.text or "",
            update_id=self.update_id,
            message_id=message.message_id,
        )


@dataclass(frozen=True, slots=True)
class InboundEvent:
    chat_id: int
    user_id: int | None
    text: str
    update_id: int
    message_id: int | None = None

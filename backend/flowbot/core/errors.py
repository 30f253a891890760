"""Error taxonomy for the bot runtime.

Every error that can cross the HTTP boundary carries the status code and the
public message the gateway returns in its ``{"error": ...}`` payload.
"""

from __future__ import annotations


class FlowBotError(Exception):
    """Base exception for runtime errors."""

    status_code: int = 500
    public_message: str = "Internal server error"

    def __init__(self, message: str | None = None, *, details: str | None = None) -> None:
        self.message = message or self.public_message
        self.details = details
        super().__init__(self.message)

    def to_payload(self) -> dict[str, str]:
        payload = {"error": self.message}
        if self.details:
            payload["details"] = self.details
        return payload


class ManagementValidationError(FlowBotError):
    """A management request is missing required fields."""

    status_code = 400
    public_message = "Missing required fields"


class BotIdRequiredError(ManagementValidationError):
    """A stop request without ``botId``."""

    public_message = "Bot ID required"


class FlowValidationError(FlowBotError):
    """Flow data failed load-time validation (schema, duplicate ids, dangling edges)."""

    status_code = 400
    public_message = "Invalid flow data"


class CredentialInvalidError(FlowBotError):
    """The platform rejected the bot token."""

    status_code = 400
    public_message = "Invalid bot token"


class WebhookRegistrationError(FlowBotError):
    """The platform refused to register the webhook."""

    status_code = 500
    public_message = "Failed to set webhook"


class InstanceNotFoundError(FlowBotError):
    """No instance is registered for the bot id."""

    status_code = 404
    public_message = "Bot not found"

    def __init__(self, bot_id: str) -> None:
        super().__init__()
        self.bot_id = bot_id


class NodeExecutionError(FlowBotError):
    """A node's side effect failed; its successors are skipped."""

    def __init__(self, node_id: str, cause: BaseException) -> None:
        super().__init__(f"Node {node_id} failed: {cause}")
        self.node_id = node_id
        self.cause = cause


__all__ = [
    "BotIdRequiredError",
    "CredentialInvalidError",
    "FlowBotError",
    "FlowValidationError",
    "InstanceNotFoundError",
    "ManagementValidationError",
    "NodeExecutionError",
    "WebhookRegistrationError",
]

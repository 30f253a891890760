"""Base interfaces for integration node execution.

Integration nodes are the deployment-specific extension point of a flow. Each
integration type is served by one executor registered in the
``IntegrationRegistry``.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from flowbot.flow_core.context import ExecutionContext


@dataclass(frozen=True)
class IntegrationResult:
    """Result of an integration execution."""

    success: bool
    message: str
    error: str | None = None  # Technical error details if failed
    data: dict[str, Any] | None = None

    @property
    def is_success(self) -> bool:
        return self.success

    @property
    def is_failure(self) -> bool:
        return not self.success


class IntegrationExecutor(ABC):
    """Base interface for integration executors."""

    @abstractmethod
    async def execute(
        self, options: dict[str, Any], context: ExecutionContext
    ) -> IntegrationResult:
        """Run the integration for one node.

        Args:
            options: The node's integration settings (``url``, ``method``, free-form keys)
            context: Execution context of the current event

        Returns:
            IntegrationResult; a failed result fails the node and skips its successors
        """

    @property
    @abstractmethod
    def integration_type(self) -> str:
        """Value of ``integrationType`` this executor serves."""

"""Registry of integration executors keyed by integration type."""

from __future__ import annotations

import logging

from .base import IntegrationExecutor

logger = logging.getLogger(__name__)


class IntegrationRegistry:
    """Maps ``integrationType`` values to their executors."""

    def __init__(self, executors: list[IntegrationExecutor] | None = None) -> None:
        self._executors: dict[str, IntegrationExecutor] = {}
        for executor in executors or []:
            self.register(executor)

    def register(self, executor: IntegrationExecutor) -> None:
        """Register an executor.

        Raises:
            ValueError: If an executor with the same type is already registered
        """
        integration_type = executor.integration_type
        if integration_type in self._executors:
            raise ValueError(f"Integration executor '{integration_type}' is already registered")
        self._executors[integration_type] = executor
        logger.debug("Registered integration executor: %s", integration_type)

    def get_executor(self, integration_type: str | None) -> IntegrationExecutor | None:
        if integration_type is None:
            return None
        return self._executors.get(integration_type)

    def list_types(self) -> list[str]:
        return list(self._executors.keys())


def default_integration_registry(
    timeout: float = 10.0,
    *,
    webhook_enabled: bool = True,
    allow_private_hosts: bool = False,
) -> IntegrationRegistry:
    from .webhook import WebhookIntegration

    if not webhook_enabled:
        return IntegrationRegistry()
    return IntegrationRegistry(
        [WebhookIntegration(timeout=timeout, allow_private_hosts=allow_private_hosts)]
    )

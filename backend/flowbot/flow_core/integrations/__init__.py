from .base import IntegrationExecutor, IntegrationResult
from .registry import IntegrationRegistry, default_integration_registry
from .webhook import WebhookIntegration

__all__ = [
    "IntegrationExecutor",
    "IntegrationRegistry",
    "IntegrationResult",
    "WebhookIntegration",
    "default_integration_registry",
]

from __future__ import annotations

import asyncio
import ipaddress
import logging
import socket
from collections.abc import Callable
from typing import TYPE_CHECKING, Any
from urllib.parse import urlsplit

import requests

from .base import IntegrationExecutor, IntegrationResult

if TYPE_CHECKING:
    from flowbot.flow_core.context import ExecutionContext

logger = logging.getLogger(__name__)

_ALLOWED_METHODS = {"GET", "POST", "PUT", "PATCH", "DELETE"}
_ALLOWED_SCHEMES = {"http", "https"}

Resolver = Callable[[str], list[str]]


def resolve_host(host: str) -> list[str]:
    """Every address ``host`` resolves to."""
    return sorted({info[4][0] for info in socket.getaddrinfo(host, None)})


def is_internal_address(address: str) -> bool:
    ip = ipaddress.ip_address(address.split("%", 1)[0])
    if isinstance(ip, ipaddress.IPv6Address) and ip.ipv4_mapped is not None:
        ip = ip.ipv4_mapped
    return not ip.is_global or ip.is_multicast


class WebhookIntegration(IntegrationExecutor):
    """Calls an external HTTP endpoint with the event context.

    ``POST``/``PUT``/``PATCH`` send the context snapshot as JSON; ``GET`` and
    ``DELETE`` send it as query parameters. When the node names a ``variable``
    the decoded JSON (or raw text) response is stored under it.

    Only ``http``/``https`` URLs are called. Unless ``allow_private_hosts`` is
    set, a host resolving to a private, loopback or link-local address is
    refused, and redirects are never followed.
    """

    def __init__(
        self,
        timeout: float = 10.0,
        session: requests.Session | None = None,
        *,
        allow_private_hosts: bool = False,
        resolver: Resolver = resolve_host,
    ) -> None:
        self._timeout = timeout
        self._session = session or requests.Session()
        self._allow_private_hosts = allow_private_hosts
        self._resolver = resolver

    @property
    def integration_type(self) -> str:
        return "webhook"

    async def execute(
        self, options: dict[str, Any], context: ExecutionContext
    ) -> IntegrationResult:
        url = options.get("url")
        if not url:
            return IntegrationResult(success=False, message="Webhook URL missing", error="no url")
        method = str(options.get("method") or "POST").upper()
        if method not in _ALLOWED_METHODS:
            return IntegrationResult(
                success=False, message="Unsupported method", error=f"method={method}"
            )

        refusal = await asyncio.to_thread(self._check_target, str(url))
        if refusal is not None:
            logger.warning("Webhook integration to %s refused: %s", url, refusal)
            return IntegrationResult(success=False, message="Webhook URL not allowed", error=refusal)

        snapshot = context.snapshot()
        try:
            response = await asyncio.to_thread(self._request, method, url, snapshot)
        except requests.RequestException as exc:
            logger.warning("Webhook integration to %s failed: %s", url, exc)
            return IntegrationResult(success=False, message="Webhook call failed", error=str(exc))

        if response.status_code >= 400:
            return IntegrationResult(
                success=False,
                message="Webhook returned an error",
                error=f"HTTP {response.status_code}",
            )

        try:
            body: Any = response.json()
        except ValueError:
            body = response.text

        variable = options.get("variable")
        if isinstance(variable, str) and variable:
            context.set(variable, body)
        return IntegrationResult(
            success=True, message="Webhook called", data={"status": response.status_code}
        )

    def _check_target(self, url: str) -> str | None:
        """Reason ``url`` may not be called, or None when it may."""
        parts = urlsplit(url)
        if parts.scheme.lower() not in _ALLOWED_SCHEMES:
            return f"scheme {parts.scheme or '?'} not allowed"
        host = parts.hostname
        if not host:
            return "no host"
        if self._allow_private_hosts:
            return None
        try:
            addresses = self._resolver(host)
        except (OSError, UnicodeError) as exc:
            return f"cannot resolve {host}: {exc}"
        if not addresses:
            return f"cannot resolve {host}"
        internal = [a for a in addresses if is_internal_address(a)]
        if internal:
            return f"{host} resolves to internal address {internal[0]}"
        return None

    def _request(self, method: str, url: str, snapshot: dict[str, Any]) -> requests.Response:
        if method in ("GET", "DELETE"):
            params = {k: v for k, v in snapshot.items() if k != "variables"}
            return self._session.request(
                method, url, params=params, timeout=self._timeout, allow_redirects=False
            )
        return self._session.request(
            method, url, json=snapshot, timeout=self._timeout, allow_redirects=False
        )

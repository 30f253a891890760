#!/usr/bin/env python
"""
Run a flow JSON file locally, printing replies instead of calling Telegram.
Usage: flowbot-run path/to/flow.json
"""

from __future__ import annotations

import argparse
import asyncio
import json
from pathlib import Path
from typing import Any

from rich.console import Console
from rich.panel import Panel
from rich.prompt import Prompt

from flowbot.core.errors import FlowValidationError
from flowbot.runtime.registry import BotInstance
from flowbot.settings import get_settings
from flowbot.telegram.types import InboundEvent

from .integrations import default_integration_registry
from .ir import load_flow_graph
from .runner import FlowRunner

console = Console()


class ConsoleMessagingClient:
    """MessagingClient that renders outbound calls on the console."""

    def __init__(self, out: Console | None = None) -> None:
        self._out = out or console

    async def send_message(
        self, chat_id: int, text: str, reply_markup: dict[str, Any] | None = None
    ) -> dict[str, Any]:
        self._out.print(f"[bold green]bot[/bold green] {text}")
        self._print_buttons(reply_markup)
        return {"chat": {"id": chat_id}, "text": text}

    async def send_photo(
        self,
        chat_id: int,
        photo: str,
        caption: str | None = None,
        reply_markup: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        self._out.print(f"[bold green]bot[/bold green] [image {photo}] {caption or ''}")
        self._print_buttons(reply_markup)
        return {"chat": {"id": chat_id}, "caption": caption}

    async def set_webhook(self, url: str, secret_token: str | None = None) -> bool:
        return True

    async def delete_webhook(self) -> bool:
        return True

    async def get_me(self) -> dict[str, Any]:
        return {"id": 0, "is_bot": True, "username": "local_flowbot"}

    def _print_buttons(self, reply_markup: dict[str, Any] | None) -> None:
        if not reply_markup:
            return
        for row in reply_markup.get("inline_keyboard", []):
            labels = "  ".join(f"[reverse] {b['text']} [/reverse]" for b in row)
            self._out.print(f"    {labels}")


async def run_session(path: Path, chat_id: int = 1, user_id: int = 1) -> None:
    settings = get_settings()
    graph = load_flow_graph(json.loads(path.read_text(encoding="utf-8")))
    instance = BotInstance(
        bot_id="local",
        credential="",
        graph=graph,
        client=ConsoleMessagingClient(),
        webhook_url="",
    )
    runner = FlowRunner.from_settings(
        settings,
        integrations=default_integration_registry(
            settings.integration_timeout_seconds,
            webhook_enabled=settings.integration_webhook_enabled,
            allow_private_hosts=settings.integration_webhook_allow_private,
        ),
    )

    console.print(
        Panel(
            f"[bold cyan]{len(graph.nodes)} nodes, {len(graph.edges)} edges[/bold cyan]\n\n"
            "[yellow]Type 'exit' or 'quit' to stop[/yellow]",
            title=f"Flow {path.name}",
            border_style="blue",
        )
    )

    update_id = 0
    while True:
        text = Prompt.ask("[bold cyan]you[/bold cyan]")
        if text.lower() in ("exit", "quit"):
            console.print("[yellow]Goodbye![/yellow]")
            break
        update_id += 1
        event = InboundEvent(chat_id=chat_id, user_id=user_id, text=text, update_id=update_id)
        outcome = await runner.process_event(instance, event)
        if outcome.matched_triggers:
            console.print(f"[dim]triggers: {', '.join(outcome.matched_triggers)}[/dim]")


def run_cli() -> None:
    parser = argparse.ArgumentParser(description="Run a bot flow JSON interactively")
    parser.add_argument("json_path", type=Path, help="Path to flow JSON file")
    parser.add_argument("--chat-id", type=int, default=1)
    parser.add_argument("--user-id", type=int, default=1)
    args = parser.parse_args()

    try:
        asyncio.run(run_session(args.json_path, args.chat_id, args.user_id))
    except FlowValidationError as e:
        console.print(f"[red]Invalid flow:[/red] {e.details}")
        raise SystemExit(2) from e
    except KeyboardInterrupt:
        console.print("\n[yellow]Goodbye![/yellow]")


if __name__ == "__main__":
    run_cli()

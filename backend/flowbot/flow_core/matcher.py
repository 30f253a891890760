from __future__ import annotations

from .ir import FlowGraph, TriggerNode


def matches_trigger(node: TriggerNode, text: str) -> bool:
    """Return True when ``text`` fires ``node``.

    A command is only compared against slash-prefixed text and must match
    exactly; otherwise the keyword, if any, is searched as a substring. Both
    comparisons ignore case.
    """
    data = node.data
    folded = text.casefold()

    if data.command and text.startswith("/"):
        return folded == data.command.casefold()

    if data.keyword:
        return data.keyword.casefold() in folded

    return False


def match_triggers(graph: FlowGraph, text: str) -> list[TriggerNode]:
    """Matching trigger nodes in declaration order; empty means no match."""
    return [node for node in graph.trigger_nodes() if matches_trigger(node, text)]

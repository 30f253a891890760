from __future__ import annotations

import re
from collections.abc import Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .context import ExecutionContext

TRUE_HANDLE = "true"
FALSE_HANDLE = "false"

ComparisonFunction = Callable[[str, str], bool]

_CONDITION_RE = re.compile(
    r"^\s*(?P<operand>[A-Za-z_][\w.]*)\s*"
    r"(?:(?P<op>==|!=|\bcontains\b)\s*(?P<value>.+?))?\s*$",
    re.IGNORECASE,
)


def _equals(actual: str, expected: str) -> bool:
    return actual == expected


def _not_equals(actual: str, expected: str) -> bool:
    return actual != expected


def _contains(actual: str, expected: str) -> bool:
    return expected in actual


COMPARISONS: dict[str, ComparisonFunction] = {
    "==": _equals,
    "!=": _not_equals,
    "contains": _contains,
}


def _unquote(value: str) -> str:
    if len(value) >= 2 and value[0] == value[-1] and value[0] in ("'", '"'):
        return value[1:-1]
    return value


@dataclass(frozen=True, slots=True)
class Condition:
    """Compiled branching condition of a logic node."""

    operand: str | None
    op: str | None = None
    value: str | None = None

    def evaluate(self, context: ExecutionContext) -> bool:
        if self.operand is None:
            return False
        actual = context.resolve(self.operand)
        if self.op is None:
            return actual not in (None, "", False, 0)
        actual_text = "" if actual is None else str(actual).casefold()
        return COMPARISONS[self.op](actual_text, (self.value or "").casefold())

    def handle(self, context: ExecutionContext) -> str:
        return TRUE_HANDLE if self.evaluate(context) else FALSE_HANDLE


def parse_condition(expression: str | None) -> Condition:
    """Compile a condition expression.

    Supported forms: ``name``, ``name == value``, ``name != value`` and
    ``name contains value``. Raises ValueError for anything else.
    """
    if expression is None or not expression.strip():
        return Condition(operand=None)
    match = _CONDITION_RE.match(expression)
    if match is None:
        raise ValueError(f"Unsupported condition: {expression!r}")
    op = match.group("op")
    if op is None:
        return Condition(operand=match.group("operand"))
    return Condition(
        operand=match.group("operand"),
        op=op.lower(),
        value=_unquote(match.group("value").strip()),
    )

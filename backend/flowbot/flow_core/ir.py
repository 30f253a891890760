from __future__ import annotations

import json
from collections.abc import Mapping
from typing import Annotated, Any, Literal

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    PrivateAttr,
    ValidationError,
    field_validator,
    model_validator,
)

from flowbot.core.errors import FlowValidationError

from .conditions import Condition, parse_condition


class _NodeData(BaseModel):
    """Base for the per-kind ``data`` payload exported by the editor."""

    model_config = ConfigDict(extra="allow", frozen=True, populate_by_name=True)

    label: str | None = None
    description: str | None = None


class TriggerData(_NodeData):
    trigger_type: str | None = Field(default=None, alias="triggerType")
    command: str | None = None
    keyword: str | None = None


class KeyboardButton(BaseModel):
    model_config = ConfigDict(extra="allow", frozen=True)

    text: str
    action: str | None = None


class ActionData(_NodeData):
    action_type: str | None = Field(default=None, alias="actionType")
    message: str | None = None
    text: str | None = None
    image_url: str | None = Field(default=None, alias="imageUrl")
    buttons: tuple[KeyboardButton, ...] = ()

    @property
    def message_text(self) -> str | None:
        """Text to send; ``message`` takes precedence over the editor's ``text``."""
        return self.message or self.text or None


class LogicData(_NodeData):
    logic_type: str | None = Field(default=None, alias="logicType")
    condition: str | None = None
    variable: str | None = None
    value: Any = None
    # Seconds
    delay: float | None = None

    @field_validator("condition")
    @classmethod
    def _compile_condition(cls, value: str | None) -> str | None:
        parse_condition(value)
        return value

    @property
    def is_branching(self) -> bool:
        return self.logic_type == "condition" or bool(self.condition and self.condition.strip())

    @property
    def compiled_condition(self) -> Condition:
        return parse_condition(self.condition)


class IntegrationData(_NodeData):
    integration_type: str | None = Field(default=None, alias="integrationType")
    url: str | None = None
    method: str | None = None

    def options(self) -> dict[str, Any]:
        """All integration settings, including free-form keys."""
        options: dict[str, Any] = dict(self.model_extra or {})
        options.update({"url": self.url, "method": self.method, "label": self.label})
        return options


class BaseNode(BaseModel):
    """Base class for all node types."""

    model_config = ConfigDict(extra="ignore", frozen=True)

    id: str
    type: Literal["trigger", "action", "logic", "integration"]
    position: dict[str, Any] | None = None


class TriggerNode(BaseNode):
    """Entry point matched against inbound text."""

    type: Literal["trigger"] = "trigger"
    data: TriggerData = Field(default_factory=TriggerData)


class ActionNode(BaseNode):
    """Node that sends an outbound message."""

    type: Literal["action"] = "action"
    data: ActionData = Field(default_factory=ActionData)


class LogicNode(BaseNode):
    """Delay, variable write or condition branch."""

    type: Literal["logic"] = "logic"
    data: LogicData = Field(default_factory=LogicData)


class IntegrationNode(BaseNode):
    """Extension point resolved through the integration registry."""

    type: Literal["integration"] = "integration"
    data: IntegrationData = Field(default_factory=IntegrationData)


Node = Annotated[
    TriggerNode | ActionNode | LogicNode | IntegrationNode,
    Field(discriminator="type"),
]

NODE_CLASSES: tuple[type[BaseNode], ...] = (TriggerNode, ActionNode, LogicNode, IntegrationNode)


class Edge(BaseModel):
    """Directed edge; handles disambiguate multiple outputs of one node."""

    model_config = ConfigDict(extra="ignore", frozen=True, populate_by_name=True)

    id: str | None = None
    source: str
    target: str
    source_handle: str | None = Field(default=None, alias="sourceHandle")
    target_handle: str | None = Field(default=None, alias="targetHandle")


class FlowGraph(BaseModel):
    """Validated, read-only flow graph of one deployed bot."""

    model_config = ConfigDict(extra="ignore", frozen=True)

    nodes: tuple[Node, ...]
    edges: tuple[Edge, ...] = ()

    _nodes_by_id: dict[str, BaseNode] = PrivateAttr(default_factory=dict)
    _edges_from: dict[str, list[Edge]] = PrivateAttr(default_factory=dict)

    @model_validator(mode="after")
    def _check_references(self) -> FlowGraph:
        seen: set[str] = set()
        for node in self.nodes:
            if node.id in seen:
                raise ValueError(f"Duplicate node id: {node.id}")
            seen.add(node.id)
        for edge in self.edges:
            for endpoint in (edge.source, edge.target):
                if endpoint not in seen:
                    raise ValueError(
                        f"Edge {edge.id or '?'} references unknown node: {endpoint}"
                    )
        return self

    def model_post_init(self, __context: Any) -> None:
        self._nodes_by_id = {node.id: node for node in self.nodes}
        edges_from: dict[str, list[Edge]] = {}
        for edge in self.edges:
            edges_from.setdefault(edge.source, []).append(edge)
        self._edges_from = edges_from

    def node_by_id(self, node_id: str) -> BaseNode | None:
        return self._nodes_by_id.get(node_id)

    def trigger_nodes(self) -> list[TriggerNode]:
        """Trigger nodes in declaration order."""
        return [n for n in self.nodes if isinstance(n, TriggerNode)]

    def outgoing_edges(self, node_id: str, handle: str | None = None) -> list[Edge]:
        """Edges leaving ``node_id`` in declaration order.

        When ``handle`` is given only edges tagged with that source handle are
        returned.
        """
        edges = self._edges_from.get(node_id, [])
        if handle is None:
            return list(edges)
        return [e for e in edges if e.source_handle == handle]


def load_flow_graph(data: FlowGraph | Mapping[str, Any] | str) -> FlowGraph:
    """Build a FlowGraph from editor JSON, raising FlowValidationError on bad input."""
    if isinstance(data, FlowGraph):
        return data
    try:
        if isinstance(data, str):
            data = json.loads(data)
        return FlowGraph.model_validate(data)
    except json.JSONDecodeError as exc:
        raise FlowValidationError(details=f"Flow data is not valid JSON: {exc.msg}") from exc
    except ValidationError as exc:
        messages = "; ".join(
            f"{'.'.join(str(p) for p in err['loc']) or 'flow'}: {err['msg']}"
            for err in exc.errors()
        )
        raise FlowValidationError(details=messages) from exc

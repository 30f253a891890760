from .conditions import Condition, parse_condition
from .context import ExecutionContext
from .executor import FlowTraversal, NodeExecutor, TraversalLimits, TraversalResult
from .ir import (
    ActionNode,
    BaseNode,
    Edge,
    FlowGraph,
    IntegrationNode,
    LogicNode,
    Node,
    TriggerNode,
    load_flow_graph,
)
from .matcher import match_triggers, matches_trigger
from .runner import EventOutcome, FlowRunner

__all__ = [
    "ActionNode",
    "BaseNode",
    "Condition",
    "Edge",
    "EventOutcome",
    "ExecutionContext",
    "FlowGraph",
    "FlowRunner",
    "FlowTraversal",
    "IntegrationNode",
    "LogicNode",
    "Node",
    "NodeExecutor",
    "TraversalLimits",
    "TraversalResult",
    "TriggerNode",
    "load_flow_graph",
    "match_triggers",
    "matches_trigger",
    "parse_condition",
]

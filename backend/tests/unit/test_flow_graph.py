import pytest

from flowbot.core.errors import FlowValidationError
from flowbot.flow_core.conditions import FALSE_HANDLE, TRUE_HANDLE, parse_condition
from flowbot.flow_core.context import ExecutionContext
from flowbot.flow_core.ir import ActionNode, LogicNode, TriggerNode, load_flow_graph
from tests.flow_test_utils import action, edge, flow, logic, trigger


@pytest.mark.unit
def test_loads_editor_export_into_typed_nodes():
    graph = load_flow_graph(
        flow(
            [trigger("t1", command="/start"), action("a1", "Hi"), logic("l1", delay=2)],
            [edge("t1", "a1"), edge("a1", "l1")],
        )
    )

    assert isinstance(graph.node_by_id("t1"), TriggerNode)
    assert isinstance(graph.node_by_id("a1"), ActionNode)
    assert isinstance(graph.node_by_id("l1"), LogicNode)
    assert graph.node_by_id("a1").data.message_text == "Hi"
    assert [e.target for e in graph.outgoing_edges("t1")] == ["a1"]


@pytest.mark.unit
def test_action_message_field_wins_over_text():
    graph = load_flow_graph(flow([action("a1", "editor text", message="runtime text")]))

    assert graph.node_by_id("a1").data.message_text == "runtime text"


@pytest.mark.unit
def test_accepts_json_string():
    graph = load_flow_graph('{"nodes": [{"id": "t", "type": "trigger", "data": {}}]}')

    assert graph.node_by_id("t") is not None


@pytest.mark.unit
def test_dangling_edge_is_load_time_error():
    with pytest.raises(FlowValidationError) as excinfo:
        load_flow_graph(flow([trigger("t1", command="/start")], [edge("t1", "missing")]))

    assert "missing" in excinfo.value.details


@pytest.mark.unit
def test_duplicate_node_ids_rejected():
    with pytest.raises(FlowValidationError):
        load_flow_graph(flow([trigger("t1"), action("t1", "x")]))


@pytest.mark.unit
def test_unknown_node_type_rejected():
    with pytest.raises(FlowValidationError):
        load_flow_graph(flow([{"id": "x", "type": "teleport", "data": {}}]))


@pytest.mark.unit
def test_invalid_condition_rejected_at_load():
    with pytest.raises(FlowValidationError):
        load_flow_graph(flow([logic("c", logicType="condition", condition="a = = b")]))


@pytest.mark.unit
def test_graph_is_frozen():
    graph = load_flow_graph(flow([trigger("t1")]))

    with pytest.raises(Exception):
        graph.nodes = ()  # type: ignore[misc]


@pytest.mark.unit
def test_outgoing_edges_filtered_by_handle():
    graph = load_flow_graph(
        flow(
            [logic("c", condition="x"), action("yes", "y"), action("no", "n")],
            [edge("c", "yes", "true"), edge("c", "no", "false")],
        )
    )

    assert [e.target for e in graph.outgoing_edges("c", TRUE_HANDLE)] == ["yes"]
    assert [e.target for e in graph.outgoing_edges("c", FALSE_HANDLE)] == ["no"]
    assert [e.target for e in graph.outgoing_edges("c")] == ["yes", "no"]


@pytest.mark.unit
@pytest.mark.parametrize(
    ("expression", "variables", "text", "expected"),
    [
        ("plan", {"plan": "pro"}, "", True),
        ("plan", {}, "", False),
        ("plan == PRO", {"plan": "pro"}, "", True),
        ("plan == 'free'", {"plan": "pro"}, "", False),
        ("plan != free", {"plan": "pro"}, "", True),
        ('text contains "order"', {}, "Where is my ORDER?", True),
        ("text contains refund", {}, "hello", False),
        ("", {"x": "1"}, "", False),
    ],
)
def test_condition_evaluation(expression, variables, text, expected):
    context = ExecutionContext(chat_id=1, user_id=2, text=text, variables=dict(variables))

    assert parse_condition(expression).evaluate(context) is expected


@pytest.mark.unit
def test_variables_shadow_builtins():
    context = ExecutionContext(chat_id=1, user_id=2, text="hi", variables={"text": "bye"})

    assert parse_condition("text == bye").evaluate(context) is True

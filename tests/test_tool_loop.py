"""Tests for the bounded tool-calling loop."""

from unittest.mock import MagicMock

import pytest

from opspilot.models import ReasoningResponse, ToolInvocation, ToolResult
from opspilot.reasoning import Tool, ToolRegistry, run_tool_loop


def _tool_request(*invocations, text=""):
    return ReasoningResponse(
        text=text,
        tool_invocations=[ToolInvocation(id=i, name=n, input=inp) for i, n, inp in invocations],
    )


@pytest.fixture
def config_tool():
    func = MagicMock(return_value={"MemorySize": 128, "Timeout": 3})
    return func, Tool(
        name="get_lambda_config",
        description="Get Lambda function configuration",
        input_schema={"type": "object", "properties": {"functionName": {"type": "string"}}},
        func=func,
    )


def test_one_tool_call_then_answer(config_tool):
    func, tool = config_tool
    registry = ToolRegistry([tool])
    reasoning = MagicMock()
    reasoning.respond.side_effect = [
        _tool_request(("t-1", "get_lambda_config", {"functionName": "fn"})),
        ReasoningResponse(text="Memory too low"),
    ]

    result = run_tool_loop(reasoning, "Diagnose", registry, max_iterations=10)

    assert result.iterations == 2
    assert result.exhausted is False
    assert result.final_response == "Memory too low"
    assert len(result.tool_calls) == 1
    assert result.tool_calls[0].tool == "get_lambda_config"
    assert result.tool_calls[0].output == {"MemorySize": 128, "Timeout": 3}
    func.assert_called_once_with({"functionName": "fn"})
    assert [t.role for t in result.conversation] == ["user", "assistant", "user", "assistant"]
    assert reasoning.respond.call_args.kwargs["tools"] == registry.specs()


def test_always_requesting_tools_stops_at_max_iterations(config_tool):
    _, tool = config_tool
    reasoning = MagicMock()
    reasoning.respond.return_value = _tool_request(
        ("t-x", "get_lambda_config", {"functionName": "fn"}), text="Still looking"
    )

    result = run_tool_loop(reasoning, "Diagnose", ToolRegistry([tool]), max_iterations=3)

    assert reasoning.respond.call_count == 3
    assert result.iterations == 3
    assert result.exhausted is True
    assert result.final_response == "Still looking"
    assert len(result.tool_calls) == 3


def test_results_follow_request_order():
    registry = ToolRegistry(
        [
            Tool("a", "", {"type": "object"}, lambda params: {"tool": "a"}),
            Tool("b", "", {"type": "object"}, lambda params: {"tool": "b"}),
        ]
    )
    reasoning = MagicMock()
    reasoning.respond.side_effect = [
        _tool_request(("id-b", "b", {}), ("id-a", "a", {}), ("id-b2", "b", {})),
        ReasoningResponse(text="done"),
    ]

    result = run_tool_loop(reasoning, "Diagnose", registry)

    requests = result.conversation[1].content
    results = result.conversation[2].content
    assert len(results) == len(requests) == 3
    assert all(isinstance(r, ToolResult) for r in results)
    assert [r.invocation_id for r in results] == ["id-b", "id-a", "id-b2"]
    assert {r.invocation_id: r.content["tool"] for r in results} == {"id-b": "b", "id-a": "a", "id-b2": "b"}


def test_reused_invocation_id_keeps_each_result():
    registry = ToolRegistry(
        [
            Tool("a", "", {"type": "object"}, lambda params: {"tool": "a"}),
            Tool("b", "", {"type": "object"}, lambda params: {"tool": "b"}),
        ]
    )
    reasoning = MagicMock()
    reasoning.respond.side_effect = [
        _tool_request(("dup", "a", {}), ("dup", "b", {})),
        ReasoningResponse(text="done"),
    ]

    result = run_tool_loop(reasoning, "Diagnose", registry)

    assert [r.content for r in result.conversation[2].content] == [{"tool": "a"}, {"tool": "b"}]
    assert [(c.tool, c.output) for c in result.tool_calls] == [("a", {"tool": "a"}), ("b", {"tool": "b"})]


def test_unknown_tool_and_tool_error_become_error_results():
    def broken(params):
        raise RuntimeError("boom")

    registry = ToolRegistry([Tool("broken", "", {"type": "object"}, broken)])
    reasoning = MagicMock()
    reasoning.respond.side_effect = [
        _tool_request(("1", "missing", {}), ("2", "broken", {})),
        ReasoningResponse(text="answer"),
    ]

    result = run_tool_loop(reasoning, "Diagnose", registry)

    assert [c.status for c in result.tool_calls] == ["error", "error"]
    assert "Unknown tool" in result.tool_calls[0].output["error"]
    assert result.tool_calls[1].output == {"error": "boom"}
    assert result.final_response == "answer"


def test_reasoning_error_propagates(config_tool):
    reasoning = MagicMock()
    reasoning.respond.side_effect = RuntimeError("service down")
    with pytest.raises(RuntimeError):
        run_tool_loop(reasoning, "Diagnose", ToolRegistry([config_tool[1]]))


def test_max_iterations_must_be_positive(config_tool):
    with pytest.raises(ValueError):
        run_tool_loop(MagicMock(), "Diagnose", ToolRegistry([config_tool[1]]), max_iterations=0)


def test_tool_spec_shape(config_tool):
    spec = config_tool[1].spec()
    assert spec["toolSpec"]["name"] == "get_lambda_config"
    assert spec["toolSpec"]["inputSchema"]["json"]["type"] == "object"

"""Tests for the diagnosis requester."""

from unittest.mock import MagicMock

import pytest

from opspilot.errors import DiagnosisError, TransientIOError
from opspilot.models import ReasoningResponse, ToolInvocation
from opspilot.reasoning import DEFAULT_CONFIDENCE, DiagnosisRequester, Tool, ToolRegistry
from opspilot.reasoning.diagnosis import extract_confidence, extract_root_cause


@pytest.fixture
def reasoning():
    mock = MagicMock()
    mock.respond.return_value = ReasoningResponse(
        text="Timeout of 3 s is too low for the workload.\nConfidence: 0.7\nAffected: orders-handler"
    )
    return mock


def test_diagnose_single_request(reasoning):
    logs = [f"ERROR line {i:02d}" for i in range(15)]
    diagnosis = DiagnosisRequester(reasoning).diagnose(
        "High error rate", {"Errors": {"max": 42}}, logs, affected_components=["orders-handler"]
    )

    assert diagnosis.root_cause == "Timeout of 3 s is too low for the workload."
    assert diagnosis.confidence == 0.7
    assert diagnosis.related_metrics == ["Errors"]
    assert diagnosis.affected_components == ["orders-handler"]
    assert diagnosis.reasoning.startswith("Timeout of 3 s")
    assert diagnosis.tool_calls == []

    reasoning.respond.assert_called_once()
    kwargs = reasoning.respond.call_args.kwargs
    assert kwargs["temperature"] == 0.3
    assert kwargs["max_tokens"] == 2048
    assert "tools" not in kwargs
    prompt = reasoning.respond.call_args.args[0][0].content
    assert "High error rate" in prompt
    assert "ERROR line 09" in prompt
    assert "ERROR line 10" not in prompt


def test_confidence_defaults_when_not_reported(reasoning):
    reasoning.respond.return_value = ReasoningResponse(text="Memory exhaustion")
    diagnosis = DiagnosisRequester(reasoning).diagnose("x", {}, [])
    assert diagnosis.confidence == DEFAULT_CONFIDENCE == 0.85


def test_empty_response_gives_unknown_root_cause(reasoning):
    reasoning.respond.return_value = ReasoningResponse(text="")
    diagnosis = DiagnosisRequester(reasoning).diagnose("x", {}, [])
    assert diagnosis.root_cause == "Unknown"


def test_reasoning_failure_raises_diagnosis_error(reasoning):
    reasoning.respond.side_effect = TransientIOError("bedrock timeout")
    with pytest.raises(DiagnosisError):
        DiagnosisRequester(reasoning).diagnose("x", {}, [])


def test_diagnose_with_tools_runs_loop(reasoning):
    func = MagicMock(return_value={"Timeout": 3})
    registry = ToolRegistry([Tool("get_lambda_config", "", {"type": "object"}, func)])
    reasoning.respond.side_effect = [
        ReasoningResponse(
            tool_invocations=[ToolInvocation(id="t1", name="get_lambda_config", input={"functionName": "fn"})]
        ),
        ReasoningResponse(text="Timeout too low\nConfidence: 0.95"),
    ]

    diagnosis = DiagnosisRequester(reasoning, max_iterations=4).diagnose("x", {}, [], tools=registry)

    assert diagnosis.root_cause == "Timeout too low"
    assert diagnosis.confidence == 0.95
    assert len(diagnosis.tool_calls) == 1
    assert diagnosis.iterations_exhausted is False
    assert reasoning.respond.call_args.kwargs["temperature"] == 0.5


def test_diagnose_with_tools_exhausted(reasoning):
    registry = ToolRegistry([Tool("noop", "", {"type": "object"}, lambda params: {})])
    reasoning.respond.side_effect = None
    reasoning.respond.return_value = ReasoningResponse(
        text="Partial: throttling suspected",
        tool_invocations=[ToolInvocation(id="t", name="noop", input={})],
    )
    diagnosis = DiagnosisRequester(reasoning, max_iterations=2).diagnose("x", {}, [], tools=registry)
    assert diagnosis.iterations_exhausted is True
    assert diagnosis.root_cause == "Partial: throttling suspected"
    assert reasoning.respond.call_count == 2


def test_extract_helpers():
    assert extract_root_cause("\n\n  First real line  \nsecond") == "First real line"
    assert extract_confidence("confidence level = 0.4") == 0.4
    assert extract_confidence("Confidence: 1.5") == DEFAULT_CONFIDENCE
    assert extract_confidence("no number here", default=0.5) == 0.5

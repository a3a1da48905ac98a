"""Tests for post-remediation verification."""

from unittest.mock import MagicMock

import pytest

from opspilot.errors import TransientIOError
from opspilot.models import Incident, MetricSeries, Severity, VerificationCheck, VerificationResult
from opspilot.verification import Verifier


@pytest.fixture
def controller():
    mock = MagicMock()
    mock.check_health.return_value = (True, [])
    mock.invoke.return_value = {"status_code": 200, "payload": {"ok": True}, "function_error": None}
    return mock


@pytest.fixture
def telemetry():
    mock = MagicMock()
    mock.get_lambda_metrics.return_value = {
        "Errors": MetricSeries(metric_name="Errors", values=[0, 0, 0]),
    }
    return mock


def _by_name(result):
    return {c.name: c for c in result.checks}


def test_all_checks_pass(incident, controller, telemetry):
    result = Verifier(controller, telemetry).verify(incident)
    assert result.success is True
    assert result.metrics_improved is True
    assert [c.name for c in result.checks] == ["Lambda Health Check", "Test Invocation", "Metrics Check"]
    controller.invoke.assert_called_once_with("orders-handler", {"test": True}, mode="RequestResponse")
    start, end = telemetry.get_lambda_metrics.call_args.args[1:3]
    assert (end - start).total_seconds() == 300
    assert telemetry.get_lambda_metrics.call_args.kwargs["metric_names"] == ["Errors"]


def test_function_error_fails_invocation_check_only(incident, controller, telemetry):
    controller.invoke.return_value = {"status_code": 200, "payload": None, "function_error": "Unhandled"}
    result = Verifier(controller, telemetry).verify(incident)
    checks = _by_name(result)
    assert result.success is False
    assert checks["Test Invocation"].passed is False
    assert checks["Test Invocation"].details == "Unhandled"
    assert checks["Lambda Health Check"].passed is True
    assert checks["Metrics Check"].passed is True


def test_failing_check_does_not_abort_others(incident, controller, telemetry):
    controller.check_health.side_effect = TransientIOError("throttled")
    result = Verifier(controller, telemetry).verify(incident)
    checks = _by_name(result)
    assert len(checks) == 3
    assert checks["Lambda Health Check"].passed is False
    assert checks["Test Invocation"].passed is True
    assert result.success is False


def test_errors_in_window_fail_metrics_check(incident, controller, telemetry):
    telemetry.get_lambda_metrics.return_value = {
        "Errors": MetricSeries(metric_name="Errors", values=[0, 2, 1]),
    }
    result = Verifier(controller, telemetry).verify(incident)
    assert result.metrics_improved is False
    assert _by_name(result)["Metrics Check"].details == "Error count: 3"


def test_unhealthy_issues_reported(incident, controller, telemetry):
    controller.check_health.return_value = (False, ["Timeout is very low (< 3 seconds)"])
    result = Verifier(controller, telemetry).verify(incident)
    assert _by_name(result)["Lambda Health Check"].details == "Timeout is very low (< 3 seconds)"
    assert result.success is False


def test_checks_omitted_without_function_name(controller, telemetry):
    incident = Incident(
        severity=Severity.LOW,
        resource_arn="arn:aws:ecs:us-east-1:123456789012:service/cluster/web",
        description="ECS task restarts",
    )
    result = Verifier(controller, telemetry).verify(incident)
    assert result.checks == []
    assert result.success is True
    controller.check_health.assert_not_called()
    telemetry.get_lambda_metrics.assert_not_called()


def test_success_is_and_of_checks():
    result = VerificationResult.from_checks(
        [VerificationCheck(name="a", passed=True), VerificationCheck(name="b", passed=False)]
    )
    assert result.success is False

"""Tests for the AWS connectivity check."""

from unittest.mock import MagicMock

from opspilot.config import Settings
from opspilot.health import check_health


def _factory(failing=()):
    clients = {}

    def create(service, settings):
        client = MagicMock()
        if service in failing:
            error = RuntimeError(f"{service} unreachable")
            if service == "bedrock-runtime":
                raise error
            client.describe_table.side_effect = error
            client.get_function.side_effect = error
        clients[service] = client
        return client

    create.clients = clients
    return create


def test_all_services_reachable():
    factory = _factory()
    report = check_health(Settings(dynamodb_table_name="Audit", target_lambda_function="fn"), factory)
    assert report.status == "healthy"
    assert all(check.status == "ok" for check in report.checks.values())
    factory.clients["dynamodb"].describe_table.assert_called_once_with(TableName="Audit")
    factory.clients["lambda"].get_function.assert_called_once_with(FunctionName="fn")


def test_some_services_failing_is_degraded():
    report = check_health(Settings(), _factory(failing=("dynamodb",)))
    assert report.status == "degraded"
    assert report.checks["dynamodb"].status == "error"
    assert report.checks["dynamodb"].error == "dynamodb unreachable"
    assert report.checks["lambda"].status == "ok"


def test_all_services_failing_is_unhealthy():
    report = check_health(Settings(), _factory(failing=("bedrock-runtime", "dynamodb", "lambda")))
    assert report.status == "unhealthy"
    assert report.checks["bedrock"].error == "bedrock-runtime unreachable"

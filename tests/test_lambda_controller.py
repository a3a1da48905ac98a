"""Tests for the Lambda resource controller (boto3 client mocked)."""

import io
from unittest.mock import MagicMock

import pytest
from botocore.exceptions import ClientError

from opspilot.errors import TransientIOError
from opspilot.remediation import LambdaController


def _client_error(operation="GetFunctionConfiguration"):
    return ClientError({"Error": {"Code": "ResourceNotFoundException", "Message": "not found"}}, operation)


@pytest.fixture
def client():
    mock = MagicMock()
    mock.get_function_configuration.return_value = {
        "FunctionName": "fn",
        "MemorySize": 128,
        "Timeout": 3,
        "ResponseMetadata": {"HTTPStatusCode": 200},
    }
    mock.update_function_configuration.return_value = {
        "FunctionName": "fn",
        "MemorySize": 512,
        "Timeout": 30,
        "ResponseMetadata": {"HTTPStatusCode": 200},
    }
    mock.invoke.return_value = {
        "StatusCode": 200,
        "Payload": io.BytesIO(b'{"ok": true}'),
        "ExecutedVersion": "$LATEST",
    }
    return mock


def test_get_config_strips_response_metadata(client):
    config = LambdaController(client).get_config("fn")
    assert config == {"FunctionName": "fn", "MemorySize": 128, "Timeout": 3}
    client.get_function_configuration.assert_called_once_with(FunctionName="fn")


def test_get_config_client_error_is_transient(client):
    client.get_function_configuration.side_effect = _client_error()
    with pytest.raises(TransientIOError):
        LambdaController(client).get_config("fn")


def test_update_config_maps_delta_keys(client):
    result = LambdaController(client).update_config(
        "fn", {"memory_size": 512, "timeout": 30, "environment": {"LAST_RESTART": "now"}}
    )
    client.update_function_configuration.assert_called_once_with(
        FunctionName="fn",
        MemorySize=512,
        Timeout=30,
        Environment={"Variables": {"LAST_RESTART": "now"}},
    )
    assert result["MemorySize"] == 512
    assert "ResponseMetadata" not in result


def test_update_config_reserved_concurrency(client):
    result = LambdaController(client).update_config("fn", {"reserved_concurrency": 10})
    client.update_function_configuration.assert_not_called()
    client.put_function_concurrency.assert_called_once_with(
        FunctionName="fn", ReservedConcurrentExecutions=10
    )
    assert result["ReservedConcurrentExecutions"] == 10


def test_update_config_dry_run_changes_nothing(client):
    result = LambdaController(client, dry_run=True).update_config("fn", {"memory_size": 512, "timeout": 30})
    client.update_function_configuration.assert_not_called()
    assert result["MemorySize"] == 512
    assert result["Timeout"] == 30
    assert result["FunctionName"] == "fn"


def test_update_config_client_error_is_transient(client):
    client.update_function_configuration.side_effect = _client_error("UpdateFunctionConfiguration")
    with pytest.raises(TransientIOError):
        LambdaController(client).update_config("fn", {"memory_size": 512})


def test_invoke_decodes_payload(client):
    result = LambdaController(client).invoke("fn", {"test": True})
    assert result == {
        "status_code": 200,
        "payload": {"ok": True},
        "function_error": None,
        "executed_version": "$LATEST",
    }
    kwargs = client.invoke.call_args.kwargs
    assert kwargs["InvocationType"] == "RequestResponse"
    assert kwargs["Payload"] == b'{"test": true}'


def test_invoke_rejects_unknown_mode(client):
    with pytest.raises(ValueError):
        LambdaController(client).invoke("fn", {}, mode="Async")


def test_check_health_reports_low_settings(client):
    client.invoke.return_value = {"StatusCode": 204, "Payload": io.BytesIO(b"")}
    client.get_function_configuration.return_value = {"MemorySize": 128, "Timeout": 2}
    healthy, issues = LambdaController(client).check_health("fn")
    assert healthy is False
    assert len(issues) == 2
    assert client.invoke.call_args.kwargs["InvocationType"] == "DryRun"


def test_check_health_ok(client):
    client.get_function_configuration.return_value = {"MemorySize": 512, "Timeout": 30}
    client.invoke.return_value = {"StatusCode": 204, "Payload": io.BytesIO(b"")}
    assert LambdaController(client).check_health("fn") == (True, [])


def test_check_health_reports_failures_as_issues(client):
    client.get_function_configuration.side_effect = _client_error()
    healthy, issues = LambdaController(client).check_health("fn")
    assert healthy is False
    assert issues[0].startswith("Failed to check function health")

    client.get_function_configuration.side_effect = None
    client.get_function_configuration.return_value = {"MemorySize": 512, "Timeout": 30}
    client.invoke.side_effect = _client_error("Invoke")
    healthy, issues = LambdaController(client).check_health("fn")
    assert healthy is False
    assert issues[0].startswith("Test invocation failed")

"""Tests for the Lambda entry point."""

import json
from unittest.mock import patch

import pytest

from opspilot.config import Settings
from opspilot.handler import handle_event, handler, incident_from_event
from opspilot.models import ResourceType, Severity
from opspilot.workflow import build_responder

EVENT = {
    "severity": "high",
    "resourceArn": "arn:aws:lambda:us-east-1:123456789012:function:orders-handler",
    "description": "Lambda function experiencing high error rate",
    "metrics": {"errorRate": 15.5},
    "logs": ["ERROR: Timeout after 30 seconds"],
}


@pytest.fixture
def responder():
    return build_responder(Settings(simulate_aws=True))


def test_incident_from_event():
    incident = incident_from_event(EVENT)
    assert incident.severity == Severity.HIGH
    assert incident.resource_type == ResourceType.LAMBDA
    assert incident.function_name == "orders-handler"
    assert incident.metrics == {"errorRate": 15.5}


def test_incident_from_event_takes_type_from_arn():
    incident = incident_from_event(
        dict(EVENT, resourceArn="arn:aws:ecs:us-east-1:123456789012:service/cluster/web")
    )
    assert incident.resource_type == ResourceType.ECS


def test_incident_from_event_rejects_bad_severity():
    with pytest.raises(ValueError):
        incident_from_event(dict(EVENT, severity="urgent"))


def test_new_incident_then_status_query(responder):
    created = handle_event(EVENT, responder)
    body = json.loads(created["body"])

    assert created["statusCode"] == 200
    assert body["outcome"] == "resolved"
    assert body["status"] == "resolved"
    assert body["actionsExecuted"] == 1
    assert body["approvalRequired"] is False
    assert body["verification"]["success"] is True

    status = handle_event({"incidentId": body["incidentId"]}, responder)
    status_body = json.loads(status["body"])
    assert status_body["incident"]["status"] == "resolved"
    assert status_body["auditTrail"][0]["action"] == "incident_created"


def test_status_query_unknown_incident(responder):
    body = json.loads(handle_event({"incidentId": "incident-missing"}, responder)["body"])
    assert body["incident"] is None
    assert body["auditTrail"] == []


def test_handler_returns_500_on_bad_input(responder):
    with patch("opspilot.handler._default_responder", return_value=responder):
        response = handler(dict(EVENT, severity="urgent"))
    assert response["statusCode"] == 500
    assert "Invalid severity" in json.loads(response["body"])["error"]


def test_handler_processes_event(responder):
    with patch("opspilot.handler._default_responder", return_value=responder):
        response = handler(EVENT, None)
    assert response["statusCode"] == 200
    assert json.loads(response["body"])["message"] == "Incident processed successfully"


def test_handler_rejects_replay_of_resolved_incident(responder):
    with patch("opspilot.handler._default_responder", return_value=responder):
        first = json.loads(handler(EVENT)["body"])
        replay = handler(dict(EVENT, incidentId=first["incidentId"]))

    assert replay["statusCode"] == 409
    assert "already resolved" in json.loads(replay["body"])["error"]
    assert responder.incidents.get(first["incidentId"]).status.value == "resolved"

"""Shared fixtures: incidents and collaborator fakes."""

import pytest

from opspilot.models import Incident, Severity

FUNCTION_ARN = "arn:aws:lambda:us-east-1:123456789012:function:orders-handler"


@pytest.fixture
def incident():
    return Incident(
        id="incident-abc123",
        severity=Severity.HIGH,
        resource_arn=FUNCTION_ARN,
        description="Lambda function experiencing high error rate",
        logs=["ERROR: Task timed out after 3.00 seconds"],
    )


@pytest.fixture(autouse=True)
def _isolated_env(monkeypatch, tmp_path):
    """Keep developer .env files and AWS settings out of Settings()."""
    monkeypatch.chdir(tmp_path)
    for name in ("USE_DYNAMODB", "REASONING_USE_BEDROCK", "SIMULATE_AWS", "STORAGE_DATA_DIR"):
        monkeypatch.delenv(name, raising=False)

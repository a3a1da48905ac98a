"""Connectivity check for the AWS services OpsPilot depends on."""

import logging
from typing import Any, Literal

from pydantic import BaseModel, Field

from opspilot.clients import create_aws_client
from opspilot.config import Settings, get_settings
from opspilot.models import utc_now

logger = logging.getLogger(__name__)


class ServiceCheck(BaseModel):
    status: Literal["ok", "error"]
    error: str | None = None


class HealthReport(BaseModel):
    timestamp: str = Field(default_factory=lambda: utc_now().isoformat())
    status: Literal["healthy", "degraded", "unhealthy"]
    checks: dict[str, ServiceCheck] = Field(default_factory=dict)


def _check_service(name: str, call: Any) -> ServiceCheck:
    try:
        call()
    except Exception as e:
        logger.warning("Health check %s failed: %s", name, e)
        return ServiceCheck(status="error", error=str(e))
    return ServiceCheck(status="ok")


def check_health(settings: Settings | None = None, client_factory: Any = create_aws_client) -> HealthReport:
    """
    Bedrock (client construction), DynamoDB (DescribeTable on the audit table)
    and the target Lambda (GetFunction). Any failure → degraded; all → unhealthy.
    """
    settings = settings or get_settings()
    checks = {
        "bedrock": _check_service("bedrock", lambda: client_factory("bedrock-runtime", settings)),
        "dynamodb": _check_service(
            "dynamodb",
            lambda: client_factory("dynamodb", settings).describe_table(
                TableName=settings.dynamodb_table_name
            ),
        ),
        "lambda": _check_service(
            "lambda",
            lambda: client_factory("lambda", settings).get_function(
                FunctionName=settings.target_lambda_function
            ),
        ),
    }
    failed = [name for name, check in checks.items() if check.status == "error"]
    if not failed:
        status = "healthy"
    elif len(failed) == len(checks):
        status = "unhealthy"
    else:
        status = "degraded"
    return HealthReport(status=status, checks=checks)

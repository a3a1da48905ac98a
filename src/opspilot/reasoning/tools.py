"""Read-only investigation tools offered to the reasoning service."""

from datetime import datetime, timedelta, timezone
from typing import Any

from opspilot.interfaces import ResourceController, TelemetrySource
from opspilot.reasoning.tool_loop import Tool, ToolRegistry


def _parse_time(value: str | None, default: datetime) -> datetime:
    if not value:
        return default
    return datetime.fromisoformat(str(value).replace("Z", "+00:00"))


def build_default_tools(
    telemetry: TelemetrySource,
    controller: ResourceController,
    window_seconds: int = 3600,
) -> ToolRegistry:
    """
    Register metrics, logs, config and dry-run tools.

    Every tool only reads: the loop may call the same tool several times.
    """

    def _window(params: dict[str, Any]) -> tuple[datetime, datetime]:
        now = datetime.now(timezone.utc)
        end = _parse_time(params.get("endTime"), now)
        start = _parse_time(params.get("startTime"), end - timedelta(seconds=window_seconds))
        return start, end

    def get_cloudwatch_metrics(params: dict[str, Any]) -> dict[str, Any]:
        start, end = _window(params)
        series = telemetry.get_metrics(
            params["namespace"],
            params["metricName"],
            params.get("dimensions") or {},
            start,
            end,
            int(params.get("period") or 300),
        )
        return series.model_dump(mode="json")

    def query_logs(params: dict[str, Any]) -> dict[str, Any]:
        start, end = _window(params)
        entries = telemetry.query_logs(
            params["logGroupName"],
            start,
            end,
            params.get("filterPattern"),
            int(params.get("limit") or 50),
        )
        return {"events": [e.model_dump(mode="json") for e in entries]}

    def get_lambda_config(params: dict[str, Any]) -> dict[str, Any]:
        return controller.get_config(params["functionName"])

    def dry_run_lambda_invocation(params: dict[str, Any]) -> dict[str, Any]:
        return controller.invoke(params["functionName"], {}, "DryRun")

    time_props = {
        "startTime": {"type": "string", "description": "ISO-8601 start (default: 1 hour ago)"},
        "endTime": {"type": "string", "description": "ISO-8601 end (default: now)"},
    }
    return ToolRegistry(
        [
            Tool(
                name="get_cloudwatch_metrics",
                description="Retrieve CloudWatch metrics for analysis",
                input_schema={
                    "type": "object",
                    "properties": {
                        "namespace": {"type": "string"},
                        "metricName": {"type": "string"},
                        "dimensions": {"type": "object"},
                        "period": {"type": "integer"},
                        **time_props,
                    },
                    "required": ["namespace", "metricName", "dimensions"],
                },
                func=get_cloudwatch_metrics,
            ),
            Tool(
                name="query_logs",
                description="Query CloudWatch Logs for error analysis",
                input_schema={
                    "type": "object",
                    "properties": {
                        "logGroupName": {"type": "string"},
                        "filterPattern": {"type": "string"},
                        "limit": {"type": "integer"},
                        **time_props,
                    },
                    "required": ["logGroupName"],
                },
                func=query_logs,
            ),
            Tool(
                name="get_lambda_config",
                description="Get Lambda function configuration",
                input_schema={
                    "type": "object",
                    "properties": {"functionName": {"type": "string"}},
                    "required": ["functionName"],
                },
                func=get_lambda_config,
            ),
            Tool(
                name="dry_run_lambda_invocation",
                description="Validate that the Lambda function can be invoked (DryRun, no execution)",
                input_schema={
                    "type": "object",
                    "properties": {"functionName": {"type": "string"}},
                    "required": ["functionName"],
                },
                func=dry_run_lambda_invocation,
            ),
        ]
    )

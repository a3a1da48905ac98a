"""Simulated Lambda function and CloudWatch telemetry for demo and development."""

import copy
from datetime import datetime, timedelta
from typing import Any

from opspilot.models import Incident, LogEntry, LogLevel, MetricSeries, Severity
from opspilot.telemetry.cloudwatch import LAMBDA_METRICS, LAMBDA_NAMESPACE

DEMO_FUNCTION_ARN = "arn:aws:lambda:us-east-1:123456789012:function:orders-handler"

# Misconfigured until remediated: timeouts under load
_INITIAL_CONFIG = {
    "FunctionName": "orders-handler",
    "Runtime": "python3.12",
    "MemorySize": 128,
    "Timeout": 3,
    "Environment": {"Variables": {"STAGE": "demo"}},
}

_ERROR_LOGS = [
    "Task timed out after 3.00 seconds",
    "ERROR Runtime exited with error: signal: killed (memory)",
    "ERROR Unable to connect to inventory-service",
]


def sample_incident(resource_arn: str | None = None) -> Incident:
    """A high-severity Lambda error-rate incident."""
    return Incident(
        severity=Severity.HIGH,
        resource_arn=resource_arn or DEMO_FUNCTION_ARN,
        description="Test incident - Lambda function experiencing high error rate",
        metrics={"errorRate": 15.5, "avgDuration": 25000, "throttles": 5},
        logs=[
            "ERROR: Timeout after 30 seconds",
            "WARN: High memory usage",
            "ERROR: Unable to connect to dependency",
        ],
    )


class SimulatedLambda:
    """
    Resource controller over an in-memory function configuration.

    The function counts as healthy once memory and timeout have been raised
    above the misconfigured defaults.
    """

    def __init__(self, config: dict[str, Any] | None = None) -> None:
        self._configs: dict[str, dict[str, Any]] = {}
        self._template = copy.deepcopy(config or _INITIAL_CONFIG)

    def _config(self, resource_id: str) -> dict[str, Any]:
        if resource_id not in self._configs:
            config = copy.deepcopy(self._template)
            config["FunctionName"] = resource_id
            self._configs[resource_id] = config
        return self._configs[resource_id]

    def is_remediated(self, resource_id: str) -> bool:
        config = self._config(resource_id)
        return config["MemorySize"] >= 256 and config["Timeout"] >= 10

    def get_config(self, resource_id: str) -> dict[str, Any]:
        return copy.deepcopy(self._config(resource_id))

    def update_config(self, resource_id: str, delta: dict[str, Any]) -> dict[str, Any]:
        config = self._config(resource_id)
        if delta.get("memory_size") is not None:
            config["MemorySize"] = delta["memory_size"]
        if delta.get("timeout") is not None:
            config["Timeout"] = delta["timeout"]
        if delta.get("environment") is not None:
            config["Environment"] = {"Variables": dict(delta["environment"])}
        if delta.get("reserved_concurrency") is not None:
            config["ReservedConcurrentExecutions"] = delta["reserved_concurrency"]
        return copy.deepcopy(config)

    def invoke(self, resource_id: str, payload: Any, mode: str = "RequestResponse") -> dict[str, Any]:
        if mode == "DryRun":
            return {"status_code": 204, "payload": None, "function_error": None, "executed_version": "$LATEST"}
        if not self.is_remediated(resource_id):
            return {
                "status_code": 200,
                "payload": {"errorMessage": "Task timed out after 3.00 seconds"},
                "function_error": "Unhandled",
                "executed_version": "$LATEST",
            }
        return {
            "status_code": 200,
            "payload": {"ok": True, "echo": payload},
            "function_error": None,
            "executed_version": "$LATEST",
        }

    def check_health(self, resource_id: str) -> tuple[bool, list[str]]:
        config = self._config(resource_id)
        issues = []
        if config["Timeout"] < 3:
            issues.append("Timeout is very low (< 3 seconds)")
        if config["MemorySize"] < 256:
            issues.append("Memory size is very low (< 256 MB)")
        return not issues, issues


class SimulatedTelemetry:
    """Synthetic Lambda metrics and logs; errors stop once the function is remediated."""

    def __init__(self, function: SimulatedLambda, points: int = 12) -> None:
        self._function = function
        self._points = points

    def _series_values(self, function_name: str, metric_name: str) -> list[float]:
        healthy = self._function.is_remediated(function_name)
        n = self._points
        if metric_name == "Errors":
            return [0.0] * n if healthy else [float(i % 2) for i in range(n - 1)] + [42.0]
        if metric_name == "Duration":
            return [180.0] * n if healthy else [200.0 + 20 * (i % 2) for i in range(n - 1)] + [3000.0]
        if metric_name == "Invocations":
            return [120.0] * n
        return [0.0] * n

    def get_metrics(
        self,
        namespace: str,
        metric_name: str,
        dimensions: dict[str, str],
        start: datetime,
        end: datetime,
        period: int = 300,
        stat: str = "Average",
    ) -> MetricSeries:
        function_name = dimensions.get("FunctionName", "")
        values = self._series_values(function_name, metric_name)
        step = (end - start) / max(len(values), 1)
        return MetricSeries(
            metric_name=metric_name,
            namespace=namespace,
            dimensions=dimensions,
            timestamps=[start + step * i for i in range(len(values))],
            values=values,
        )

    def get_lambda_metrics(
        self,
        function_name: str,
        start: datetime,
        end: datetime,
        period: int = 300,
        metric_names: list[str] | None = None,
    ) -> dict[str, MetricSeries]:
        return {
            name: self.get_metrics(
                LAMBDA_NAMESPACE, name, {"FunctionName": function_name}, start, end, period
            )
            for name in metric_names or LAMBDA_METRICS
        }

    def query_logs(
        self,
        log_group: str,
        start: datetime,
        end: datetime,
        pattern: str | None = None,
        limit: int = 100,
    ) -> list[LogEntry]:
        function_name = log_group.rsplit("/", 1)[-1]
        if self._function.is_remediated(function_name):
            return []
        messages = [m for m in _ERROR_LOGS if not pattern or pattern.lower() in m.lower()]
        return [
            LogEntry(timestamp=end - timedelta(seconds=30 * i), message=m, level=LogLevel.ERROR)
            for i, m in enumerate(messages[:limit])
        ]

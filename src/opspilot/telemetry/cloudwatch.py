"""CloudWatch metrics and CloudWatch Logs access for investigation and verification."""

from __future__ import annotations

import logging
import re
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timezone
from typing import Any

from botocore.exceptions import BotoCoreError, ClientError

from opspilot.errors import TransientIOError
from opspilot.models import LogEntry, LogLevel, MetricSeries

logger = logging.getLogger(__name__)

LAMBDA_NAMESPACE = "AWS/Lambda"
LAMBDA_METRICS = ["Errors", "Duration", "Throttles", "ConcurrentExecutions", "Invocations"]

# Counters are summed per period; everything else is averaged
_LAMBDA_METRIC_STATS = {
    "Errors": "Sum",
    "Throttles": "Sum",
    "Invocations": "Sum",
    "ConcurrentExecutions": "Maximum",
    "Duration": "Average",
}

_REQUEST_ID_RE = re.compile(r"RequestId:\s*([a-f0-9-]+)", re.IGNORECASE)


def lambda_log_group(function_name: str) -> str:
    """Default log group for a Lambda function name."""
    return f"/aws/lambda/{function_name}"


def _classify_level(message: str) -> LogLevel:
    if "ERROR" in message or "Error" in message:
        return LogLevel.ERROR
    if "WARN" in message or "Warning" in message:
        return LogLevel.WARN
    if "DEBUG" in message:
        return LogLevel.DEBUG
    return LogLevel.INFO


def _extract_request_id(message: str) -> str | None:
    match = _REQUEST_ID_RE.search(message)
    return match.group(1) if match else None


def _to_epoch_ms(dt: datetime) -> int:
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return int(dt.timestamp() * 1000)


class CloudWatchTelemetry:
    """
    Telemetry source backed by CloudWatch (GetMetricData) and CloudWatch Logs
    (FilterLogEvents).

    Independent metric fetches run concurrently on a small thread pool; boto3
    clients are safe to share across threads.
    """

    def __init__(self, cloudwatch_client: Any, logs_client: Any, max_workers: int = 5) -> None:
        self._cloudwatch = cloudwatch_client
        self._logs = logs_client
        self._max_workers = max_workers

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
        """Fetch one metric as an ascending time series."""
        query = {
            "Id": "m1",
            "MetricStat": {
                "Metric": {
                    "Namespace": namespace,
                    "MetricName": metric_name,
                    "Dimensions": [{"Name": k, "Value": v} for k, v in dimensions.items()],
                },
                "Period": period,
                "Stat": stat,
            },
        }
        timestamps: list[datetime] = []
        values: list[float] = []
        kwargs: dict[str, Any] = {
            "MetricDataQueries": [query],
            "StartTime": start,
            "EndTime": end,
            "ScanBy": "TimestampAscending",
        }
        try:
            while True:
                response = self._cloudwatch.get_metric_data(**kwargs)
                for result in response.get("MetricDataResults") or []:
                    timestamps.extend(result.get("Timestamps") or [])
                    values.extend(float(v) for v in result.get("Values") or [])
                next_token = response.get("NextToken")
                if not next_token:
                    break
                kwargs["NextToken"] = next_token
        except (BotoCoreError, ClientError) as e:
            raise TransientIOError(f"GetMetricData {namespace}/{metric_name} failed: {e}") from e

        return MetricSeries(
            metric_name=metric_name,
            namespace=namespace,
            dimensions=dict(dimensions),
            timestamps=timestamps,
            values=values,
            unit="None",
        )

    def get_multiple_metrics(
        self,
        queries: list[dict[str, Any]],
        start: datetime,
        end: datetime,
        period: int = 300,
    ) -> list[MetricSeries]:
        """
        Fetch several metrics concurrently and join them.

        Each query is a dict with namespace, metric_name, dimensions and
        optional stat. Results keep the order of `queries`. A failed fetch is
        logged and left out; the error is raised only when every fetch failed.
        """
        if not queries:
            return []
        with ThreadPoolExecutor(max_workers=min(self._max_workers, len(queries))) as pool:
            futures = [
                pool.submit(
                    self.get_metrics,
                    q["namespace"],
                    q["metric_name"],
                    q.get("dimensions") or {},
                    start,
                    end,
                    period,
                    q.get("stat", "Average"),
                )
                for q in queries
            ]
            series: list[MetricSeries] = []
            failures: list[TransientIOError] = []
            for query, future in zip(queries, futures):
                try:
                    series.append(future.result())
                except TransientIOError as e:
                    logger.warning(
                        "Skipping metric %s: %s", query["metric_name"], e, exc_info=True
                    )
                    failures.append(e)
        if failures and not series:
            raise failures[0]
        return series

    def get_lambda_metrics(
        self,
        function_name: str,
        start: datetime,
        end: datetime,
        period: int = 300,
        metric_names: list[str] | None = None,
    ) -> dict[str, MetricSeries]:
        """
        Fetch Lambda metrics for a function, keyed by metric name.

        Defaults to the standard set. Metrics that could not be fetched are
        missing from the result.
        """
        names = metric_names or LAMBDA_METRICS
        dimensions = {"FunctionName": function_name}
        series = self.get_multiple_metrics(
            [
                {
                    "namespace": LAMBDA_NAMESPACE,
                    "metric_name": name,
                    "dimensions": dimensions,
                    "stat": _LAMBDA_METRIC_STATS.get(name, "Average"),
                }
                for name in names
            ],
            start,
            end,
            period,
        )
        return {s.metric_name: s for s in series}

    def query_logs(
        self,
        log_group: str,
        start: datetime,
        end: datetime,
        pattern: str | None = None,
        limit: int = 100,
    ) -> list[LogEntry]:
        """Return up to `limit` log events from the group within the window."""
        entries: list[LogEntry] = []
        kwargs: dict[str, Any] = {
            "logGroupName": log_group,
            "startTime": _to_epoch_ms(start),
            "endTime": _to_epoch_ms(end),
            "limit": limit,
        }
        if pattern:
            kwargs["filterPattern"] = pattern
        try:
            while len(entries) < limit:
                response = self._logs.filter_log_events(**kwargs)
                for event in response.get("events") or []:
                    message = event.get("message", "")
                    ts = event.get("timestamp")
                    entries.append(
                        LogEntry(
                            timestamp=(
                                datetime.fromtimestamp(ts / 1000, tz=timezone.utc)
                                if ts is not None
                                else datetime.now(timezone.utc)
                            ),
                            message=message,
                            level=_classify_level(message),
                            request_id=_extract_request_id(message),
                        )
                    )
                next_token = response.get("nextToken")
                if not next_token:
                    break
                kwargs["nextToken"] = next_token
                kwargs["limit"] = limit - len(entries)
        except (BotoCoreError, ClientError) as e:
            raise TransientIOError(f"FilterLogEvents {log_group} failed: {e}") from e
        return entries[:limit]

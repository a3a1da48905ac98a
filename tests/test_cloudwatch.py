"""Tests for CloudWatch metrics and logs access (boto3 clients mocked)."""

from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock

import pytest
from botocore.exceptions import ClientError

from opspilot.errors import TransientIOError
from opspilot.models import LogLevel
from opspilot.telemetry import CloudWatchTelemetry, lambda_log_group
from opspilot.telemetry.cloudwatch import LAMBDA_METRICS

END = datetime(2025, 2, 11, 12, 0, tzinfo=timezone.utc)
START = END - timedelta(hours=1)


def test_get_metrics_follows_next_token():
    cloudwatch = MagicMock()
    t0 = START
    cloudwatch.get_metric_data.side_effect = [
        {"MetricDataResults": [{"Timestamps": [t0], "Values": [1]}], "NextToken": "page-2"},
        {"MetricDataResults": [{"Timestamps": [t0 + timedelta(minutes=5)], "Values": [2.5]}]},
    ]
    telemetry = CloudWatchTelemetry(cloudwatch, MagicMock())

    series = telemetry.get_metrics("AWS/Lambda", "Errors", {"FunctionName": "fn"}, START, END, stat="Sum")

    assert series.values == [1.0, 2.5]
    assert len(series.timestamps) == 2
    assert list(series.points)[1] == (t0 + timedelta(minutes=5), 2.5)
    first_call, second_call = cloudwatch.get_metric_data.call_args_list
    query = first_call.kwargs["MetricDataQueries"][0]
    assert query["MetricStat"]["Stat"] == "Sum"
    assert query["MetricStat"]["Metric"]["Dimensions"] == [{"Name": "FunctionName", "Value": "fn"}]
    assert first_call.kwargs["ScanBy"] == "TimestampAscending"
    assert second_call.kwargs["NextToken"] == "page-2"


def test_get_lambda_metrics_fetches_every_metric_with_its_stat():
    cloudwatch = MagicMock()
    cloudwatch.get_metric_data.return_value = {"MetricDataResults": [{"Timestamps": [], "Values": []}]}
    telemetry = CloudWatchTelemetry(cloudwatch, MagicMock())

    metrics = telemetry.get_lambda_metrics("fn", START, END)

    assert list(metrics) == LAMBDA_METRICS
    stats = {
        call.kwargs["MetricDataQueries"][0]["MetricStat"]["Metric"]["MetricName"]: call.kwargs[
            "MetricDataQueries"
        ][0]["MetricStat"]["Stat"]
        for call in cloudwatch.get_metric_data.call_args_list
    }
    assert stats["Errors"] == "Sum"
    assert stats["Duration"] == "Average"
    assert stats["ConcurrentExecutions"] == "Maximum"


def test_get_metrics_client_error_is_transient():
    cloudwatch = MagicMock()
    cloudwatch.get_metric_data.side_effect = ClientError(
        {"Error": {"Code": "Throttling", "Message": "Rate exceeded"}}, "GetMetricData"
    )
    with pytest.raises(TransientIOError):
        CloudWatchTelemetry(cloudwatch, MagicMock()).get_lambda_metrics("fn", START, END)


def test_get_lambda_metrics_keeps_metrics_that_succeeded():
    def get_metric_data(**kwargs):
        name = kwargs["MetricDataQueries"][0]["MetricStat"]["Metric"]["MetricName"]
        if name == "Throttles":
            raise ClientError({"Error": {"Code": "Throttling", "Message": "Rate exceeded"}}, "GetMetricData")
        return {"MetricDataResults": [{"Timestamps": [START], "Values": [3]}]}

    cloudwatch = MagicMock()
    cloudwatch.get_metric_data.side_effect = get_metric_data

    metrics = CloudWatchTelemetry(cloudwatch, MagicMock()).get_lambda_metrics("fn", START, END)

    assert list(metrics) == [name for name in LAMBDA_METRICS if name != "Throttles"]
    assert metrics["Errors"].values == [3.0]


def test_get_lambda_metrics_only_requested_names():
    cloudwatch = MagicMock()
    cloudwatch.get_metric_data.return_value = {"MetricDataResults": [{"Timestamps": [], "Values": []}]}

    metrics = CloudWatchTelemetry(cloudwatch, MagicMock()).get_lambda_metrics(
        "fn", START, END, metric_names=["Errors"]
    )

    assert list(metrics) == ["Errors"]
    assert cloudwatch.get_metric_data.call_count == 1


def test_query_logs_with_pattern_and_pagination():
    logs = MagicMock()
    ts = int(END.timestamp() * 1000)
    logs.filter_log_events.side_effect = [
        {
            "events": [{"timestamp": ts, "message": "ERROR RequestId: 1a2b-3c4d Task timed out"}],
            "nextToken": "n1",
        },
        {"events": [{"timestamp": ts, "message": "WARN high memory"}]},
    ]
    entries = CloudWatchTelemetry(MagicMock(), logs).query_logs(
        lambda_log_group("fn"), START, END, pattern="ERROR", limit=10
    )

    assert [e.level for e in entries] == [LogLevel.ERROR, LogLevel.WARN]
    assert entries[0].request_id == "1a2b-3c4d"
    assert entries[0].timestamp == END
    first_call, second_call = logs.filter_log_events.call_args_list
    assert first_call.kwargs["logGroupName"] == "/aws/lambda/fn"
    assert first_call.kwargs["filterPattern"] == "ERROR"
    assert second_call.kwargs["nextToken"] == "n1"
    assert second_call.kwargs["limit"] == 9


def test_query_logs_without_pattern_and_limit():
    logs = MagicMock()
    logs.filter_log_events.return_value = {
        "events": [{"timestamp": 0, "message": f"line {i}"} for i in range(5)],
        "nextToken": "more",
    }
    entries = CloudWatchTelemetry(MagicMock(), logs).query_logs("/aws/lambda/fn", START, END, limit=3)
    assert len(entries) == 3
    assert "filterPattern" not in logs.filter_log_events.call_args.kwargs
    logs.filter_log_events.assert_called_once()

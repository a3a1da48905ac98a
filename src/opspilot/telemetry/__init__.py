"""
Telemetry analyzer.

Fetches CloudWatch metrics and logs for the target function and flags
statistical anomalies in the returned series.
"""

from opspilot.telemetry.anomaly import analyze_anomalies, summarize_metrics
from opspilot.telemetry.cloudwatch import CloudWatchTelemetry, lambda_log_group

__all__ = ["CloudWatchTelemetry", "analyze_anomalies", "lambda_log_group", "summarize_metrics"]

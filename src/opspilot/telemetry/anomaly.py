"""Z-score anomaly detection over metric series."""

import math
from collections.abc import Sequence
from typing import Any

from opspilot.models import Anomaly, AnomalyReport, MetricSeries

DEFAULT_Z_THRESHOLD = 2.0
MIN_POINTS = 3


def _mean_std(values: Sequence[float]) -> tuple[float, float]:
    """Population mean and standard deviation."""
    mean = sum(values) / len(values)
    variance = sum((v - mean) ** 2 for v in values) / len(values)
    return mean, math.sqrt(variance)


def _zscore(value: float, mean: float, std: float) -> float:
    if std == 0:
        return 0.0
    return abs(value - mean) / std


def analyze_anomalies(
    series: MetricSeries | Sequence[float],
    z_threshold: float = DEFAULT_Z_THRESHOLD,
    leave_one_out: bool = True,
) -> AnomalyReport:
    """
    Flag points whose z-score exceeds `z_threshold`.

    Series with fewer than 3 points, and series with zero variance, never
    report an anomaly. A zero standard deviation scores 0.

    With `leave_one_out` (default) each point is scored against the population
    mean and standard deviation of the *other* points, so a single outlier
    cannot inflate the spread it is measured against. When the other points
    are all equal and the point differs from them, it is scored against the
    whole series instead. With the inclusive variant the largest reachable
    z-score of an n-point series is sqrt(n - 1), so short windows cannot flag
    anything at the default threshold.

    Deterministic and side-effect free.
    """
    if isinstance(series, MetricSeries):
        values = list(series.values)
        timestamps = list(series.timestamps)
    else:
        values = [float(v) for v in series]
        timestamps = []

    if len(values) < MIN_POINTS:
        return AnomalyReport(has_anomaly=False, anomalies=[])

    mean, std = _mean_std(values)
    if std == 0:
        return AnomalyReport(has_anomaly=False, anomalies=[])

    anomalies: list[Anomaly] = []
    for index, value in enumerate(values):
        if leave_one_out:
            ref_mean, ref_std = _mean_std(values[:index] + values[index + 1 :])
            if ref_std == 0 and value != ref_mean:
                zscore = _zscore(value, mean, std)
            else:
                zscore = _zscore(value, ref_mean, ref_std)
        else:
            zscore = _zscore(value, mean, std)
        if zscore > z_threshold:
            anomalies.append(
                Anomaly(
                    index=index,
                    value=value,
                    zscore=zscore,
                    timestamp=timestamps[index] if index < len(timestamps) else None,
                )
            )
    return AnomalyReport(has_anomaly=bool(anomalies), anomalies=anomalies)


def summarize_metrics(
    metrics: dict[str, MetricSeries],
    z_threshold: float = DEFAULT_Z_THRESHOLD,
) -> dict[str, Any]:
    """JSON-serialisable summary of each series plus its anomalies, for prompts and audit."""
    summary: dict[str, Any] = {}
    for name, series in metrics.items():
        values = series.values
        report = analyze_anomalies(series, z_threshold)
        summary[name] = {
            "namespace": series.namespace,
            "datapoints": len(values),
            "values": values,
            "min": min(values) if values else None,
            "max": max(values) if values else None,
            "mean": (sum(values) / len(values)) if values else None,
            "latest": values[-1] if values else None,
            "anomalies": [a.model_dump(mode="json") for a in report.anomalies],
        }
    return summary

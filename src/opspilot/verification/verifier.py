"""Verifies a function's health after remediation actions."""

import logging
from datetime import timedelta

from opspilot.interfaces import ResourceController, TelemetrySource
from opspilot.models import Incident, VerificationCheck, VerificationResult, utc_now

logger = logging.getLogger(__name__)

DEFAULT_WINDOW_SECONDS = 300
TEST_PAYLOAD = {"test": True}


class Verifier:
    """
    Runs three independent checks against the incident's function:

      Lambda Health Check  controller.check_health
      Test Invocation      synchronous invoke with a test payload
      Metrics Check        Errors summed over the recent window must be zero

    A check that raises is recorded as failed; the others still run. When the
    incident carries no function name the checks are omitted.
    """

    def __init__(
        self,
        controller: ResourceController,
        telemetry: TelemetrySource,
        window_seconds: int = DEFAULT_WINDOW_SECONDS,
    ) -> None:
        self._controller = controller
        self._telemetry = telemetry
        self._window_seconds = window_seconds

    def _health_check(self, function_name: str) -> VerificationCheck:
        try:
            healthy, issues = self._controller.check_health(function_name)
        except Exception as e:
            logger.warning("Health check failed for %s: %s", function_name, e, exc_info=True)
            return VerificationCheck(name="Lambda Health Check", passed=False, details=str(e))
        return VerificationCheck(
            name="Lambda Health Check",
            passed=healthy,
            details=", ".join(issues) or "All checks passed",
        )

    def _test_invocation(self, function_name: str) -> VerificationCheck:
        try:
            result = self._controller.invoke(function_name, TEST_PAYLOAD, mode="RequestResponse")
        except Exception as e:
            logger.warning("Test invocation failed for %s: %s", function_name, e, exc_info=True)
            return VerificationCheck(name="Test Invocation", passed=False, details=str(e))
        function_error = result.get("function_error")
        return VerificationCheck(
            name="Test Invocation",
            passed=result.get("status_code") == 200 and not function_error,
            details=function_error or "Function invoked successfully",
        )

    def _metrics_check(self, function_name: str) -> VerificationCheck:
        end = utc_now()
        start = end - timedelta(seconds=self._window_seconds)
        try:
            metrics = self._telemetry.get_lambda_metrics(
                function_name, start, end, metric_names=["Errors"]
            )
        except Exception as e:
            logger.warning("Metrics check failed for %s: %s", function_name, e, exc_info=True)
            return VerificationCheck(name="Metrics Check", passed=False, details=str(e))
        errors = metrics.get("Errors")
        error_count = sum(errors.values) if errors else 0
        return VerificationCheck(
            name="Metrics Check",
            passed=error_count == 0,
            details=f"Error count: {error_count:g}",
        )

    def verify(self, incident: Incident) -> VerificationResult:
        function_name = incident.function_name
        checks: list[VerificationCheck] = []
        metrics_improved = False
        if function_name:
            checks.append(self._health_check(function_name))
            checks.append(self._test_invocation(function_name))
            metrics_check = self._metrics_check(function_name)
            metrics_improved = metrics_check.passed
            checks.append(metrics_check)
        result = VerificationResult.from_checks(checks, metrics_improved=metrics_improved)
        logger.info(
            "Verification completed",
            extra={"incident_id": incident.id, "success": result.success, "checks": len(checks)},
        )
        return result

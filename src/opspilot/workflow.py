"""
Closed-loop incident response workflow.

  Incident → Investigate (metrics + logs) → Diagnose (Bedrock) → Plan
    → Safety gate → Execute (under resource lease) → Verify
"""

import logging
from concurrent.futures import ThreadPoolExecutor
from datetime import timedelta
from typing import Any

from opspilot.clients import create_aws_client, create_aws_resource
from opspilot.config import Settings, get_settings
from opspilot.errors import IncidentStateError, OpsPilotError
from opspilot.interfaces import (
    AuditSink,
    IncidentStore,
    ReasoningService,
    ResourceController,
    TelemetrySource,
)
from opspilot.models import (
    AuditEntry,
    AuditResult,
    DiagnosisResult,
    ExecutionResult,
    Incident,
    IncidentOutcome,
    IncidentResponse,
    IncidentStatus,
    LogEntry,
    LogLevel,
    MetricSeries,
    RemediationPlan,
    VerificationResult,
    utc_now,
)
from opspilot.planner import RemediationPlanner
from opspilot.reasoning import (
    BedrockReasoningService,
    DiagnosisRequester,
    StubReasoningService,
    ToolRegistry,
    build_default_tools,
)
from opspilot.remediation import ExecutionSequencer, LambdaController, ResourceLocks
from opspilot.safety import SafetyGate
from opspilot.simulator import SimulatedLambda, SimulatedTelemetry, sample_incident
from opspilot.storage import AuditLog, DynamoDBAuditLog, DynamoDBIncidentStore
from opspilot.storage import IncidentStore as MemoryIncidentStore
from opspilot.telemetry import CloudWatchTelemetry, lambda_log_group, summarize_metrics
from opspilot.utils import extract_error_message
from opspilot.verification import Verifier

logger = logging.getLogger(__name__)

ERROR_LOG_PATTERN = "ERROR"


class IncidentResponder:
    """
    Drives one incident through every phase, sequentially.

    Collaborators are injected; `build_responder` wires the AWS-backed (or
    simulated) ones from Settings.
    """

    def __init__(
        self,
        telemetry: TelemetrySource,
        reasoning: ReasoningService,
        controller: ResourceController,
        incidents: IncidentStore,
        audit: AuditSink,
        settings: Settings | None = None,
        tools: ToolRegistry | None = None,
        locks: ResourceLocks | None = None,
    ) -> None:
        self._settings = settings or get_settings()
        s = self._settings
        self._telemetry = telemetry
        self._controller = controller
        self.incidents = incidents
        self.audit = audit
        self._locks = locks or ResourceLocks()
        if tools is None and s.diagnosis_use_tools:
            tools = build_default_tools(telemetry, controller, window_seconds=s.investigation_window_seconds)
        self._tools = tools
        self._gate = SafetyGate(
            max_actions=s.max_actions,
            max_memory_mb=s.max_memory_mb,
            max_timeout_seconds=s.max_timeout_seconds,
        )
        self.diagnosis = DiagnosisRequester(
            reasoning,
            temperature=s.diagnosis_temperature,
            max_tokens=s.diagnosis_max_tokens,
            max_log_samples=s.log_sample_limit,
            max_iterations=s.tool_loop_max_iterations,
            tool_loop_temperature=s.tool_loop_temperature,
            tool_loop_max_tokens=s.tool_loop_max_tokens,
        )
        self.planner = RemediationPlanner(
            reasoning,
            self._gate,
            controller=controller,
            temperature=s.planning_temperature,
            max_tokens=s.planning_max_tokens,
            structured=s.planner_structured_output,
            memory_mb=s.default_memory_mb,
            timeout_seconds=s.default_timeout_seconds,
        )
        self.sequencer = ExecutionSequencer(
            controller, audit, strict_action_types=s.strict_action_types
        )
        self.verifier = Verifier(controller, telemetry, window_seconds=s.verification_window_seconds)

    # Side channels: log and swallow so the workflow does not crash on storage errors

    def _record(
        self,
        incident_id: str,
        action: str,
        details: dict[str, Any] | None = None,
        result: AuditResult = AuditResult.SUCCESS,
    ) -> None:
        entry = AuditEntry(incident_id=incident_id, action=action, details=details or {}, result=result)
        try:
            self.audit.append(entry)
        except Exception as e:
            logger.warning("Audit write failed (%s): %s", action, e, exc_info=True)

    def _set_status(
        self,
        incident: Incident,
        status: IncidentStatus,
        details: dict[str, Any] | None = None,
    ) -> None:
        incident.transition_to(status)
        try:
            self.incidents.update_status(incident.id, status, details)
        except Exception as e:
            logger.warning("Incident status update failed: %s", e, exc_info=True)
        self._record(incident.id, "status_updated", {"new_status": status.value, **(details or {})})

    def _reject(self, incident: Incident, error: IncidentStateError) -> None:
        logger.warning("Rejected incident %s: %s", incident.id, error)
        self._record(
            incident.id,
            "incident_rejected",
            {"error": str(error), "error_type": type(error).__name__},
            result=AuditResult.FAILURE,
        )

    def _ensure_not_closed(self, incident: Incident) -> None:
        try:
            stored = self.incidents.get(incident.id)
        except Exception as e:
            logger.warning("Failed to read incident %s: %s", incident.id, e, exc_info=True)
            return
        if stored is not None and stored.status.is_terminal:
            raise IncidentStateError(f"Incident {incident.id} is already {stored.status.value}")

    def _fail(self, incident: Incident, phase: str, error: Exception) -> str:
        message = str(error) or type(error).__name__
        logger.error(
            "Phase %s failed for %s: %s", phase, incident.id, message,
            exc_info=not isinstance(error, OpsPilotError),
        )
        self._record(
            incident.id,
            f"{phase}_failed",
            {"error": message, "error_type": type(error).__name__},
            result=AuditResult.FAILURE,
        )
        if not incident.status.is_terminal:
            self._set_status(incident, IncidentStatus.FAILED, {"phase": phase, "error": message})
        return message

    # Phases

    def gather_evidence(self, incident: Incident) -> tuple[dict[str, MetricSeries], list[LogEntry]]:
        """
        Fetch Lambda metrics and ERROR logs concurrently. Either fetch may
        fail; the investigation continues with whatever was retrieved.
        """
        function_name = incident.function_name
        if not function_name:
            return {}, []
        s = self._settings
        end = utc_now()
        start = end - timedelta(seconds=s.investigation_window_seconds)
        with ThreadPoolExecutor(max_workers=2) as pool:
            metrics_future = pool.submit(
                self._telemetry.get_lambda_metrics, function_name, start, end, s.metric_period_seconds
            )
            logs_future = pool.submit(
                self._telemetry.query_logs,
                lambda_log_group(function_name),
                start,
                end,
                ERROR_LOG_PATTERN,
                s.log_query_limit,
            )
            metrics: dict[str, MetricSeries] = {}
            logs: list[LogEntry] = []
            try:
                metrics = metrics_future.result()
            except Exception as e:
                logger.warning("Metric fetch failed for %s: %s", function_name, e, exc_info=True)
            try:
                logs = logs_future.result()
            except Exception as e:
                logger.warning("Log query failed for %s: %s", function_name, e, exc_info=True)
        return metrics, logs

    def investigate(self, incident: Incident) -> DiagnosisResult:
        """Gather telemetry, flag anomalies and ask for a diagnosis."""
        metrics, logs = self.gather_evidence(incident)
        summary = summarize_metrics(metrics, self._settings.anomaly_z_threshold)
        anomalies = {name: m["anomalies"] for name, m in summary.items() if m["anomalies"]}
        log_samples = [entry.message for entry in logs] + list(incident.logs)
        self._record(
            incident.id,
            "investigation_completed",
            {
                "metrics": sorted(metrics),
                "log_events": len(logs),
                "error_logs": sum(1 for e in logs if e.level == LogLevel.ERROR),
                "anomalies": anomalies,
                "first_error": extract_error_message(log_samples),
            },
        )

        prompt_metrics: dict[str, Any] = dict(summary)
        if incident.metrics:
            prompt_metrics["reported"] = incident.metrics
        diagnosis = self.diagnosis.diagnose(
            incident.description,
            prompt_metrics,
            log_samples,
            tools=self._tools,
            affected_components=[incident.function_name or incident.resource_arn],
        )
        self._record(
            incident.id,
            "diagnosis_completed",
            {
                "root_cause": diagnosis.root_cause,
                "confidence": diagnosis.confidence,
                "tool_calls": len(diagnosis.tool_calls),
            },
        )
        if diagnosis.iterations_exhausted:
            self._record(
                incident.id,
                "iterations_exhausted",
                {"max_iterations": self._settings.tool_loop_max_iterations},
            )
        return diagnosis

    def plan(self, incident: Incident, diagnosis: DiagnosisResult) -> RemediationPlan:
        plan = self.planner.plan(incident, diagnosis)
        self._record(
            incident.id,
            "plan_created",
            {
                "plan_id": plan.id,
                "action_count": len(plan.actions),
                "actions": [a.type.value for a in plan.ordered_actions()],
                "approval_required": plan.approval_required,
                "failed_checks": [c.type.value for c in plan.safety_checks if not c.passed],
            },
        )
        return plan

    def execute(self, incident: Incident, plan: RemediationPlan) -> list[ExecutionResult]:
        """Run the plan while holding the lease on the incident's resource."""
        with self._locks.hold(incident.resource_arn, self._settings.execution_lease_timeout_seconds):
            return self.sequencer.execute(plan)

    def verify(self, incident: Incident) -> VerificationResult:
        verification = self.verifier.verify(incident)
        self._record(
            incident.id,
            "verification_completed",
            {
                "success": verification.success,
                "metrics_improved": verification.metrics_improved,
                "checks": [c.model_dump() for c in verification.checks],
            },
            result=AuditResult.SUCCESS if verification.success else AuditResult.FAILURE,
        )
        return verification

    def handle_incident(self, incident: Incident) -> IncidentResponse:
        """
        Run every phase for the incident. Phase failures mark the incident
        failed and are returned in the response, not raised.

        An id that is already resolved or failed is rejected with
        IncidentStateError and the stored record is left untouched.
        """
        logger.info("Starting incident response", extra={"incident_id": incident.id})
        try:
            self._ensure_not_closed(incident)
            self.incidents.save(incident)
        except IncidentStateError as e:
            self._reject(incident, e)
            raise
        except Exception as e:
            logger.warning("Failed to record incident: %s", e, exc_info=True)
        self._record(
            incident.id,
            "incident_created",
            {"severity": incident.severity.value, "resource_arn": incident.resource_arn},
        )
        response = IncidentResponse(incident=incident, outcome=IncidentOutcome.FAILED)

        try:
            self._set_status(incident, IncidentStatus.INVESTIGATING)
        except OpsPilotError as e:
            response.error = self._fail(incident, "investigation", e)
            return response

        try:
            response.diagnosis = self.investigate(incident)
        except Exception as e:
            response.error = self._fail(incident, "diagnosis", e)
            return response

        try:
            response.plan = self.plan(incident, response.diagnosis)
        except Exception as e:
            response.error = self._fail(incident, "planning", e)
            return response

        self._set_status(incident, IncidentStatus.REMEDIATING)
        plan = response.plan
        if plan.approval_required:
            logger.info("Plan requires approval; awaiting external decision", extra={"plan_id": plan.id})
            self._record(
                incident.id,
                "approval_required",
                {"plan_id": plan.id, "checks": [c.model_dump() for c in plan.safety_checks]},
            )
            response.outcome = IncidentOutcome.AWAITING_APPROVAL
            return response

        try:
            response.execution_results = self.execute(incident, plan)
        except Exception as e:
            response.error = self._fail(incident, "execution", e)
            return response
        failed = next((r for r in response.execution_results if not r.success), None)
        if failed is not None:
            response.error = failed.error or f"Action {failed.action_id} failed"
            self._set_status(
                incident,
                IncidentStatus.FAILED,
                {"failed_action": failed.action_id, "error": response.error},
            )
            return response

        try:
            response.verification = self.verify(incident)
        except Exception as e:
            response.error = self._fail(incident, "verification", e)
            return response

        verified = response.verification.success
        self._set_status(
            incident,
            IncidentStatus.RESOLVED if verified else IncidentStatus.FAILED,
            {
                "diagnosis": response.diagnosis.root_cause,
                "actions_executed": len(response.execution_results),
                "verified": verified,
            },
        )
        response.outcome = IncidentOutcome.RESOLVED if verified else IncidentOutcome.FAILED
        logger.info(
            "Incident response finished",
            extra={"incident_id": incident.id, "outcome": response.outcome.value},
        )
        return response


def build_stores(settings: Settings) -> tuple[Any, Any]:
    """(incident store, audit log): DynamoDB when enabled, otherwise in-memory."""
    if settings.use_dynamodb:
        dynamodb = create_aws_resource("dynamodb", settings)
        return (
            DynamoDBIncidentStore(dynamodb, settings.dynamodb_table_name),
            DynamoDBAuditLog(dynamodb, settings.dynamodb_table_name),
        )
    data_dir = settings.storage_data_dir or None
    return MemoryIncidentStore(data_dir=data_dir), AuditLog(data_dir=data_dir)


def build_responder(settings: Settings | None = None) -> IncidentResponder:
    """Wire collaborators from settings: boto3-backed or simulated AWS, Bedrock or stub reasoning."""
    settings = settings or get_settings()
    if settings.simulate_aws:
        controller: Any = SimulatedLambda()
        telemetry: Any = SimulatedTelemetry(controller)
    else:
        telemetry = CloudWatchTelemetry(
            create_aws_client("cloudwatch", settings),
            create_aws_client("logs", settings),
        )
        controller = LambdaController(create_aws_client("lambda", settings), dry_run=settings.dry_run)
    if settings.reasoning_use_bedrock:
        reasoning: Any = BedrockReasoningService(
            create_aws_client("bedrock-runtime", settings), settings.bedrock_model_id
        )
    else:
        reasoning = StubReasoningService()
    incidents, audit = build_stores(settings)
    return IncidentResponder(telemetry, reasoning, controller, incidents, audit, settings=settings)


def run_once(resource_arn: str | None = None, settings: Settings | None = None) -> IncidentResponse:
    """Run one full cycle against a sample incident."""
    responder = build_responder(settings)
    return responder.handle_incident(sample_incident(resource_arn))

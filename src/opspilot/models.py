"""Shared data models for the OpsPilot incident-response pipeline."""

import re
from collections.abc import Iterator
from datetime import datetime, timezone
from enum import Enum
from typing import Any
from uuid import uuid4

from pydantic import BaseModel, Field, model_validator

from opspilot.errors import IncidentStateError


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def new_id() -> str:
    return str(uuid4())


_FUNCTION_NAME_RE = re.compile(r"function:([^:]+)")


class Severity(str, Enum):
    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class ResourceType(str, Enum):
    LAMBDA = "lambda"
    ECS = "ecs"
    EC2 = "ec2"
    RDS = "rds"


class IncidentStatus(str, Enum):
    """Incident lifecycle: open → investigating → remediating → resolved | failed."""

    OPEN = "open"
    INVESTIGATING = "investigating"
    REMEDIATING = "remediating"
    RESOLVED = "resolved"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (IncidentStatus.RESOLVED, IncidentStatus.FAILED)


ALLOWED_TRANSITIONS: dict[IncidentStatus, frozenset[IncidentStatus]] = {
    IncidentStatus.OPEN: frozenset({IncidentStatus.INVESTIGATING, IncidentStatus.FAILED}),
    IncidentStatus.INVESTIGATING: frozenset({IncidentStatus.REMEDIATING, IncidentStatus.FAILED}),
    IncidentStatus.REMEDIATING: frozenset({IncidentStatus.RESOLVED, IncidentStatus.FAILED}),
    IncidentStatus.RESOLVED: frozenset(),
    IncidentStatus.FAILED: frozenset(),
}


class Incident(BaseModel):
    """A tracked operational problem on one resource."""

    id: str = Field(default_factory=lambda: f"incident-{uuid4().hex[:12]}")
    timestamp: datetime = Field(default_factory=utc_now)
    severity: Severity
    resource_arn: str
    resource_type: ResourceType = ResourceType.LAMBDA
    description: str
    metrics: dict[str, float] = Field(default_factory=dict)
    logs: list[str] = Field(default_factory=list)
    status: IncidentStatus = IncidentStatus.OPEN

    @property
    def function_name(self) -> str | None:
        """Lambda function name from the resource ARN, or None."""
        match = _FUNCTION_NAME_RE.search(self.resource_arn or "")
        return match.group(1) if match else None

    def transition_to(self, status: IncidentStatus) -> None:
        """Move to `status`; terminal incidents and skipped phases are rejected."""
        if status not in ALLOWED_TRANSITIONS[self.status]:
            raise IncidentStateError(
                f"Incident {self.id}: transition {self.status.value} -> {status.value} not allowed"
            )
        self.status = status


class MetricSeries(BaseModel):
    """Read-only snapshot of one metric over a bounded window."""

    metric_name: str
    namespace: str = ""
    dimensions: dict[str, str] = Field(default_factory=dict)
    timestamps: list[datetime] = Field(default_factory=list)
    values: list[float] = Field(default_factory=list)
    unit: str = "None"

    @property
    def points(self) -> Iterator[tuple[datetime, float]]:
        return zip(self.timestamps, self.values)


class LogLevel(str, Enum):
    ERROR = "ERROR"
    WARN = "WARN"
    INFO = "INFO"
    DEBUG = "DEBUG"


class LogEntry(BaseModel):
    timestamp: datetime
    message: str
    level: LogLevel = LogLevel.INFO
    request_id: str | None = None


class Anomaly(BaseModel):
    index: int
    value: float
    zscore: float
    timestamp: datetime | None = None


class AnomalyReport(BaseModel):
    has_anomaly: bool
    anomalies: list[Anomaly] = Field(default_factory=list)


class DiagnosisResult(BaseModel):
    """Output of root cause analysis."""

    root_cause: str
    confidence: float = Field(ge=0.0, le=1.0)
    affected_components: list[str] = Field(default_factory=list)
    related_metrics: list[str] = Field(default_factory=list)
    reasoning: str = ""
    timestamp: datetime = Field(default_factory=utc_now)
    # Set when the diagnosis ran through the tool loop
    tool_calls: list["ToolCallRecord"] = Field(default_factory=list)
    iterations_exhausted: bool = False


class RemediationActionType(str, Enum):
    UPDATE_CONFIG = "update_config"
    RESTART_SERVICE = "restart_service"
    SCALE_RESOURCES = "scale_resources"
    ROLLBACK = "rollback"
    CUSTOM = "custom"


class RemediationAction(BaseModel):
    id: str = Field(default_factory=new_id)
    type: RemediationActionType
    description: str = ""
    parameters: dict[str, Any] = Field(default_factory=dict)
    rollback_plan: list["RemediationAction"] = Field(default_factory=list)
    order: int


class SafetyCheckType(str, Enum):
    RATE_LIMIT = "rate_limit"
    RESOURCE_LIMIT = "resource_limit"
    DEPENDENCY_CHECK = "dependency_check"
    ROLLBACK_AVAILABLE = "rollback_available"


class SafetyCheck(BaseModel):
    type: SafetyCheckType
    description: str = ""
    passed: bool
    details: str = ""


class RemediationPlan(BaseModel):
    """Ordered actions plus the guardrail verdict that gates their execution."""

    id: str = Field(default_factory=new_id)
    incident_id: str
    actions: list[RemediationAction] = Field(default_factory=list)
    estimated_impact: str = ""
    safety_checks: list[SafetyCheck] = Field(default_factory=list)
    approval_required: bool
    narrative: str = ""
    created_at: datetime = Field(default_factory=utc_now)

    @model_validator(mode="after")
    def _approval_matches_checks(self) -> "RemediationPlan":
        expected = any(not check.passed for check in self.safety_checks)
        if self.approval_required != expected:
            raise ValueError(
                "approval_required must be true exactly when a safety check failed"
            )
        return self

    def ordered_actions(self) -> list[RemediationAction]:
        return sorted(self.actions, key=lambda a: a.order)


class ExecutionResult(BaseModel):
    action_id: str
    success: bool
    executed_at: datetime = Field(default_factory=utc_now)
    output: Any = None
    error: str | None = None
    rollback_executed: bool = False


class VerificationCheck(BaseModel):
    name: str
    passed: bool
    details: str = ""


class VerificationResult(BaseModel):
    success: bool
    timestamp: datetime = Field(default_factory=utc_now)
    checks: list[VerificationCheck] = Field(default_factory=list)
    metrics_improved: bool = False

    @classmethod
    def from_checks(
        cls, checks: list[VerificationCheck], metrics_improved: bool = False
    ) -> "VerificationResult":
        """Overall success is the AND of every check present."""
        return cls(
            success=all(c.passed for c in checks),
            checks=checks,
            metrics_improved=metrics_improved,
        )


class AuditActor(str, Enum):
    SYSTEM = "system"
    USER = "user"


class AuditResult(str, Enum):
    SUCCESS = "success"
    FAILURE = "failure"


class AuditEntry(BaseModel):
    """Append-only record of one orchestration step."""

    id: str = Field(default_factory=new_id)
    incident_id: str
    timestamp: datetime = Field(default_factory=utc_now)
    action: str
    actor: AuditActor = AuditActor.SYSTEM
    details: dict[str, Any] = Field(default_factory=dict)
    result: AuditResult = AuditResult.SUCCESS


# Reasoning-service conversation contract


class ToolInvocation(BaseModel):
    """A tool call requested by the reasoning service."""

    id: str
    name: str
    input: dict[str, Any] = Field(default_factory=dict)


class ToolResult(BaseModel):
    invocation_id: str
    content: Any = None
    status: str = "success"  # "success" | "error"


class ConversationTurn(BaseModel):
    role: str  # "user" | "assistant"
    content: str | list[ToolInvocation] | list[ToolResult]


class ReasoningResponse(BaseModel):
    text: str = ""
    tool_invocations: list[ToolInvocation] = Field(default_factory=list)


class ToolCallRecord(BaseModel):
    invocation_id: str
    tool: str
    input: dict[str, Any] = Field(default_factory=dict)
    output: Any = None
    status: str = "success"


class ToolLoopResult(BaseModel):
    final_response: str
    tool_calls: list[ToolCallRecord] = Field(default_factory=list)
    iterations: int
    exhausted: bool = False
    conversation: list[ConversationTurn] = Field(default_factory=list)


class IncidentOutcome(str, Enum):
    RESOLVED = "resolved"
    FAILED = "failed"
    AWAITING_APPROVAL = "awaiting_approval"


class IncidentResponse(BaseModel):
    """Everything one pass of the pipeline produced for an incident."""

    incident: Incident
    outcome: IncidentOutcome
    diagnosis: DiagnosisResult | None = None
    plan: RemediationPlan | None = None
    execution_results: list[ExecutionResult] = Field(default_factory=list)
    verification: VerificationResult | None = None
    error: str | None = None


DiagnosisResult.model_rebuild()

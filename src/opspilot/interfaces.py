"""
Collaborator contracts for the orchestration core.

Not enforced at runtime (duck typing); the AWS-backed classes and the
in-memory stores satisfy them, and tests substitute fakes.
"""

from datetime import datetime
from typing import Any, Protocol

from opspilot.models import (
    AuditEntry,
    ConversationTurn,
    Incident,
    IncidentStatus,
    LogEntry,
    MetricSeries,
    ReasoningResponse,
)


class TelemetrySource(Protocol):
    def get_metrics(
        self,
        namespace: str,
        metric_name: str,
        dimensions: dict[str, str],
        start: datetime,
        end: datetime,
        period: int = 300,
    ) -> MetricSeries: ...

    def get_lambda_metrics(
        self,
        function_name: str,
        start: datetime,
        end: datetime,
        period: int = 300,
        metric_names: list[str] | None = None,
    ) -> dict[str, MetricSeries]: ...

    def query_logs(
        self,
        log_group: str,
        start: datetime,
        end: datetime,
        pattern: str | None = None,
        limit: int = 100,
    ) -> list[LogEntry]: ...


class ReasoningService(Protocol):
    def respond(
        self,
        conversation: list[ConversationTurn],
        tools: list[dict[str, Any]] | None = None,
        temperature: float = 0.7,
        max_tokens: int = 4096,
        system: str | None = None,
    ) -> ReasoningResponse: ...


class ResourceController(Protocol):
    def get_config(self, resource_id: str) -> dict[str, Any]: ...

    def update_config(self, resource_id: str, delta: dict[str, Any]) -> dict[str, Any]: ...

    def invoke(
        self, resource_id: str, payload: Any, mode: str = "RequestResponse"
    ) -> dict[str, Any]: ...

    def check_health(self, resource_id: str) -> tuple[bool, list[str]]: ...


class AuditSink(Protocol):
    def append(self, entry: AuditEntry) -> None: ...


class IncidentStore(Protocol):
    def save(self, incident: Incident) -> None: ...

    def update_status(
        self,
        incident_id: str,
        status: IncidentStatus,
        details: dict[str, Any] | None = None,
    ) -> None: ...

    def get(self, incident_id: str) -> Incident | None: ...

    def list_open(self) -> list[Incident]: ...

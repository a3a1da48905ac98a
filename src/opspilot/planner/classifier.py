"""
Pure functions turning a remediation narrative into typed actions.

The keyword classifier is deliberately simple and deterministic so that
automatic remediation stays conservative and explainable. The structured
parser is used when the model was asked for a JSON plan.
"""

import json
import re

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from opspilot.errors import PlanParseError
from opspilot.models import RemediationAction, RemediationActionType

DEFAULT_MEMORY_MB = 512
DEFAULT_TIMEOUT_SECONDS = 30

CONFIG_KEYWORDS = ("memory", "timeout")
RESTART_KEYWORDS = ("restart", "redeploy")


def classify_actions(
    narrative: str,
    function_name: str | None,
    memory_mb: int = DEFAULT_MEMORY_MB,
    timeout_seconds: int = DEFAULT_TIMEOUT_SECONDS,
) -> list[RemediationAction]:
    """
    Keyword rules over the narrative:
      "memory"/"timeout"   → update_config (memory_mb, timeout_seconds) at order 1
      "restart"/"redeploy" → restart_service at order 2
      neither              → one custom action carrying the narrative, for manual handling
    """
    text = (narrative or "").lower()
    actions: list[RemediationAction] = []

    if any(word in text for word in CONFIG_KEYWORDS):
        actions.append(
            RemediationAction(
                type=RemediationActionType.UPDATE_CONFIG,
                description="Increase Lambda memory and timeout",
                parameters={
                    "function_name": function_name,
                    "memory_size": memory_mb,
                    "timeout": timeout_seconds,
                },
                order=1,
            )
        )

    if any(word in text for word in RESTART_KEYWORDS):
        actions.append(
            RemediationAction(
                type=RemediationActionType.RESTART_SERVICE,
                description="Update function configuration to trigger restart",
                parameters={"function_name": function_name},
                order=2,
            )
        )

    if not actions:
        actions.append(
            RemediationAction(
                type=RemediationActionType.CUSTOM,
                description="Manual investigation required",
                parameters={"note": narrative},
                order=1,
            )
        )
    return actions


class _LambdaChanges(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    memory_mb: int | None = Field(default=None, alias="memoryMb")
    timeout_sec: int | None = Field(default=None, alias="timeoutSec")
    reserved_concurrency: int | None = Field(default=None, alias="reservedConcurrency")


class _PlanChanges(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    lambda_changes: _LambdaChanges | None = Field(default=None, alias="lambda")
    restart: bool = False


class StructuredPlan(BaseModel):
    """JSON action plan requested from the model in structured mode."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    intent: str = ""
    changes: _PlanChanges = Field(default_factory=_PlanChanges)
    rollback_criteria: str = Field(default="", alias="rollbackCriteria")
    notes: str = ""


_JSON_OBJECT_RE = re.compile(r"\{.*\}", re.DOTALL)


def parse_structured_plan(text: str, function_name: str | None) -> list[RemediationAction] | None:
    """
    Parse a JSON action plan into actions.

    Returns None when the text holds no JSON object (structured output
    unavailable). Raises PlanParseError when a JSON object is present but is
    malformed or does not match the plan shape.
    """
    cleaned = (text or "").strip()
    if cleaned.startswith("```"):
        cleaned = re.sub(r"^```(?:json)?\s*", "", cleaned)
        cleaned = re.sub(r"\s*```\s*$", "", cleaned)
    match = _JSON_OBJECT_RE.search(cleaned)
    if not match:
        return None
    try:
        data = json.loads(match.group(0))
    except json.JSONDecodeError as e:
        raise PlanParseError(f"Plan is not valid JSON: {e}") from e
    if not isinstance(data, dict):
        raise PlanParseError("Plan JSON must be an object")
    try:
        plan = StructuredPlan.model_validate(data)
    except ValidationError as e:
        raise PlanParseError(f"Plan does not match the expected shape: {e}") from e

    actions: list[RemediationAction] = []
    changes = plan.changes.lambda_changes
    if changes and (changes.memory_mb is not None or changes.timeout_sec is not None):
        parameters: dict = {"function_name": function_name}
        if changes.memory_mb is not None:
            parameters["memory_size"] = changes.memory_mb
        if changes.timeout_sec is not None:
            parameters["timeout"] = changes.timeout_sec
        actions.append(
            RemediationAction(
                type=RemediationActionType.UPDATE_CONFIG,
                description=f"Apply configuration change ({plan.intent or 'unspecified intent'})",
                parameters=parameters,
                order=1,
            )
        )
    if plan.changes.restart:
        actions.append(
            RemediationAction(
                type=RemediationActionType.RESTART_SERVICE,
                description="Update function configuration to trigger restart",
                parameters={"function_name": function_name},
                order=2,
            )
        )
    if changes and changes.reserved_concurrency is not None:
        actions.append(
            RemediationAction(
                type=RemediationActionType.SCALE_RESOURCES,
                description="Set reserved concurrency",
                parameters={
                    "function_name": function_name,
                    "reserved_concurrency": changes.reserved_concurrency,
                },
                order=3,
            )
        )
    if not actions:
        actions.append(
            RemediationAction(
                type=RemediationActionType.CUSTOM,
                description="Manual investigation required",
                parameters={"note": plan.notes or text},
                order=1,
            )
        )
    return actions

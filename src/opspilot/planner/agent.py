"""Planner: diagnosis → remediation plan with safety checks."""

import logging
from typing import Any

from opspilot.errors import PlanningError, PlanParseError
from opspilot.interfaces import ReasoningService, ResourceController
from opspilot.models import (
    ConversationTurn,
    DiagnosisResult,
    Incident,
    RemediationAction,
    RemediationActionType,
    RemediationPlan,
)
from opspilot.planner.classifier import (
    DEFAULT_MEMORY_MB,
    DEFAULT_TIMEOUT_SECONDS,
    classify_actions,
    parse_structured_plan,
)
from opspilot.reasoning.prompts import SYSTEM_PROMPT, build_remediation_prompt
from opspilot.safety import SafetyGate

logger = logging.getLogger(__name__)

# Lambda configuration keys as returned by GetFunctionConfiguration
_CONFIG_KEYS = {"memory_size": "MemorySize", "timeout": "Timeout"}


def _rollback_for(action: RemediationAction, current_config: dict[str, Any]) -> list[RemediationAction]:
    """Restore the values an update_config action overwrites, when they are known."""
    if action.type != RemediationActionType.UPDATE_CONFIG:
        return []
    previous = {
        key: current_config[aws_key]
        for key, aws_key in _CONFIG_KEYS.items()
        if key in action.parameters and current_config.get(aws_key) is not None
    }
    if not previous:
        return []
    return [
        RemediationAction(
            type=RemediationActionType.UPDATE_CONFIG,
            description="Restore previous memory and timeout",
            parameters={"function_name": action.parameters.get("function_name"), **previous},
            order=action.order,
        )
    ]


def _estimate_impact(actions: list[RemediationAction]) -> str:
    if all(a.type == RemediationActionType.CUSTOM for a in actions):
        return "Unknown - Manual investigation required"
    return "Medium - Configuration changes"


class RemediationPlanner:
    """
    Asks the reasoning service for a remediation narrative, classifies it into
    typed actions and runs the safety gate over them.

    `structured=True` requests a JSON action plan instead; when the model
    returns prose only, the keyword classifier is used as a fallback.
    """

    def __init__(
        self,
        reasoning: ReasoningService,
        gate: SafetyGate | None = None,
        controller: ResourceController | None = None,
        temperature: float = 0.2,
        max_tokens: int = 2048,
        structured: bool = False,
        memory_mb: int = DEFAULT_MEMORY_MB,
        timeout_seconds: int = DEFAULT_TIMEOUT_SECONDS,
    ) -> None:
        self._reasoning = reasoning
        self._gate = gate or SafetyGate()
        self._controller = controller
        self._temperature = temperature
        self._max_tokens = max_tokens
        self._structured = structured
        self._memory_mb = memory_mb
        self._timeout_seconds = timeout_seconds

    def _current_config(self, function_name: str | None) -> dict[str, Any]:
        if not function_name or self._controller is None:
            return {}
        try:
            return self._controller.get_config(function_name)
        except Exception as e:
            logger.warning("Could not read current configuration for %s: %s", function_name, e)
            return {}

    def plan(self, incident: Incident, diagnosis: DiagnosisResult) -> RemediationPlan:
        """
        Produce a RemediationPlan for the incident.

        Raises PlanningError when the reasoning service fails and
        PlanParseError when it returns an unusable answer.
        """
        function_name = incident.function_name
        current_config = self._current_config(function_name)
        prompt = build_remediation_prompt(
            diagnosis.reasoning or diagnosis.root_cause,
            incident.resource_arn,
            current_config,
            structured=self._structured,
            max_memory_mb=self._gate.max_memory_mb,
            max_timeout_seconds=self._gate.max_timeout_seconds,
        )
        try:
            response = self._reasoning.respond(
                [ConversationTurn(role="user", content=prompt)],
                temperature=self._temperature,
                max_tokens=self._max_tokens,
                system=SYSTEM_PROMPT,
            )
        except Exception as e:
            logger.warning("Remediation planning request failed: %s", e, exc_info=True)
            raise PlanningError(f"Remediation planning request failed: {e}") from e

        narrative = response.text or ""
        if not narrative.strip():
            raise PlanParseError("Reasoning service returned an empty remediation plan")

        actions = None
        if self._structured:
            actions = parse_structured_plan(narrative, function_name)
            if actions is None:
                logger.info("No JSON plan in response; falling back to keyword classification")
        if actions is None:
            actions = classify_actions(
                narrative,
                function_name,
                memory_mb=self._memory_mb,
                timeout_seconds=self._timeout_seconds,
            )
        actions = [
            action.model_copy(update={"rollback_plan": _rollback_for(action, current_config)})
            for action in actions
        ]

        checks = self._gate.evaluate(actions)
        plan = RemediationPlan(
            incident_id=incident.id,
            actions=actions,
            estimated_impact=_estimate_impact(actions),
            safety_checks=checks,
            approval_required=SafetyGate.requires_approval(checks),
            narrative=narrative,
        )
        logger.info(
            "Remediation plan created",
            extra={
                "incident_id": incident.id,
                "plan_id": plan.id,
                "actions": [a.type.value for a in actions],
                "approval_required": plan.approval_required,
            },
        )
        return plan

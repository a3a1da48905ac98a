"""Execution sequencer: runs a plan's actions in order, stopping at the first failure."""

import logging
from collections.abc import Callable
from typing import Any

from opspilot.errors import ActionExecutionError
from opspilot.interfaces import AuditSink, ResourceController
from opspilot.models import (
    AuditEntry,
    AuditResult,
    ExecutionResult,
    RemediationAction,
    RemediationActionType,
    RemediationPlan,
    utc_now,
)

logger = logging.getLogger(__name__)

ActionHandler = Callable[[RemediationAction], Any]

NOT_IMPLEMENTED_OUTPUT = {"message": "Action type not implemented for auto-execution"}


def _function_name(action: RemediationAction) -> str:
    name = action.parameters.get("function_name")
    if not name:
        raise ActionExecutionError(f"Action {action.id} has no function_name")
    return name


class ExecutionSequencer:
    """
    Runs remediation actions against a resource controller.

    Actions run in ascending `order`, one at a time; the first failure stops
    the sequence. Each attempted action is written to the audit sink.
    """

    def __init__(
        self,
        controller: ResourceController,
        audit: AuditSink | None = None,
        handlers: dict[RemediationActionType, ActionHandler] | None = None,
        strict_action_types: bool = False,
    ) -> None:
        self._controller = controller
        self._audit = audit
        self._strict = strict_action_types
        self._handlers: dict[RemediationActionType, ActionHandler] = {
            RemediationActionType.UPDATE_CONFIG: self._update_config,
            RemediationActionType.RESTART_SERVICE: self._restart_service,
            RemediationActionType.SCALE_RESOURCES: self._scale_resources,
        }
        if handlers:
            self._handlers.update(handlers)

    def _update_config(self, action: RemediationAction) -> Any:
        delta = {
            key: action.parameters[key]
            for key in ("memory_size", "timeout")
            if action.parameters.get(key) is not None
        }
        return self._controller.update_config(_function_name(action), delta)

    def _restart_service(self, action: RemediationAction) -> Any:
        # Touching an environment variable makes Lambda recycle its execution environments
        function_name = _function_name(action)
        config = self._controller.get_config(function_name)
        env = dict((config.get("Environment") or {}).get("Variables") or {})
        env["LAST_RESTART"] = utc_now().isoformat()
        return self._controller.update_config(function_name, {"environment": env})

    def _scale_resources(self, action: RemediationAction) -> Any:
        concurrency = action.parameters.get("reserved_concurrency")
        if concurrency is None:
            raise ActionExecutionError(f"Action {action.id} has no reserved_concurrency")
        return self._controller.update_config(
            _function_name(action), {"reserved_concurrency": concurrency}
        )

    def execute_action(self, action: RemediationAction) -> ExecutionResult:
        """Run one action; handler errors become a failed result."""
        handler = self._handlers.get(action.type)
        if handler is None:
            if self._strict:
                return ExecutionResult(
                    action_id=action.id,
                    success=False,
                    error=f"No handler for action type {action.type.value}",
                )
            return ExecutionResult(action_id=action.id, success=True, output=NOT_IMPLEMENTED_OUTPUT)
        try:
            output = handler(action)
        except Exception as e:
            logger.warning("Action %s (%s) failed: %s", action.id, action.type.value, e, exc_info=True)
            return ExecutionResult(action_id=action.id, success=False, error=str(e))
        return ExecutionResult(action_id=action.id, success=True, output=output)

    def _record(self, plan: RemediationPlan, action: RemediationAction, result: ExecutionResult) -> None:
        if self._audit is None:
            return
        entry = AuditEntry(
            incident_id=plan.incident_id,
            action="action_executed",
            details={
                "action_id": action.id,
                "action": action.type.value,
                "output": result.output,
                "error": result.error,
            },
            result=AuditResult.SUCCESS if result.success else AuditResult.FAILURE,
        )
        try:
            self._audit.append(entry)
        except Exception as e:
            logger.warning("Failed to write audit entry for %s: %s", action.id, e, exc_info=True)

    def execute(self, plan: RemediationPlan) -> list[ExecutionResult]:
        """
        Execute the plan. Returns one result per attempted action; empty when
        the plan requires approval.
        """
        if plan.approval_required:
            logger.info("Approval required; skipping auto-execution", extra={"plan_id": plan.id})
            return []

        results: list[ExecutionResult] = []
        for action in plan.ordered_actions():
            logger.info(
                "Executing action",
                extra={"action_id": action.id, "action": action.type.value, "order": action.order},
            )
            result = self.execute_action(action)
            results.append(result)
            self._record(plan, action, result)
            if not result.success:
                logger.error("Action %s failed, stopping execution", action.id)
                break
        return results

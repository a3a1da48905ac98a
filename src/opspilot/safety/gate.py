"""Guardrails that decide whether a plan may run without human approval."""

from numbers import Number
from typing import Any

from opspilot.models import RemediationAction, RemediationActionType, SafetyCheck, SafetyCheckType

MAX_ACTIONS = 5
# AWS Lambda hard limits
LAMBDA_MAX_MEMORY_MB = 10240
LAMBDA_MIN_MEMORY_MB = 128
LAMBDA_MAX_TIMEOUT_SECONDS = 900

# Every built-in type can be undone by re-applying the prior configuration
REVERSIBLE_ACTION_TYPES = frozenset(RemediationActionType)


def _is_number(value: Any) -> bool:
    return isinstance(value, Number) and not isinstance(value, bool)


class SafetyGate:
    """Evaluates rate, rollback and resource guardrails over a list of actions."""

    def __init__(
        self,
        max_actions: int = MAX_ACTIONS,
        max_memory_mb: int = LAMBDA_MAX_MEMORY_MB,
        max_timeout_seconds: int = LAMBDA_MAX_TIMEOUT_SECONDS,
    ) -> None:
        self.max_actions = max_actions
        self.max_memory_mb = max_memory_mb
        self.max_timeout_seconds = max_timeout_seconds

    def evaluate(self, actions: list[RemediationAction]) -> list[SafetyCheck]:
        """Run every check; none short-circuits another."""
        return [
            self._rate_limit(actions),
            self._rollback_available(actions),
            self._resource_limit(actions),
        ]

    @staticmethod
    def requires_approval(checks: list[SafetyCheck]) -> bool:
        return not all(check.passed for check in checks)

    def _rate_limit(self, actions: list[RemediationAction]) -> SafetyCheck:
        return SafetyCheck(
            type=SafetyCheckType.RATE_LIMIT,
            description="Ensure we are not making too many changes",
            passed=len(actions) <= self.max_actions,
            details=f"{len(actions)} actions planned (limit {self.max_actions})",
        )

    def _rollback_available(self, actions: list[RemediationAction]) -> SafetyCheck:
        irreversible = sorted(
            {a.type.value for a in actions if a.type not in REVERSIBLE_ACTION_TYPES}
        )
        return SafetyCheck(
            type=SafetyCheckType.ROLLBACK_AVAILABLE,
            description="Verify rollback procedures exist",
            passed=not irreversible,
            details=(
                f"No rollback for: {', '.join(irreversible)}"
                if irreversible
                else "Configuration changes can be reverted"
            ),
        )

    def _resource_limit(self, actions: list[RemediationAction]) -> SafetyCheck:
        violations: list[str] = []
        for action in actions:
            params = action.parameters
            memory = params.get("memory_size")
            if memory is not None:
                if not _is_number(memory):
                    violations.append(f"{action.id}: memory_size {memory!r} is not a number")
                elif not LAMBDA_MIN_MEMORY_MB <= memory <= self.max_memory_mb:
                    violations.append(
                        f"{action.id}: memory_size {memory} outside "
                        f"{LAMBDA_MIN_MEMORY_MB}-{self.max_memory_mb} MB"
                    )
            timeout = params.get("timeout")
            if timeout is not None:
                if not _is_number(timeout):
                    violations.append(f"{action.id}: timeout {timeout!r} is not a number")
                elif not 1 <= timeout <= self.max_timeout_seconds:
                    violations.append(
                        f"{action.id}: timeout {timeout} outside 1-{self.max_timeout_seconds} s"
                    )
            concurrency = params.get("reserved_concurrency")
            if concurrency is not None and (not _is_number(concurrency) or concurrency < 0):
                violations.append(f"{action.id}: reserved_concurrency {concurrency!r} is invalid")
        return SafetyCheck(
            type=SafetyCheckType.RESOURCE_LIMIT,
            description="Check resource allocation is within limits",
            passed=not violations,
            details="; ".join(violations) if violations else "All changes within AWS limits",
        )

"""Deterministic reasoning stand-in for demo runs and CI without AWS."""

from typing import Any

from opspilot.models import ConversationTurn, ReasoningResponse

STUB_DIAGNOSIS_TEXT = (
    "Function timeout (3 s) and memory (128 MB) are too low for the current workload.\n"
    "Confidence: 0.9\n"
    "Affected components: Lambda function configuration\n"
    "Errors and Duration rose together while Throttles stayed flat, and the error logs "
    "show 'Task timed out after 3.00 seconds'. Increase memory and timeout."
)

STUB_PLAN_TEXT = (
    "1. Increase memory to 512 MB and timeout to 30 seconds.\n"
    "2. Watch Errors and Duration for 5 minutes after the change.\n"
    "Rollback: restore the previous memory and timeout values.\n"
    "Approval: not required; the change is small and reversible."
)


class StubReasoningService:
    """Answers diagnosis and planning prompts with fixed text; never requests tools."""

    def respond(
        self,
        conversation: list[ConversationTurn],
        tools: list[dict[str, Any]] | None = None,
        temperature: float = 0.7,
        max_tokens: int = 4096,
        system: str | None = None,
    ) -> ReasoningResponse:
        last = conversation[-1].content if conversation else ""
        if isinstance(last, str) and "remediation plan" in last.lower():
            return ReasoningResponse(text=STUB_PLAN_TEXT)
        return ReasoningResponse(text=STUB_DIAGNOSIS_TEXT)

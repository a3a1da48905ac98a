"""Diagnosis requester: incident context → DiagnosisResult via the reasoning service."""

import logging
import re
from typing import Any

from opspilot.errors import DiagnosisError
from opspilot.interfaces import ReasoningService
from opspilot.models import ConversationTurn, DiagnosisResult
from opspilot.reasoning.prompts import SYSTEM_PROMPT, build_diagnosis_prompt
from opspilot.reasoning.tool_loop import DEFAULT_MAX_ITERATIONS, ToolRegistry, run_tool_loop

logger = logging.getLogger(__name__)

# Placeholder confidence used whenever the model does not report one.
DEFAULT_CONFIDENCE = 0.85
MAX_LOG_SAMPLES = 10

_CONFIDENCE_RE = re.compile(r"confidence(?:\s+level)?\s*[:=]\s*([01](?:\.\d+)?)", re.IGNORECASE)


def extract_root_cause(text: str) -> str:
    """First non-empty line of the response, or "Unknown"."""
    for line in text.splitlines():
        if line.strip():
            return line.strip()
    return "Unknown"


def extract_confidence(text: str, default: float = DEFAULT_CONFIDENCE) -> float:
    """Model-reported "Confidence: x" in [0, 1], else `default`."""
    match = _CONFIDENCE_RE.search(text or "")
    if not match:
        return default
    value = float(match.group(1))
    if 0.0 <= value <= 1.0:
        return value
    return default


class DiagnosisRequester:
    """
    Packages incident context into a prompt and turns the model's answer into
    a DiagnosisResult.

    A single low-temperature request by default; when a ToolRegistry is passed
    to `diagnose`, the bounded tool loop drives the conversation instead.
    """

    def __init__(
        self,
        reasoning: ReasoningService,
        temperature: float = 0.3,
        max_tokens: int = 2048,
        max_log_samples: int = MAX_LOG_SAMPLES,
        max_iterations: int = DEFAULT_MAX_ITERATIONS,
        tool_loop_temperature: float = 0.5,
        tool_loop_max_tokens: int = 4096,
    ) -> None:
        self._reasoning = reasoning
        self._temperature = temperature
        self._max_tokens = max_tokens
        self._max_log_samples = max_log_samples
        self._max_iterations = max_iterations
        self._tool_loop_temperature = tool_loop_temperature
        self._tool_loop_max_tokens = tool_loop_max_tokens

    def diagnose(
        self,
        incident_description: str,
        metrics: dict[str, Any],
        log_samples: list[str],
        tools: ToolRegistry | None = None,
        affected_components: list[str] | None = None,
    ) -> DiagnosisResult:
        """Produce a diagnosis; any reasoning-service failure raises DiagnosisError."""
        prompt = build_diagnosis_prompt(
            incident_description,
            metrics,
            log_samples[: self._max_log_samples],
            use_tools=tools is not None,
        )
        tool_calls = []
        exhausted = False
        try:
            if tools is not None:
                loop = run_tool_loop(
                    self._reasoning,
                    prompt,
                    tools,
                    max_iterations=self._max_iterations,
                    temperature=self._tool_loop_temperature,
                    max_tokens=self._tool_loop_max_tokens,
                    system=SYSTEM_PROMPT,
                )
                text = loop.final_response
                tool_calls = loop.tool_calls
                exhausted = loop.exhausted
            else:
                response = self._reasoning.respond(
                    [ConversationTurn(role="user", content=prompt)],
                    temperature=self._temperature,
                    max_tokens=self._max_tokens,
                    system=SYSTEM_PROMPT,
                )
                text = response.text
        except Exception as e:
            logger.warning("Diagnosis request failed: %s", e, exc_info=True)
            raise DiagnosisError(f"Diagnosis request failed: {e}") from e

        diagnosis = DiagnosisResult(
            root_cause=extract_root_cause(text),
            confidence=extract_confidence(text),
            affected_components=affected_components or [],
            related_metrics=list(metrics),
            reasoning=text,
            tool_calls=tool_calls,
            iterations_exhausted=exhausted,
        )
        logger.info(
            "Diagnosis produced",
            extra={"root_cause": diagnosis.root_cause[:120], "confidence": diagnosis.confidence},
        )
        return diagnosis

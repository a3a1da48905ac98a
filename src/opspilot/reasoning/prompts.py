"""Prompt templates for diagnosis and remediation planning."""

import json
from typing import Any

SYSTEM_PROMPT = """You are OpsPilot, an expert AWS incident response agent.
Analyze the provided incident data, metrics, and logs to diagnose the root cause.
Provide a clear, actionable diagnosis with high confidence based on the evidence.
Start your answer with a single line stating the primary root cause."""

TOOL_USE_HINT = """You may call the available tools to fetch additional metrics, logs or the
function configuration before answering. Tools are read-only. When you have
enough evidence, answer with text only."""


def build_diagnosis_prompt(
    incident_description: str,
    metrics_summary: dict[str, Any],
    log_samples: list[str],
    use_tools: bool = False,
) -> str:
    """Build the user message for the diagnosis request."""
    logs = "\n".join(log_samples) or "(no error logs)"
    prompt = f"""Incident: {incident_description}

Metrics:
{json.dumps(metrics_summary, indent=2, default=str)}

Recent Error Logs:
{logs}

Please diagnose the root cause and provide:
1. Primary root cause (first line of your answer)
2. Confidence level (0-1), written as "Confidence: <number>"
3. Affected components
4. Recommended remediation approach"""
    if use_tools:
        prompt = f"{prompt}\n\n{TOOL_USE_HINT}"
    return prompt


STRUCTURED_PLAN_INSTRUCTIONS = """Return ONLY a JSON object with this shape, no other text:
{{
  "intent": "reduce_timeouts" | "reduce_5xx" | "reduce_latency" | "stabilize_concurrency",
  "changes": {{
    "lambda": {{
      "memoryMb": number (128-{max_memory_mb}, optional),
      "timeoutSec": number (1-{max_timeout_seconds}, optional),
      "reservedConcurrency": number (optional)
    }},
    "restart": boolean
  }},
  "rollbackCriteria": string,
  "notes": string
}}"""


def build_remediation_prompt(
    diagnosis: str,
    resource_arn: str,
    current_config: dict[str, Any],
    structured: bool = False,
    max_memory_mb: int = 10240,
    max_timeout_seconds: int = 900,
) -> str:
    """Build the user message asking for a remediation plan."""
    prompt = f"""Based on the following diagnosis, generate a safe remediation plan:

Diagnosis: {diagnosis}
Resource ARN: {resource_arn}
Current Configuration:
{json.dumps(current_config, indent=2, default=str)}

Generate a remediation plan that includes:
1. Specific actions to take (in order)
2. Safety guardrails and checks
3. Rollback procedures
4. Expected impact and risks
5. Whether human approval is required

Focus on safe, incremental changes that can be automatically executed."""
    if structured:
        instructions = STRUCTURED_PLAN_INSTRUCTIONS.format(
            max_memory_mb=max_memory_mb, max_timeout_seconds=max_timeout_seconds
        )
        prompt = f"{prompt}\n\n{instructions}"
    return prompt

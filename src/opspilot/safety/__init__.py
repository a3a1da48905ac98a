"""
Safety gate.

Guardrail checks that decide between autonomous execution and human approval.
"""

from opspilot.safety.gate import REVERSIBLE_ACTION_TYPES, SafetyGate

__all__ = ["REVERSIBLE_ACTION_TYPES", "SafetyGate"]

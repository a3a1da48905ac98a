"""
Remediation planner.

Turns a diagnosis into an ordered, safety-checked RemediationPlan.
"""

from opspilot.planner.agent import RemediationPlanner
from opspilot.planner.classifier import classify_actions, parse_structured_plan

__all__ = ["RemediationPlanner", "classify_actions", "parse_structured_plan"]

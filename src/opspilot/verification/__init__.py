"""Post-remediation verification (health, test invocation, error metrics)."""

from opspilot.verification.verifier import Verifier

__all__ = ["Verifier"]

"""
Remediation execution.

Lambda resource controller, the execution sequencer and per-resource leases.
"""

from opspilot.remediation.executor import ExecutionSequencer
from opspilot.remediation.lambda_controller import LambdaController
from opspilot.remediation.locks import ResourceLocks

__all__ = ["ExecutionSequencer", "LambdaController", "ResourceLocks"]

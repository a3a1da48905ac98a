"""
Reasoning layer (Amazon Bedrock).

Diagnosis requests, the bounded tool-calling loop and the Converse adapter
that both use.
"""

from opspilot.reasoning.bedrock import BedrockReasoningService
from opspilot.reasoning.diagnosis import DEFAULT_CONFIDENCE, DiagnosisRequester
from opspilot.reasoning.stub import StubReasoningService
from opspilot.reasoning.tool_loop import Tool, ToolRegistry, run_tool_loop
from opspilot.reasoning.tools import build_default_tools

__all__ = [
    "DEFAULT_CONFIDENCE",
    "BedrockReasoningService",
    "DiagnosisRequester",
    "StubReasoningService",
    "Tool",
    "ToolRegistry",
    "build_default_tools",
    "run_tool_loop",
]

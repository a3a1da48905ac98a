"""
Bounded tool-calling loop.

The reasoning service may answer with tool invocations instead of text. Each
iteration executes every requested tool, appends the assistant turn and one
user turn carrying all results (paired by invocation id), and asks again,
until a text-only answer arrives or the iteration limit is reached.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor
from typing import Any

from opspilot.interfaces import ReasoningService
from opspilot.models import (
    ConversationTurn,
    ToolCallRecord,
    ToolInvocation,
    ToolLoopResult,
    ToolResult,
)

logger = logging.getLogger(__name__)

DEFAULT_MAX_ITERATIONS = 10


class Tool:
    """A read-only function the reasoning service may call by name."""

    def __init__(
        self,
        name: str,
        description: str,
        input_schema: dict[str, Any],
        func: Callable[[dict[str, Any]], Any],
    ) -> None:
        self.name = name
        self.description = description
        self.input_schema = input_schema
        self.func = func

    def spec(self) -> dict[str, Any]:
        """Converse `toolSpec` entry."""
        return {
            "toolSpec": {
                "name": self.name,
                "description": self.description,
                "inputSchema": {"json": self.input_schema},
            }
        }


class ToolRegistry:
    """Declared tool catalog plus dispatch of invocations to tool functions."""

    def __init__(self, tools: list[Tool] | None = None, max_workers: int = 4) -> None:
        self._tools: dict[str, Tool] = {}
        self._max_workers = max_workers
        for tool in tools or []:
            self.register(tool)

    def register(self, tool: Tool) -> None:
        self._tools[tool.name] = tool

    def get(self, name: str) -> Tool | None:
        return self._tools.get(name)

    @property
    def names(self) -> list[str]:
        return list(self._tools)

    def specs(self) -> list[dict[str, Any]]:
        return [tool.spec() for tool in self._tools.values()]

    def execute(self, invocation: ToolInvocation) -> ToolResult:
        """Run one invocation; unknown tools and tool errors become error results."""
        tool = self._tools.get(invocation.name)
        if tool is None:
            logger.warning("Reasoning service requested unknown tool %s", invocation.name)
            return ToolResult(
                invocation_id=invocation.id,
                content={"error": f"Unknown tool: {invocation.name}"},
                status="error",
            )
        try:
            output = tool.func(invocation.input)
        except Exception as e:
            logger.warning("Tool %s failed: %s", invocation.name, e, exc_info=True)
            return ToolResult(invocation_id=invocation.id, content={"error": str(e)}, status="error")
        return ToolResult(invocation_id=invocation.id, content=output, status="success")

    def execute_all(self, invocations: list[ToolInvocation]) -> list[ToolResult]:
        """Execute independent invocations concurrently; results follow request order."""
        if len(invocations) <= 1:
            return [self.execute(inv) for inv in invocations]
        workers = min(self._max_workers, len(invocations))
        with ThreadPoolExecutor(max_workers=workers) as pool:
            return list(pool.map(self.execute, invocations))


def run_tool_loop(
    reasoning: ReasoningService,
    prompt: str,
    registry: ToolRegistry,
    max_iterations: int = DEFAULT_MAX_ITERATIONS,
    temperature: float = 0.5,
    max_tokens: int = 4096,
    system: str | None = None,
) -> ToolLoopResult:
    """
    Drive the conversation until a text-only answer or `max_iterations` calls.

    Running out of iterations is not an error: the latest assistant text is
    returned with `exhausted=True`. Reasoning-service errors propagate.
    """
    if max_iterations < 1:
        raise ValueError("max_iterations must be at least 1")

    conversation: list[ConversationTurn] = [ConversationTurn(role="user", content=prompt)]
    tool_calls: list[ToolCallRecord] = []
    last_text = ""
    specs = registry.specs()

    for iteration in range(1, max_iterations + 1):
        response = reasoning.respond(
            conversation,
            tools=specs,
            temperature=temperature,
            max_tokens=max_tokens,
            system=system,
        )
        if response.text:
            last_text = response.text

        if not response.tool_invocations:
            conversation.append(ConversationTurn(role="assistant", content=response.text))
            return ToolLoopResult(
                final_response=response.text,
                tool_calls=tool_calls,
                iterations=iteration,
                exhausted=False,
                conversation=conversation,
            )

        invocations = list(response.tool_invocations)
        ids = [inv.id for inv in invocations]
        if len(set(ids)) != len(ids):
            logger.warning("Reasoning service reused tool invocation ids: %s", ids)
        # Results follow request order
        results = registry.execute_all(invocations)

        conversation.append(ConversationTurn(role="assistant", content=invocations))
        conversation.append(ConversationTurn(role="user", content=results))
        for inv, result in zip(invocations, results):
            tool_calls.append(
                ToolCallRecord(
                    invocation_id=inv.id,
                    tool=inv.name,
                    input=inv.input,
                    output=result.content,
                    status=result.status,
                )
            )
        logger.info(
            "Tool loop iteration %d executed %d tool call(s)",
            iteration,
            len(invocations),
            extra={"tools": [inv.name for inv in invocations]},
        )

    logger.warning(
        "Tool loop exhausted %d iterations without a final answer", max_iterations
    )
    return ToolLoopResult(
        final_response=last_text,
        tool_calls=tool_calls,
        iterations=max_iterations,
        exhausted=True,
        conversation=conversation,
    )

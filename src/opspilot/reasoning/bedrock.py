"""Reasoning service backed by the Bedrock Converse API."""

from __future__ import annotations

import json
import logging
from datetime import datetime
from typing import Any

from botocore.exceptions import BotoCoreError, ClientError
from pydantic import BaseModel

from opspilot.errors import TransientIOError
from opspilot.models import ConversationTurn, ReasoningResponse, ToolInvocation, ToolResult

logger = logging.getLogger(__name__)


def _json_default(obj: Any) -> Any:
    if isinstance(obj, BaseModel):
        return obj.model_dump(mode="json")
    if isinstance(obj, datetime):
        return obj.isoformat()
    return str(obj)


def _as_json_document(content: Any) -> dict[str, Any]:
    """toolResult json blocks must be objects; wrap anything else."""
    document = json.loads(json.dumps(content, default=_json_default))
    if isinstance(document, dict):
        return document
    return {"result": document}


def format_messages(conversation: list[ConversationTurn]) -> list[dict[str, Any]]:
    """Convert conversation turns into Converse `messages`."""
    messages: list[dict[str, Any]] = []
    for turn in conversation:
        if isinstance(turn.content, str):
            blocks: list[dict[str, Any]] = [{"text": turn.content}]
        else:
            blocks = []
            for item in turn.content:
                if isinstance(item, ToolInvocation):
                    blocks.append(
                        {"toolUse": {"toolUseId": item.id, "name": item.name, "input": item.input}}
                    )
                elif isinstance(item, ToolResult):
                    blocks.append(
                        {
                            "toolResult": {
                                "toolUseId": item.invocation_id,
                                "content": [{"json": _as_json_document(item.content)}],
                                "status": item.status,
                            }
                        }
                    )
        messages.append({"role": turn.role, "content": blocks})
    return messages


def parse_converse_response(response: dict[str, Any]) -> ReasoningResponse:
    """Extract text and tool invocations from a Converse response (output.message.content)."""
    parts: list[str] = []
    invocations: list[ToolInvocation] = []
    try:
        output = response.get("output") or {}
        message = output.get("message") or {}
        content = message.get("content") or []
        for block in content:
            if block.get("text"):
                parts.append(block["text"])
            tool_use = block.get("toolUse")
            if tool_use:
                invocations.append(
                    ToolInvocation(
                        id=tool_use.get("toolUseId") or "",
                        name=tool_use.get("name") or "",
                        input=tool_use.get("input") or {},
                    )
                )
    except (AttributeError, TypeError):
        pass
    return ReasoningResponse(text="\n".join(parts), tool_invocations=invocations)


class BedrockReasoningService:
    """Sends conversations (optionally with a tool catalog) to a Bedrock model."""

    def __init__(self, client: Any, model_id: str) -> None:
        self._client = client
        self._model_id = model_id

    def respond(
        self,
        conversation: list[ConversationTurn],
        tools: list[dict[str, Any]] | None = None,
        temperature: float = 0.7,
        max_tokens: int = 4096,
        system: str | None = None,
    ) -> ReasoningResponse:
        request: dict[str, Any] = {
            "modelId": self._model_id,
            "messages": format_messages(conversation),
            "inferenceConfig": {"temperature": temperature, "maxTokens": max_tokens},
        }
        if system:
            request["system"] = [{"text": system}]
        if tools:
            request["toolConfig"] = {"tools": tools, "toolChoice": {"auto": {}}}
        try:
            response = self._client.converse(**request)
        except (BotoCoreError, ClientError) as e:
            raise TransientIOError(f"Bedrock converse failed: {e}") from e
        result = parse_converse_response(response)
        logger.debug(
            "Bedrock response",
            extra={
                "model_id": self._model_id,
                "stop_reason": response.get("stopReason"),
                "tool_invocations": len(result.tool_invocations),
            },
        )
        return result

"""Conversion of request turns into model-facing message types."""

from __future__ import annotations

from collections.abc import Sequence
from typing import Any

from langchain_core.messages import AIMessage, BaseMessage, HumanMessage, ToolMessage

from kb_chat.errors import InvalidRequestError
from kb_chat.schemas import ConversationTurn


def normalize_messages(turns: Sequence[ConversationTurn]) -> list[BaseMessage]:
    """Map turns to LangChain messages, preserving order.

    Tool-result turns become `ToolMessage` and must carry a call id. Turns
    with any role other than user/assistant are dropped.
    """

    normalized: list[BaseMessage] = []
    for turn in turns:
        if turn.is_tool_result:
            if not turn.tool_call_id:
                raise InvalidRequestError("Tool result message is missing toolCallId")
            normalized.append(ToolMessage(content=turn.content, tool_call_id=turn.tool_call_id))
        elif turn.role == "user":
            normalized.append(HumanMessage(content=turn.content))
        elif turn.role == "assistant":
            normalized.append(AIMessage(content=turn.content))
    return normalized


def to_role_content_pairs(turns: Sequence[ConversationTurn]) -> list[tuple[str, str]]:
    return [(turn.role, turn.content) for turn in turns]


def serialize_history(turns: Sequence[ConversationTurn]) -> str:
    return "\n".join(f"{turn.role}: {turn.content}" for turn in turns)


def content_text(content: Any) -> str:
    """Extract the text of a message chunk whose content may be block-structured."""
    if isinstance(content, str):
        return content
    parts: list[str] = []
    for item in content or []:
        if isinstance(item, str):
            parts.append(item)
        elif isinstance(item, dict) and item.get("type") in ("text", "text_delta") and "text" in item:
            parts.append(str(item["text"]))
    return "".join(parts)

"""Request, response and stream event models for the chat endpoint."""

from __future__ import annotations

import json
from typing import Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field


class ConversationTurn(BaseModel):
    """One chronological turn of the inbound conversation."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    role: str
    content: str
    tool_call_id: str | None = Field(default=None, alias="toolCallId")
    is_tool_result: bool = Field(default=False, alias="toolResult")


class ChatRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    knowledgebase_id: int | None = Field(default=None, alias="knowledgebaseId")
    model: str = Field(min_length=1)
    family: str = Field(min_length=1)
    messages: list[ConversationTurn] = Field(min_length=1)
    stream: bool = False

    @property
    def latest_query(self) -> str:
        return self.messages[-1].content


class AssistantMessage(BaseModel):
    role: Literal["assistant"] = "assistant"
    content: Any = ""
    relevant_docs: list[dict[str, Any]] | None = None


class ChatResponse(BaseModel):
    """Body of a non-streaming reply."""

    message: AssistantMessage


class TextDelta(BaseModel):
    """Incremental assistant text, forwarded as soon as a chunk arrives."""

    content: Any = ""

    def to_payload(self) -> dict[str, Any]:
        return {"message": {"role": "assistant", "content": self.content}}


class RelevantDocuments(BaseModel):
    """Side-channel trailer of a knowledge-base stream."""

    documents: list[dict[str, Any]] = Field(default_factory=list)

    def to_payload(self) -> dict[str, Any]:
        return {"type": "relevant_documents", "relevant_documents": self.documents}


class ToolResult(BaseModel):
    """Output of one resolved tool call."""

    tool_use_id: str | None
    content: Any

    def to_payload(self) -> dict[str, Any]:
        return {
            "message": {
                "role": "user",
                "type": "tool_result",
                "tool_use_id": self.tool_use_id,
                "content": self.content,
            }
        }


class StreamError(BaseModel):
    """Terminal event sent when a stream fails after it has started."""

    code: str
    message: str

    def to_payload(self) -> dict[str, Any]:
        return {"type": "error", "error": {"code": self.code, "message": self.message}}


OutboundEvent = Union[TextDelta, RelevantDocuments, ToolResult, StreamError]


def encode_event(event: OutboundEvent) -> str:
    """Render one event as a newline-delimited JSON line."""
    return json.dumps(event.to_payload(), default=str) + "\n"

"""Error taxonomy shared by the orchestrator and the HTTP layer."""

from __future__ import annotations


class ChatError(Exception):
    """Base class for orchestrator failures."""

    code = "chat_failed"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class InvalidRequestError(ChatError):
    """The caller sent a request that breaks the message contract."""

    code = "invalid_request"


class NotFoundError(ChatError):
    """A referenced knowledge base does not exist."""

    code = "not_found"


class RetrievalError(ChatError):
    """Evidence retrieval or reranking failed."""

    code = "retrieval_failed"


class ReformulationError(ChatError):
    """Query reformulation failed; always recovered by the reformulator."""

    code = "reformulation_degraded"


class ToolExecutionError(ChatError):
    """A resolved tool raised while running."""

    code = "tool_failed"

    def __init__(self, tool_name: str, message: str) -> None:
        super().__init__(f"Tool {tool_name!r} failed: {message}")
        self.tool_name = tool_name


class UpstreamModelError(ChatError):
    """The chat model collaborator failed."""

    code = "upstream_model_failed"

"""Chat model construction with an explicit tool-binding capability."""

from __future__ import annotations

from collections.abc import AsyncIterator, Callable, Sequence
from contextlib import aclosing
from dataclasses import dataclass
from typing import Any

from langchain_core.language_models import BaseChatModel
from langchain_core.runnables import Runnable
from langchain_core.tools import BaseTool

from kb_chat.config import ModelConfig
from kb_chat.errors import InvalidRequestError, UpstreamModelError

OPENAI_FAMILY = "openai"
OLLAMA_FAMILY = "ollama"
ANTHROPIC_FAMILY = "anthropic"


@dataclass(slots=True)
class ChatModelHandle:
    """A chat model plus whether it accepts bound tool schemas.

    The capability is fixed when the handle is built instead of being
    inferred from the model class at call time.
    """

    model: BaseChatModel
    supports_tool_binding: bool

    def with_tools(self, tools: Sequence[BaseTool]) -> Runnable:
        if not self.supports_tool_binding or not tools:
            return self.model
        return self.model.bind_tools(list(tools))


ChatModelFactory = Callable[[str, str], ChatModelHandle]


def create_chat_model(model: str, family: str, config: ModelConfig | None = None) -> ChatModelHandle:
    """Build a chat model for a request's `model`/`family` pair."""

    config = config or ModelConfig()
    family_key = family.strip().lower()

    if family_key == OPENAI_FAMILY:
        from langchain_openai import ChatOpenAI

        kwargs: dict[str, Any] = {"model": model, "temperature": 0}
        if config.openai_api_key:
            kwargs["api_key"] = config.openai_api_key
        if config.openai_base_url:
            kwargs["base_url"] = config.openai_base_url
        return ChatModelHandle(model=ChatOpenAI(**kwargs), supports_tool_binding=True)

    if family_key == OLLAMA_FAMILY:
        from langchain_ollama import ChatOllama

        kwargs = {"model": model}
        if config.ollama_base_url:
            kwargs["base_url"] = config.ollama_base_url
        return ChatModelHandle(model=ChatOllama(**kwargs), supports_tool_binding=True)

    if family_key == ANTHROPIC_FAMILY:
        from langchain_anthropic import ChatAnthropic

        kwargs = {"model": model, "temperature": 0}
        if config.anthropic_api_key:
            kwargs["api_key"] = config.anthropic_api_key
        if config.anthropic_base_url:
            kwargs["base_url"] = config.anthropic_base_url
        return ChatModelHandle(model=ChatAnthropic(**kwargs), supports_tool_binding=True)

    raise InvalidRequestError(f"Unsupported model family: {family}")


def model_factory(config: ModelConfig) -> ChatModelFactory:
    def _factory(model: str, family: str) -> ChatModelHandle:
        return create_chat_model(model, family, config)

    return _factory


async def invoke_model(model: Runnable, model_input: Any) -> Any:
    try:
        return await model.ainvoke(model_input)
    except Exception as exc:
        raise UpstreamModelError(f"Chat model invocation failed: {exc}") from exc


async def stream_model_chunks(model: Runnable, model_input: Any) -> AsyncIterator[Any]:
    """Yield model chunks, closing the underlying stream when closed early."""
    try:
        async with aclosing(model.astream(model_input)) as chunks:
            async for chunk in chunks:
                yield chunk
    except Exception as exc:
        raise UpstreamModelError(f"Chat model stream failed: {exc}") from exc

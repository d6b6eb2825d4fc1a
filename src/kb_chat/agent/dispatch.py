"""Bounded tool-dispatch loop over a tool-bound chat model."""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import AsyncIterator, Sequence
from contextlib import aclosing
from typing import Any

from langchain_core.messages import BaseMessage, ToolMessage, message_chunk_to_message
from langchain_core.messages.tool import ToolCall
from langchain_core.runnables import Runnable
from pydantic import BaseModel

from kb_chat.agent.registry import ToolCatalog
from kb_chat.config import AgentConfig
from kb_chat.errors import ToolExecutionError
from kb_chat.messages import content_text
from kb_chat.models import invoke_model, stream_model_chunks
from kb_chat.schemas import OutboundEvent, TextDelta, ToolResult

logger = logging.getLogger(__name__)


class ToolDispatcher:
    """Drives model turns and resolves the tool calls they request.

    States per round: invoke model, stream chunks, run completed tool calls,
    then either stop or feed the results back for another round. Rounds are
    bounded by `AgentConfig.max_tool_rounds`; with the default of one, tool
    results are the terminal events of a stream and the model never sees them.

    The synchronous path is always single-turn: tool calls are executed but
    their results are only logged, and the first model message is returned.
    """

    def __init__(self, catalog: ToolCatalog, config: AgentConfig | None = None) -> None:
        self.catalog = catalog
        self.config = config or AgentConfig()

    async def run_sync(self, model: Runnable, messages: Sequence[Any]) -> Any:
        response = await invoke_model(model, list(messages))

        tool_calls = list(getattr(response, "tool_calls", None) or [])
        if tool_calls:
            async with aclosing(self._execute_in_order(tool_calls)) as results:
                async for call, output in results:
                    logger.info("Tool %s result (not fed back): %s", call["name"], _preview(output))
        return response

    async def stream(self, model: Runnable, messages: Sequence[Any]) -> AsyncIterator[OutboundEvent]:
        conversation: list[Any] = list(messages)

        for round_index in range(self.config.max_tool_rounds):
            gathered = None
            async with aclosing(stream_model_chunks(model, conversation)) as chunks:
                async for chunk in chunks:
                    gathered = chunk if gathered is None else gathered + chunk
                    yield TextDelta(content=content_text(chunk.content))

            tool_calls = list(getattr(gathered, "tool_calls", None) or [])
            if not tool_calls:
                return

            tool_messages: list[BaseMessage] = []
            async with aclosing(self._execute_in_order(tool_calls)) as results:
                async for call, output in results:
                    yield ToolResult(tool_use_id=call.get("id"), content=to_jsonable(output))
                    tool_messages.append(
                        ToolMessage(content=_as_message_content(output), tool_call_id=call.get("id") or "")
                    )

            if round_index + 1 >= self.config.max_tool_rounds or not tool_messages:
                return
            conversation.append(message_chunk_to_message(gathered))
            conversation.extend(tool_messages)

    async def _execute_in_order(
        self, tool_calls: Sequence[ToolCall]
    ) -> AsyncIterator[tuple[ToolCall, Any]]:
        """Run resolvable calls, concurrently when enabled, yielding in call order."""

        scheduled: list[tuple[ToolCall, asyncio.Task[Any] | None]] = []
        for call in tool_calls:
            logger.info("Tool call: %s(%s)", call["name"], call.get("args"))
            if self.catalog.lookup(call["name"]) is None:
                logger.warning("Skipping call to unknown tool %s", call["name"])
                continue
            task = asyncio.ensure_future(self._invoke(call)) if self.config.tool_concurrency else None
            scheduled.append((call, task))

        try:
            for call, task in scheduled:
                try:
                    output = await task if task is not None else await self._invoke(call)
                except ToolExecutionError as exc:
                    logger.error("%s; skipping its result", exc)
                    continue
                yield call, output
        finally:
            pending = [task for _call, task in scheduled if task is not None]
            for task in pending:
                task.cancel()
            # Reap every task so late failures are consumed, not reported as unretrieved.
            await asyncio.gather(*pending, return_exceptions=True)

    async def _invoke(self, call: ToolCall) -> Any:
        try:
            return await self.catalog.ainvoke(call["name"], call.get("args") or {})
        except Exception as exc:
            raise ToolExecutionError(call["name"], str(exc) or exc.__class__.__name__) from exc


def to_jsonable(value: Any) -> Any:
    if isinstance(value, BaseModel):
        return value.model_dump(mode="json", exclude_none=True)
    if isinstance(value, (str, int, float, bool, list, dict)) or value is None:
        return value
    return str(value)


def _as_message_content(value: Any) -> str:
    if isinstance(value, str):
        return value
    return json.dumps(to_jsonable(value), default=str)


def _preview(value: Any) -> str:
    return _as_message_content(value)[:320]

"""Rewrites follow-up questions into standalone retrieval queries."""

from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import Any

from langchain_core.messages import BaseMessage, get_buffer_string
from langchain_core.output_parsers import StrOutputParser
from langchain_core.prompts import ChatPromptTemplate

from kb_chat.config import ReformulationConfig
from kb_chat.errors import ReformulationError

logger = logging.getLogger(__name__)

_REFORMULATION_PROMPT = """
You resolve references in the last user question of a conversation.

Rewrite the question so it can be understood without the conversation:
replace pronouns and vague references with the entities they refer to.
Do not answer the question. If it is already standalone, return it unchanged.
Reply with the rewritten question only.
""".strip()


class QueryReformulator:
    """Soft dependency: any failure falls back to the literal query."""

    def __init__(self, llm: Any | None = None) -> None:
        self.llm = llm
        self._chain = None
        if llm is not None:
            prompt = ChatPromptTemplate.from_messages(
                [
                    ("system", _REFORMULATION_PROMPT),
                    ("human", "Conversation:\n{history}\n\nLast question: {question}"),
                ]
            )
            self._chain = prompt | llm | StrOutputParser()

    @classmethod
    def from_config(cls, config: ReformulationConfig) -> "QueryReformulator":
        if not config.enabled:
            return cls()

        from langchain_openai import ChatOpenAI

        kwargs: dict[str, Any] = {"model": config.model, "temperature": 0}
        if config.api_key:
            kwargs["api_key"] = config.api_key
        if config.base_url:
            kwargs["base_url"] = config.base_url
        return cls(ChatOpenAI(**kwargs))

    async def reformulate(self, query: str, history: Sequence[BaseMessage]) -> str:
        if self._chain is None:
            return query
        try:
            output = await self._rewrite(query, history)
        except ReformulationError as exc:
            logger.warning("Query reformulation degraded, using raw query: %s", exc)
            return query
        return output or query

    async def _rewrite(self, query: str, history: Sequence[BaseMessage]) -> str:
        try:
            output = await self._chain.ainvoke(
                {"history": get_buffer_string(list(history)), "question": query}
            )
        except Exception as exc:
            raise ReformulationError(str(exc) or exc.__class__.__name__) from exc
        return output.strip()

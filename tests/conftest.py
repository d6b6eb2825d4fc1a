from __future__ import annotations

from collections.abc import AsyncIterator, Iterator
from contextlib import asynccontextmanager
from typing import Any

import pytest
from langchain_community.vectorstores import FAISS
from langchain_core.language_models import BaseChatModel
from langchain_core.messages import AIMessage, AIMessageChunk, BaseMessage
from langchain_core.outputs import ChatGeneration, ChatGenerationChunk, ChatResult
from langchain_core.utils.function_calling import convert_to_openai_tool
from pydantic import Field

from kb_chat.agent.tools import ExternalToolDescriptor
from kb_chat.models import ChatModelHandle
from kb_chat.retrieval.embedder import HashingEmbedder
from kb_chat.retrieval.knowledge_base import InMemoryKnowledgeBaseStore
from kb_chat.retrieval.vector_store import FaissVectorStore
from kb_chat.types import KnowledgeBase

POLICY_TEXTS = [
    "Company policy states all employees must encrypt customer data at rest.",
    "Customer data exports require approval from the security team.",
    "Holiday arrangements are documented in the employee handbook.",
    "Laptops must use full disk encryption and a screen lock.",
    "Backups of customer data are encrypted and kept for thirty days.",
    "Visitors must sign in at the front desk.",
]


class ScriptedChatModel(BaseChatModel):
    """Chat model that replays a fixed reply or a fixed chunk sequence."""

    response: AIMessage = Field(default_factory=lambda: AIMessage(content=""))
    chunks: list[AIMessageChunk] = Field(default_factory=list)
    fail: bool = False
    calls: list[list[BaseMessage]] = Field(default_factory=list)
    bound_tools: list[Any] = Field(default_factory=list)

    @property
    def _llm_type(self) -> str:
        return "scripted"

    def _generate(
        self,
        messages: list[BaseMessage],
        stop: list[str] | None = None,
        run_manager: Any = None,
        **kwargs: Any,
    ) -> ChatResult:
        self.calls.append(list(messages))
        if self.fail:
            raise RuntimeError("model unavailable")
        return ChatResult(generations=[ChatGeneration(message=self.response)])

    def _stream(
        self,
        messages: list[BaseMessage],
        stop: list[str] | None = None,
        run_manager: Any = None,
        **kwargs: Any,
    ) -> Iterator[ChatGenerationChunk]:
        self.calls.append(list(messages))
        if self.fail:
            raise RuntimeError("model unavailable")
        for chunk in self.chunks:
            yield ChatGenerationChunk(message=chunk)

    def bind_tools(self, tools: Any, **kwargs: Any) -> Any:
        formatted = [convert_to_openai_tool(tool) for tool in tools]
        self.bound_tools.extend(formatted)
        return self.bind(tools=formatted, **kwargs)


class FakeToolRegistry:
    """External tool registry double that records calls."""

    def __init__(self, descriptors: list[ExternalToolDescriptor] | None = None) -> None:
        self.descriptors = descriptors or [
            ExternalToolDescriptor(
                name="read_query",
                description="Run a read-only SQL query.",
                input_schema={
                    "type": "object",
                    "properties": {"query": {"type": "string"}},
                    "required": ["query"],
                },
            ),
            ExternalToolDescriptor(name="explode", description="Always fails."),
        ]
        self.calls: list[tuple[str, dict[str, Any]]] = []
        self.list_count = 0
        self.opened = 0
        self.closed = 0

    async def list_tools(self) -> list[ExternalToolDescriptor]:
        self.list_count += 1
        return list(self.descriptors)

    async def call_tool(self, name: str, arguments: dict[str, Any]) -> Any:
        self.calls.append((name, arguments))
        if name == "explode":
            raise RuntimeError("tool crashed")
        return {"content": [{"type": "text", "text": f"rows for {arguments.get('query')}"}]}

    def factory(self) -> Any:
        @asynccontextmanager
        async def _connect() -> AsyncIterator["FakeToolRegistry"]:
            self.opened += 1
            try:
                yield self
            finally:
                self.closed += 1

        return _connect


class RecordingEmbedder(HashingEmbedder):
    def __init__(self) -> None:
        super().__init__()
        self.queries: list[str] = []

    def embed_query(self, text: str) -> list[float]:
        self.queries.append(text)
        return super().embed_query(text)


class ModelFactorySpy:
    def __init__(self, model: ScriptedChatModel, supports_tool_binding: bool = True) -> None:
        self.model = model
        self.supports_tool_binding = supports_tool_binding
        self.requests: list[tuple[str, str]] = []

    def __call__(self, model: str, family: str) -> ChatModelHandle:
        self.requests.append((model, family))
        return ChatModelHandle(model=self.model, supports_tool_binding=self.supports_tool_binding)


@pytest.fixture
def knowledge_bases() -> InMemoryKnowledgeBaseStore:
    return InMemoryKnowledgeBaseStore([KnowledgeBase(id=1, name="policies", embedding="hashing")])


def build_policy_index() -> FAISS:
    return FAISS.from_texts(
        POLICY_TEXTS,
        HashingEmbedder(),
        metadatas=[{"source": f"policy-{i}"} for i in range(len(POLICY_TEXTS))],
    )


@pytest.fixture
def vector_store() -> FaissVectorStore:
    store = FaissVectorStore()
    store.add_index("collection_1", build_policy_index())
    return store


@pytest.fixture
def recording_embedder() -> RecordingEmbedder:
    return RecordingEmbedder()


@pytest.fixture
def tool_registry() -> FakeToolRegistry:
    return FakeToolRegistry()

"""Response orchestration for grounded and tool-calling chat."""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator, Callable
from contextlib import AsyncExitStack, aclosing, asynccontextmanager
from dataclasses import dataclass

from kb_chat.agent.dispatch import ToolDispatcher
from kb_chat.agent.reformulator import QueryReformulator
from kb_chat.agent.registry import ToolCatalog
from kb_chat.agent.tools import ToolRegistryFactory, build_tool_catalog
from kb_chat.config import Settings
from kb_chat.errors import ChatError, NotFoundError
from kb_chat.messages import (
    content_text,
    normalize_messages,
    serialize_history,
    to_role_content_pairs,
)
from kb_chat.models import ChatModelFactory, ChatModelHandle, invoke_model, stream_model_chunks
from kb_chat.obs.tracing import Timer, log_tool_trace
from kb_chat.prompting import assemble_prompt, format_documents
from kb_chat.retrieval.embedder import Embedder, create_embedder
from kb_chat.retrieval.knowledge_base import KnowledgeBaseStore
from kb_chat.retrieval.reranker import CohereReranker, Reranker
from kb_chat.retrieval.retriever import CollectionRetriever
from kb_chat.retrieval.vector_store import VectorStore
from kb_chat.schemas import (
    AssistantMessage,
    ChatRequest,
    ChatResponse,
    OutboundEvent,
    RelevantDocuments,
    StreamError,
    TextDelta,
)
from kb_chat.types import EvidenceDocument

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class _GroundedTurn:
    model: ChatModelHandle
    prompt: str
    documents: list[EvidenceDocument]


class ResponseOrchestrator:
    """Selects the knowledge-base or tool-calling branch for a chat request.

    A request carrying `knowledgebase_id` is answered from retrieved evidence;
    any other request is answered by a model bound to the tool catalog. Both
    branches support a single JSON reply (`respond`) or an event stream
    (`open_stream`). The orchestrator is the only producer of outbound events.
    """

    def __init__(
        self,
        *,
        knowledge_bases: KnowledgeBaseStore,
        vector_store: VectorStore,
        model_factory: ChatModelFactory,
        settings: Settings | None = None,
        reformulator: QueryReformulator | None = None,
        reranker: Reranker | None = None,
        embedder_factory: Callable[[str], Embedder] = create_embedder,
        tool_registry_factory: ToolRegistryFactory | None = None,
    ) -> None:
        self.knowledge_bases = knowledge_bases
        self.vector_store = vector_store
        self.model_factory = model_factory
        self.settings = settings or Settings()
        self.reformulator = reformulator or QueryReformulator.from_config(self.settings.reformulation)
        if reranker is None and self.settings.reranker.enabled:
            reranker = CohereReranker(self.settings.reranker)
        self.reranker = reranker
        self.embedder_factory = embedder_factory
        self.tool_registry_factory = tool_registry_factory

    async def respond(self, request: ChatRequest) -> ChatResponse:
        with Timer() as timer:
            if request.knowledgebase_id is not None:
                turn = await self._prepare_grounded(request, request.knowledgebase_id)
                response = await invoke_model(turn.model.model, turn.prompt)
                message = AssistantMessage(
                    content=response.content,
                    relevant_docs=[document.to_payload() for document in turn.documents],
                )
            else:
                message = await self._respond_with_tools(request)
        logger.info("Answered %s request in %.1f ms", request.family, timer.elapsed_ms)
        return ChatResponse(message=message)

    async def open_stream(self, request: ChatRequest) -> AsyncIterator[OutboundEvent]:
        """Run every step that precedes the first event, then return the stream.

        Failures raised here (unknown knowledge base, invalid messages,
        unsupported model family, tool discovery, retrieval errors) reach the
        caller before any event is written. Failures inside the returned stream
        end it with a `StreamError` event. On the tool-calling branch the stream
        owns the open tool registry and releases it when it finishes, so it must
        be iterated.
        """

        if request.knowledgebase_id is not None:
            turn = await self._prepare_grounded(request, request.knowledgebase_id)
            return _guarded(self._stream_grounded(turn))

        normalize_messages(request.messages)
        handle = self.model_factory(request.model, request.family)
        resources = AsyncExitStack()
        try:
            catalog = await resources.enter_async_context(self._tool_catalog())
        except BaseException:
            await resources.aclose()
            raise
        return _guarded(self._stream_with_tools(request, handle, catalog, resources))

    async def _prepare_grounded(self, request: ChatRequest, kb_id: int) -> _GroundedTurn:
        history = normalize_messages(request.messages)
        knowledge_base = await self.knowledge_bases.lookup(kb_id)
        if knowledge_base is None:
            raise NotFoundError(f"Knowledge base with id {kb_id} not found")
        logger.info(
            "Chat with knowledge base %s (%s) using embedding %r",
            knowledge_base.id,
            knowledge_base.name,
            knowledge_base.embedding,
        )

        retriever = CollectionRetriever(
            self.vector_store,
            self.embedder_factory(knowledge_base.embedding),
            knowledge_base.collection_key,
            self.settings.retrieval,
        )
        model = self.model_factory(request.model, request.family)

        query = request.latest_query
        reformulated = await self.reformulator.reformulate(query, history)
        logger.info("Reformulated query: %s", reformulated)

        documents = await retriever.retrieve(reformulated)
        if self.reranker is not None:
            documents = await self.reranker.rerank(documents, reformulated, self.settings.reranker.top_n)

        prompt = assemble_prompt(
            question=query,
            chat_history=serialize_history(request.messages),
            context=format_documents(documents),
        )
        return _GroundedTurn(model=model, prompt=prompt, documents=documents)

    async def _stream_grounded(self, turn: _GroundedTurn) -> AsyncIterator[OutboundEvent]:
        async with aclosing(stream_model_chunks(turn.model.model, turn.prompt)) as chunks:
            async for chunk in chunks:
                yield TextDelta(content=content_text(chunk.content))
        yield RelevantDocuments(documents=[document.to_payload() for document in turn.documents])

    async def _respond_with_tools(self, request: ChatRequest) -> AssistantMessage:
        normalize_messages(request.messages)
        handle = self.model_factory(request.model, request.family)
        async with self._tool_catalog() as catalog:
            dispatcher = ToolDispatcher(catalog, self.settings.agent)
            model = handle.with_tools(catalog.as_langchain_tools())
            response = await dispatcher.run_sync(model, to_role_content_pairs(request.messages))
        return AssistantMessage(content=response.content)

    async def _stream_with_tools(
        self,
        request: ChatRequest,
        handle: ChatModelHandle,
        catalog: ToolCatalog,
        resources: AsyncExitStack,
    ) -> AsyncIterator[OutboundEvent]:
        async with resources:
            dispatcher = ToolDispatcher(catalog, self.settings.agent)
            model = handle.with_tools(catalog.as_langchain_tools())
            messages = to_role_content_pairs(request.messages)
            async with aclosing(dispatcher.stream(model, messages)) as events:
                async for event in events:
                    yield event

    @asynccontextmanager
    async def _tool_catalog(self) -> AsyncIterator[ToolCatalog]:
        """Build the catalog, holding any external registry open until exit."""
        async with AsyncExitStack() as stack:
            client = None
            if self.tool_registry_factory is not None:
                client = await stack.enter_async_context(self.tool_registry_factory())
            catalog = await build_tool_catalog(client)
            catalog.set_observer(log_tool_trace)
            logger.info("Tool catalog: %s", ", ".join(catalog.names()))
            yield catalog


async def _guarded(events: AsyncIterator[OutboundEvent]) -> AsyncIterator[OutboundEvent]:
    async with aclosing(events) as stream:
        try:
            async for event in stream:
                yield event
        except ChatError as exc:
            logger.error("Stream aborted: %s", exc)
            yield StreamError(code=exc.code, message=exc.message)
        except Exception as exc:
            logger.exception("Stream aborted by unexpected error")
            yield StreamError(code="internal_error", message=str(exc) or exc.__class__.__name__)

"""FastAPI entrypoint for the chat endpoint.

Serve with `uvicorn --factory kb_chat.api.main:create_app`; settings are read
from the environment when the app is created, not on import.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from typing import Any, cast

from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.responses import StreamingResponse

from kb_chat.agent.mcp import mcp_registry_factory
from kb_chat.config import Settings
from kb_chat.errors import InvalidRequestError, NotFoundError, RetrievalError, UpstreamModelError
from kb_chat.models import model_factory
from kb_chat.orchestrator import ResponseOrchestrator
from kb_chat.retrieval.knowledge_base import SqliteKnowledgeBaseStore
from kb_chat.retrieval.vector_store import FaissVectorStore
from kb_chat.schemas import ChatRequest, OutboundEvent, encode_event

logger = logging.getLogger(__name__)

NDJSON_MEDIA_TYPE = "application/x-ndjson"


def build_orchestrator(settings: Settings) -> ResponseOrchestrator:
    return ResponseOrchestrator(
        knowledge_bases=SqliteKnowledgeBaseStore(settings.db_path),
        vector_store=FaissVectorStore(settings.retrieval.index_dir),
        model_factory=model_factory(settings.models),
        settings=settings,
        tool_registry_factory=mcp_registry_factory(settings.mcp),
    )


def _get_orchestrator(request: Request) -> ResponseOrchestrator:
    orchestrator = getattr(request.app.state, "orchestrator", None)
    if orchestrator is None:  # pragma: no cover
        raise RuntimeError("Chat orchestrator not configured")
    return cast(ResponseOrchestrator, orchestrator)


ORCHESTRATOR_DEPENDENCY = Depends(_get_orchestrator)


async def _ndjson(events: AsyncIterator[OutboundEvent]) -> AsyncIterator[str]:
    async for event in events:
        yield encode_event(event)


def create_app(
    orchestrator: ResponseOrchestrator | None = None,
    settings: Settings | None = None,
) -> FastAPI:
    settings = settings or Settings.from_env()
    app = FastAPI(title="Knowledge Base Chat", version="0.1.0")
    app.state.settings = settings
    app.state.orchestrator = orchestrator or build_orchestrator(settings)

    @app.get("/health")
    def health() -> dict[str, Any]:
        return {
            "status": "ok",
            "reranker_enabled": settings.reranker.enabled,
            "max_tool_rounds": settings.agent.max_tool_rounds,
        }

    @app.post("/api/models/chat", response_model=None)
    async def chat(
        request: ChatRequest,
        orchestrator: ResponseOrchestrator = ORCHESTRATOR_DEPENDENCY,
    ) -> Any:
        try:
            if not request.stream:
                response = await orchestrator.respond(request)
                return response.model_dump(exclude_none=True)
            events = await orchestrator.open_stream(request)
        except NotFoundError as exc:
            raise HTTPException(status_code=404, detail=exc.message) from exc
        except InvalidRequestError as exc:
            raise HTTPException(status_code=400, detail=exc.message) from exc
        except (RetrievalError, UpstreamModelError) as exc:
            logger.error("Chat request failed upstream: %s", exc)
            raise HTTPException(status_code=502, detail=exc.message) from exc

        return StreamingResponse(
            _ndjson(events),
            media_type=NDJSON_MEDIA_TYPE,
            headers={"cache-control": "no-cache", "x-accel-buffering": "no"},
        )

    return app


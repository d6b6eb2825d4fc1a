"""Cross-encoder reranking through a Cohere-compatible HTTP API."""

from __future__ import annotations

import logging
from typing import Any, Protocol

import httpx

from kb_chat.config import RerankerConfig
from kb_chat.errors import RetrievalError
from kb_chat.types import EvidenceDocument

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://api.cohere.com"


class Reranker(Protocol):
    async def rerank(
        self,
        documents: list[EvidenceDocument],
        query: str,
        top_n: int,
    ) -> list[EvidenceDocument]:
        """Return at most `top_n` documents in the final ranking order."""


class CohereReranker:
    """Calls `POST /v1/rerank` and reorders documents by relevance score.

    Failures are not recovered here: transport errors, error statuses and
    malformed payloads all raise `RetrievalError`.
    """

    def __init__(self, config: RerankerConfig, client: httpx.AsyncClient | None = None) -> None:
        self.config = config
        self._client = client

    async def rerank(
        self,
        documents: list[EvidenceDocument],
        query: str,
        top_n: int | None = None,
    ) -> list[EvidenceDocument]:
        limit = top_n or self.config.top_n
        if not documents:
            return []

        payload = {
            "model": self.config.model,
            "query": query,
            "documents": [document.text for document in documents],
            "top_n": min(limit, len(documents)),
        }
        try:
            body = await self._post(payload)
            results = body["results"]
            reranked: list[EvidenceDocument] = []
            for item in results[:limit]:
                source = documents[int(item["index"])]
                score = float(item["relevance_score"])
                reranked.append(
                    EvidenceDocument(
                        text=source.text,
                        metadata={**source.metadata, "relevance_score": score},
                        score=score,
                    )
                )
        except httpx.HTTPError as exc:
            raise RetrievalError(f"Rerank request failed: {exc}") from exc
        except (KeyError, IndexError, TypeError, ValueError) as exc:
            raise RetrievalError(f"Malformed rerank response: {exc}") from exc

        logger.info("Reranked %d documents down to %d", len(documents), len(reranked))
        return reranked

    async def _post(self, payload: dict[str, Any]) -> Any:
        url = f"{(self.config.base_url or DEFAULT_BASE_URL).rstrip('/')}/v1/rerank"
        headers = {"Content-Type": "application/json"}
        if self.config.api_key:
            headers["Authorization"] = f"Bearer {self.config.api_key}"

        if self._client is not None:
            response = await self._client.post(url, json=payload, headers=headers)
        else:
            async with httpx.AsyncClient(timeout=self.config.timeout_seconds) as client:
                response = await client.post(url, json=payload, headers=headers)
        response.raise_for_status()
        return response.json()

"""Evidence retriever bound to one knowledge collection."""

from __future__ import annotations

import logging

from kb_chat.config import RetrievalConfig
from kb_chat.errors import RetrievalError
from kb_chat.retrieval.embedder import Embedder
from kb_chat.retrieval.vector_store import VectorStore
from kb_chat.types import EvidenceDocument

logger = logging.getLogger(__name__)


class CollectionRetriever:
    """Searches a single collection with the embedder it was indexed with.

    The number of documents returned is bounded by `top_k`; ordering is the
    vector store's, most relevant first.
    """

    def __init__(
        self,
        vector_store: VectorStore,
        embedder: Embedder,
        collection: str,
        config: RetrievalConfig | None = None,
    ) -> None:
        self.vector_store = vector_store
        self.embedder = embedder
        self.collection = collection
        self.config = config or RetrievalConfig()

    async def retrieve(self, query: str) -> list[EvidenceDocument]:
        try:
            documents = await self.vector_store.similarity_search(
                self.collection,
                query,
                self.config.top_k,
                self.embedder,
            )
        except Exception as exc:
            raise RetrievalError(f"Search in {self.collection} failed: {exc}") from exc
        logger.info("Retrieved %d documents from %s", len(documents), self.collection)
        return documents

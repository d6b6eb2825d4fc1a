"""Similarity-search contract and its FAISS backend."""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Protocol

from langchain_community.vectorstores import FAISS
from langchain_core.embeddings import Embeddings

from kb_chat.types import EvidenceDocument

logger = logging.getLogger(__name__)

INDEX_FILE = "index.faiss"


class VectorStore(Protocol):
    async def similarity_search(
        self,
        collection: str,
        query: str,
        k: int,
        embeddings: Embeddings,
    ) -> list[EvidenceDocument]:
        """Return the `k` closest documents of `collection`, best first.

        `embeddings` is the client the collection was indexed with; it embeds
        the query.
        """


class FaissVectorStore:
    """FAISS indexes keyed by collection, via the LangChain community integration.

    Indexes are read from `<index_dir>/<collection>` as written by
    `FAISS.save_local`, loaded once and then reused. `add_index` registers an
    index that was built in process. A collection with no index has no
    evidence.
    """

    def __init__(self, index_dir: str | Path | None = None) -> None:
        self.index_dir = Path(index_dir) if index_dir is not None else None
        self._indexes: dict[str, FAISS] = {}

    def add_index(self, collection: str, index: FAISS) -> None:
        self._indexes[collection] = index

    async def similarity_search(
        self,
        collection: str,
        query: str,
        k: int,
        embeddings: Embeddings,
    ) -> list[EvidenceDocument]:
        index = self._indexes.get(collection)
        if index is None:
            index = await self._load(collection, embeddings)
        if index is None:
            return []

        # Bind the request's embeddings without mutating the shared index.
        view = FAISS(
            embeddings,
            index.index,
            index.docstore,
            index.index_to_docstore_id,
            distance_strategy=index.distance_strategy,
        )
        pairs = await view.asimilarity_search_with_relevance_scores(query, k=k)
        return [
            EvidenceDocument(text=doc.page_content, metadata=dict(doc.metadata), score=float(score))
            for doc, score in pairs
        ]

    async def _load(self, collection: str, embeddings: Embeddings) -> FAISS | None:
        folder = self.index_dir / collection if self.index_dir is not None else None
        if folder is None or not (folder / INDEX_FILE).is_file():
            logger.warning("No FAISS index for %s", collection)
            return None

        # load_local unpickles the docstore; index_dir must hold trusted indexes only.
        index = await asyncio.to_thread(
            FAISS.load_local,
            str(folder),
            embeddings,
            allow_dangerous_deserialization=True,
        )
        logger.info("Loaded FAISS index for %s from %s", collection, folder)
        self._indexes[collection] = index
        return index

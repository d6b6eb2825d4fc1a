import threading

import pytest

from conftest import RecordingEmbedder, build_policy_index
from kb_chat.config import RetrievalConfig
from kb_chat.errors import RetrievalError
from kb_chat.retrieval.embedder import HashingEmbedder, create_embedder
from kb_chat.retrieval.knowledge_base import SqliteKnowledgeBaseStore
from kb_chat.retrieval.retriever import CollectionRetriever
from kb_chat.retrieval.vector_store import FaissVectorStore
from kb_chat.types import KnowledgeBase


async def test_retriever_returns_most_relevant_first(vector_store) -> None:
    retriever = CollectionRetriever(vector_store, HashingEmbedder(), "collection_1", RetrievalConfig(top_k=2))

    documents = await retriever.retrieve("encrypt customer data at rest")

    assert len(documents) == 2
    assert documents[0].text.startswith("Company policy states")
    assert documents[0].score >= documents[1].score
    assert documents[0].metadata == {"source": "policy-0"}


async def test_retriever_only_searches_its_collection(vector_store) -> None:
    retriever = CollectionRetriever(vector_store, HashingEmbedder(), "collection_2")

    assert await retriever.retrieve("encrypt customer data") == []


async def test_saved_indexes_are_loaded_per_collection(tmp_path) -> None:
    build_policy_index().save_local(str(tmp_path / "collection_3"))
    store = FaissVectorStore(tmp_path)
    embedder = RecordingEmbedder()

    documents = await CollectionRetriever(store, embedder, "collection_3").retrieve("visitors sign in")

    assert len(documents) == 4
    assert documents[0].text == "Visitors must sign in at the front desk."
    assert embedder.queries == ["visitors sign in"]
    assert await CollectionRetriever(store, embedder, "collection_9").retrieve("visitors") == []


async def test_vector_store_failures_become_retrieval_errors() -> None:
    class BrokenStore:
        async def similarity_search(self, collection, query, k, embeddings):
            raise ConnectionError("vector backend unreachable")

    retriever = CollectionRetriever(BrokenStore(), HashingEmbedder(), "collection_1")

    with pytest.raises(RetrievalError):
        await retriever.retrieve("anything")


def test_hashing_provider_resolves_to_local_embedder() -> None:
    assert isinstance(create_embedder("hashing"), HashingEmbedder)


async def test_sqlite_knowledge_base_store_roundtrip(tmp_path) -> None:
    store = SqliteKnowledgeBaseStore(str(tmp_path / "kb.db"))
    store.add(KnowledgeBase(id=7, name="handbook", embedding="hashing"))

    knowledge_base = await store.lookup(7)

    assert knowledge_base == KnowledgeBase(id=7, name="handbook", embedding="hashing")
    assert knowledge_base.collection_key == "collection_7"
    assert await store.lookup(999999) is None


async def test_sqlite_lookup_runs_off_the_event_loop_thread(tmp_path, monkeypatch) -> None:
    store = SqliteKnowledgeBaseStore(str(tmp_path / "kb.db"))
    store.add(KnowledgeBase(id=3, name="security", embedding="hashing"))
    select = store._select
    threads = []

    def _recording_select(kb_id: int):
        threads.append(threading.get_ident())
        return select(kb_id)

    monkeypatch.setattr(store, "_select", _recording_select)

    assert (await store.lookup(3)).name == "security"
    assert threads and threads[0] != threading.get_ident()

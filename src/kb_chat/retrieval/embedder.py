"""Embedding clients, selected by the provider a knowledge base was indexed with."""

from __future__ import annotations

import re
from collections import Counter
from hashlib import blake2b
from math import sqrt
from typing import Any

from langchain_core.embeddings import Embeddings

HASHING_PROVIDER = "hashing"

_WORD = re.compile(r"\w+")


class Embedder(Embeddings):
    """LangChain `Embeddings` whose async query path stays in-process."""

    async def aembed_query(self, text: str) -> list[float]:
        return self.embed_query(text)


class HashingEmbedder(Embedder):
    """Offline embedder that buckets words by hash.

    Collections indexed with the `hashing` provider are searched with this
    class, which keeps local runs and tests free of network calls.
    """

    def __init__(self, buckets: int = 256) -> None:
        self.buckets = buckets

    def embed_documents(self, texts: list[str]) -> list[list[float]]:
        return [self.embed_query(text) for text in texts]

    def embed_query(self, text: str) -> list[float]:
        counts = Counter(self._bucket(word) for word in _WORD.findall(text.lower()))
        vector = [0.0] * self.buckets
        for (index, sign), count in counts.items():
            vector[index] += sign * count
        length = sqrt(sum(component * component for component in vector))
        return [component / length for component in vector] if length else vector

    def _bucket(self, word: str) -> tuple[int, float]:
        digest = blake2b(word.encode("utf-8"), digest_size=8).digest()
        return int.from_bytes(digest[:4], "little") % self.buckets, -1.0 if digest[4] & 1 else 1.0


class OpenAIEmbedder(Embedder):
    """Adapter over `langchain_openai.OpenAIEmbeddings`; `provider` is the model name."""

    def __init__(self, provider: str, **client_kwargs: Any) -> None:
        from langchain_openai import OpenAIEmbeddings

        self.provider = provider
        self._client = OpenAIEmbeddings(model=provider, **client_kwargs)

    def embed_documents(self, texts: list[str]) -> list[list[float]]:
        return self._client.embed_documents(texts)

    def embed_query(self, text: str) -> list[float]:
        return self._client.embed_query(text)

    async def aembed_query(self, text: str) -> list[float]:
        return await self._client.aembed_query(text)


def create_embedder(provider: str, **client_kwargs: Any) -> Embedder:
    if provider == HASHING_PROVIDER:
        return HashingEmbedder()
    return OpenAIEmbedder(provider, **client_kwargs)

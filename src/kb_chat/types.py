"""Shared domain models."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


@dataclass(slots=True)
class EvidenceDocument:
    """A retrieved passage with an optional relevance score."""

    text: str
    metadata: dict[str, Any] = field(default_factory=dict)
    score: float | None = None

    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"pageContent": self.text, "metadata": self.metadata}
        if self.score is not None:
            payload["score"] = self.score
        return payload


@dataclass(slots=True, frozen=True)
class KnowledgeBase:
    """A knowledge collection and the embedding provider it was indexed with."""

    id: int
    name: str
    embedding: str

    @property
    def collection_key(self) -> str:
        return f"collection_{self.id}"


@dataclass(slots=True)
class ToolTrace:
    """Trace record for an executed tool call."""

    name: str
    input_payload: dict[str, Any]
    output_preview: str
    latency_ms: float

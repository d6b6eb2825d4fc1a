"""Lookup of the knowledge collections available for grounded chat."""

from __future__ import annotations

import asyncio
import sqlite3
from pathlib import Path
from typing import Protocol

from kb_chat.types import KnowledgeBase


class KnowledgeBaseStore(Protocol):
    async def lookup(self, kb_id: int) -> KnowledgeBase | None:
        """Return the knowledge base or `None` when the id is unknown."""


class InMemoryKnowledgeBaseStore:
    def __init__(self, knowledge_bases: list[KnowledgeBase] | None = None) -> None:
        self._items = {kb.id: kb for kb in knowledge_bases or []}

    def add(self, knowledge_base: KnowledgeBase) -> None:
        self._items[knowledge_base.id] = knowledge_base

    async def lookup(self, kb_id: int) -> KnowledgeBase | None:
        return self._items.get(kb_id)


class SqliteKnowledgeBaseStore:
    """Reads knowledge bases from a local SQLite table."""

    def __init__(self, sqlite_path: str) -> None:
        self.db_file = Path(sqlite_path)
        _ensure_table(self.db_file)

    def add(self, knowledge_base: KnowledgeBase) -> None:
        with sqlite3.connect(self.db_file) as conn:
            conn.execute(
                "INSERT INTO knowledge_base(id, name, embedding) VALUES(?, ?, ?) "
                "ON CONFLICT(id) DO UPDATE SET name=excluded.name, embedding=excluded.embedding",
                (knowledge_base.id, knowledge_base.name, knowledge_base.embedding),
            )
            conn.commit()

    async def lookup(self, kb_id: int) -> KnowledgeBase | None:
        return await asyncio.to_thread(self._select, kb_id)

    def _select(self, kb_id: int) -> KnowledgeBase | None:
        with sqlite3.connect(self.db_file) as conn:
            cur = conn.execute(
                "SELECT id, name, embedding FROM knowledge_base WHERE id = ?", (kb_id,)
            )
            row = cur.fetchone()
        if row is None:
            return None
        return KnowledgeBase(id=row[0], name=row[1], embedding=row[2])


def _ensure_table(db_path: Path) -> None:
    with sqlite3.connect(db_path) as conn:
        conn.execute(
            "CREATE TABLE IF NOT EXISTS knowledge_base ("
            "id INTEGER PRIMARY KEY, name TEXT NOT NULL, embedding TEXT NOT NULL)"
        )
        conn.commit()

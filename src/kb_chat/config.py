"""Configuration models for the chat orchestrator."""

from __future__ import annotations

import os
import shlex
from collections.abc import Mapping

from pydantic import BaseModel, Field


class RerankerConfig(BaseModel):
    """Configures the optional Cohere-compatible reranking pass.

    Every field defaults to "feature disabled"; reranking only runs when a
    model is set together with an API key or a base URL.
    """

    api_key: str | None = None
    base_url: str | None = None
    model: str | None = None
    top_n: int = Field(default=4, ge=1)
    timeout_seconds: float = Field(default=30.0, gt=0.0)

    @property
    def enabled(self) -> bool:
        return bool(self.model) and bool(self.api_key or self.base_url)


class ReformulationConfig(BaseModel):
    """Configures the chat model used to rewrite follow-up questions."""

    model: str | None = None
    api_key: str | None = None
    base_url: str | None = None

    @property
    def enabled(self) -> bool:
        return bool(self.model)


class RetrievalConfig(BaseModel):
    """Configures evidence retrieval.

    `index_dir` holds one saved FAISS index folder per collection key.
    """

    top_k: int = Field(default=4, ge=1)
    index_dir: str = "indexes"


class AgentConfig(BaseModel):
    """Configures the tool-dispatch loop."""

    max_tool_rounds: int = Field(default=1, ge=1)
    tool_concurrency: bool = True


class ModelConfig(BaseModel):
    """Connection settings handed to chat model constructors."""

    openai_api_key: str | None = None
    openai_base_url: str | None = None
    ollama_base_url: str | None = None
    anthropic_api_key: str | None = None
    anthropic_base_url: str | None = None


class McpServerConfig(BaseModel):
    """Command line of the stdio MCP server queried for external tools."""

    command: str | None = None
    args: list[str] = Field(default_factory=list)

    @property
    def enabled(self) -> bool:
        return bool(self.command)


class Settings(BaseModel):
    """Aggregated service settings passed explicitly into the orchestrator."""

    reranker: RerankerConfig = Field(default_factory=RerankerConfig)
    reformulation: ReformulationConfig = Field(default_factory=ReformulationConfig)
    retrieval: RetrievalConfig = Field(default_factory=RetrievalConfig)
    agent: AgentConfig = Field(default_factory=AgentConfig)
    models: ModelConfig = Field(default_factory=ModelConfig)
    mcp: McpServerConfig = Field(default_factory=McpServerConfig)
    db_path: str = "kb_chat.db"

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "Settings":
        env = os.environ if environ is None else environ
        openai_key = env.get("OPENAI_API_KEY") or None
        openai_base = env.get("OPENAI_BASE_URL") or None
        return cls(
            reranker=RerankerConfig(
                api_key=env.get("COHERE_API_KEY") or None,
                base_url=env.get("COHERE_BASE_URL") or None,
                model=env.get("COHERE_MODEL") or None,
            ),
            reformulation=ReformulationConfig(
                model=env.get("REFORMULATION_MODEL") or None,
                api_key=openai_key,
                base_url=openai_base,
            ),
            retrieval=RetrievalConfig(index_dir=env.get("KB_CHAT_INDEX_DIR", "indexes")),
            agent=AgentConfig(
                max_tool_rounds=int(env.get("KB_CHAT_MAX_TOOL_ROUNDS", "1")),
            ),
            models=ModelConfig(
                openai_api_key=openai_key,
                openai_base_url=openai_base,
                ollama_base_url=env.get("OLLAMA_BASE_URL") or None,
                anthropic_api_key=env.get("ANTHROPIC_API_KEY") or None,
                anthropic_base_url=env.get("ANTHROPIC_BASE_URL") or None,
            ),
            mcp=McpServerConfig(
                command=env.get("KB_CHAT_MCP_COMMAND") or None,
                args=shlex.split(env.get("KB_CHAT_MCP_ARGS", "")),
            ),
            db_path=env.get("KB_CHAT_DB_PATH", "kb_chat.db"),
        )

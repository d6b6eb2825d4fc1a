"""Knowledge-base grounded and tool-calling chat orchestration."""

from .config import AgentConfig, RerankerConfig, Settings

__all__ = ["AgentConfig", "RerankerConfig", "Settings"]

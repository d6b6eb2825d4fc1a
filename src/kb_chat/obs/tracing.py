"""Request timing and tool trace logging."""

from __future__ import annotations

import logging
import time

from kb_chat.types import ToolTrace

logger = logging.getLogger(__name__)


def log_tool_trace(trace: ToolTrace) -> None:
    """Catalog observer that records each tool execution."""
    logger.info(
        "Tool %s finished in %.1f ms: %s",
        trace.name,
        trace.latency_ms,
        trace.output_preview,
    )


class Timer:
    """Context timer reporting elapsed wall time in milliseconds."""

    def __init__(self) -> None:
        self._start = 0.0
        self.elapsed_ms = 0.0

    def __enter__(self) -> "Timer":
        self._start = time.perf_counter()
        return self

    def __exit__(self, exc_type: object, exc: object, tb: object) -> None:
        self.elapsed_ms = (time.perf_counter() - self._start) * 1000.0

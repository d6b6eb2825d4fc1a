"""External tool registry backed by a stdio MCP server."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator
from contextlib import AbstractAsyncContextManager, asynccontextmanager
from typing import Any

from mcp import ClientSession, StdioServerParameters
from mcp.client.stdio import stdio_client

from kb_chat.agent.tools import ExternalToolDescriptor, ToolRegistryClient, ToolRegistryFactory
from kb_chat.config import McpServerConfig

logger = logging.getLogger(__name__)


class McpToolRegistry:
    """Adapts an initialized MCP `ClientSession` to the registry contract."""

    def __init__(self, session: ClientSession) -> None:
        self._session = session

    async def list_tools(self) -> list[ExternalToolDescriptor]:
        response = await self._session.list_tools()
        return [
            ExternalToolDescriptor(
                name=tool.name,
                description=tool.description or "",
                input_schema=tool.inputSchema,
            )
            for tool in response.tools
        ]

    async def call_tool(self, name: str, arguments: dict[str, Any]) -> Any:
        result = await self._session.call_tool(name, arguments=arguments)
        logger.info("MCP tool %s returned isError=%s", name, result.isError)
        return result


@asynccontextmanager
async def connect_mcp_registry(config: McpServerConfig) -> AsyncIterator[McpToolRegistry]:
    """Spawn the configured server and hold the session open for one request.

    The stdio transport and the session are entered and exited by one runner
    task, so the registry may be released from a different task than the one
    that opened it (a streamed response finishes outside the request handler).
    """
    if not config.command:
        raise ValueError("MCP server command is not configured")
    params = StdioServerParameters(command=config.command, args=list(config.args))
    opened: asyncio.Future[ClientSession] = asyncio.get_running_loop().create_future()
    release = asyncio.Event()

    async def _hold_session() -> None:
        try:
            async with stdio_client(params) as (read_stream, write_stream):
                async with ClientSession(read_stream, write_stream) as session:
                    await session.initialize()
                    opened.set_result(session)
                    await release.wait()
        except Exception as exc:
            if opened.done():
                raise
            opened.set_exception(exc)

    runner = asyncio.create_task(_hold_session())
    handed_out = False
    try:
        session = await opened
        handed_out = True
        logger.info("MCP session open: %s", config.command)
        yield McpToolRegistry(session)
    finally:
        release.set()
        if not handed_out:
            runner.cancel()
        (outcome,) = await asyncio.gather(runner, return_exceptions=True)
        if isinstance(outcome, Exception):
            logger.warning("MCP session closed with error: %s", outcome)


def mcp_registry_factory(config: McpServerConfig) -> ToolRegistryFactory | None:
    if not config.enabled:
        return None

    def _factory() -> AbstractAsyncContextManager[ToolRegistryClient]:
        return connect_mcp_registry(config)

    return _factory

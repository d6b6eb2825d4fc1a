"""Per-request tool catalog built on Pydantic v2 models."""

from __future__ import annotations

import inspect
from collections.abc import Awaitable, Callable, Iterable
from typing import Any

from langchain_core.tools import StructuredTool
from pydantic import BaseModel, ConfigDict

from kb_chat.errors import InvalidRequestError
from kb_chat.obs.tracing import Timer
from kb_chat.types import ToolTrace

TraceObserver = Callable[[ToolTrace], None]


class ToolSpec(BaseModel):
    """A tool the model may call.

    With a Pydantic `args_schema` the handler receives the validated model.
    A dict schema comes from an external registry and is forwarded as is, and
    the handler receives the raw argument dict.
    """

    model_config = ConfigDict(arbitrary_types_allowed=True)

    name: str
    description: str
    args_schema: type[BaseModel] | dict[str, Any]
    handler: Callable[[Any], Any]

    async def ainvoke(self, arguments: dict[str, Any]) -> Any:
        if isinstance(self.args_schema, dict):
            outcome = self.handler(arguments)
        else:
            outcome = self.handler(self.args_schema.model_validate(arguments))
        return await outcome if inspect.isawaitable(outcome) else outcome


class ToolCatalog:
    """Name-unique tool bindings for the lifetime of one request."""

    def __init__(self, specs: Iterable[ToolSpec] = ()) -> None:
        self._by_name: dict[str, ToolSpec] = {}
        self._observer: TraceObserver | None = None
        for spec in specs:
            self.register(spec)

    def register(self, spec: ToolSpec) -> None:
        if spec.name in self._by_name:
            raise InvalidRequestError(f"Tool already registered: {spec.name}")
        self._by_name[spec.name] = spec

    def set_observer(self, observer: TraceObserver | None) -> None:
        self._observer = observer

    def lookup(self, name: str) -> ToolSpec | None:
        return self._by_name.get(name)

    def names(self) -> list[str]:
        return list(self._by_name)

    def as_langchain_tools(self) -> list[StructuredTool]:
        """Tools for `bind_tools`; calling one goes through `ainvoke` and its trace."""
        return [
            StructuredTool.from_function(
                coroutine=self._build_coroutine(spec.name),
                name=spec.name,
                description=spec.description,
                args_schema=spec.args_schema,
            )
            for spec in self._by_name.values()
        ]

    async def ainvoke(self, name: str, arguments: dict[str, Any]) -> Any:
        spec = self.lookup(name)
        if spec is None:
            raise KeyError(f"Unknown tool: {name}")

        with Timer() as timer:
            output = await spec.ainvoke(arguments)
        if self._observer is not None:
            self._observer(
                ToolTrace(
                    name=name,
                    input_payload=arguments,
                    output_preview=str(output)[:320],
                    latency_ms=timer.elapsed_ms,
                )
            )
        return output

    def _build_coroutine(self, name: str) -> Callable[..., Awaitable[Any]]:
        async def _call(**kwargs: Any) -> Any:
            return await self.ainvoke(name, kwargs)

        return _call

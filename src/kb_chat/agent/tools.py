"""Built-in calculator tool and wrapping of externally discovered tools."""

from __future__ import annotations

import math
from decimal import Decimal
from collections.abc import Callable, Iterable
from contextlib import AbstractAsyncContextManager
from typing import Any, Literal, Protocol

from pydantic import BaseModel, Field

from kb_chat.agent.registry import ToolCatalog, ToolSpec

CALCULATOR_TOOL_NAME = "calculator"


class CalculatorInput(BaseModel):
    operation: Literal["add", "subtract", "multiply", "divide"] = Field(
        description="The type of operation to execute."
    )
    number1: float = Field(description="The first number to operate on.")
    number2: float = Field(description="The second number to operate on.")


class ExternalToolDescriptor(BaseModel):
    """A tool advertised by the external tool registry."""

    name: str
    description: str = ""
    input_schema: dict[str, Any] = Field(default_factory=lambda: {"type": "object", "properties": {}})


class ToolRegistryClient(Protocol):
    """Out-of-process tool registry, connected for a single request."""

    async def list_tools(self) -> list[ExternalToolDescriptor]:
        """List the tools currently offered."""

    async def call_tool(self, name: str, arguments: dict[str, Any]) -> Any:
        """Run a tool and return its raw result."""


ToolRegistryFactory = Callable[[], AbstractAsyncContextManager[ToolRegistryClient]]


def build_calculator_tool() -> ToolSpec:
    """Arithmetic over two operands.

    Division follows IEEE-754 rather than raising: `1/0` gives `Infinity`.
    Results are rendered the way a JavaScript runtime prints numbers, so
    `6/3` gives `2` and not `2.0`.
    """

    def _calculate(input_data: CalculatorInput) -> str:
        a, b = input_data.number1, input_data.number2
        if input_data.operation == "add":
            return format_number(a + b)
        if input_data.operation == "subtract":
            return format_number(a - b)
        if input_data.operation == "multiply":
            return format_number(a * b)
        return format_number(_ieee_divide(a, b))

    return ToolSpec(
        name=CALCULATOR_TOOL_NAME,
        description="Can perform mathematical operations.",
        args_schema=CalculatorInput,
        handler=_calculate,
    )


def wrap_external_tools(
    client: ToolRegistryClient,
    descriptors: Iterable[ExternalToolDescriptor],
) -> list[ToolSpec]:
    """Wrap each descriptor so invocation forwards arguments to the registry."""
    return [_wrap_external_tool(client, descriptor) for descriptor in descriptors]


async def build_tool_catalog(client: ToolRegistryClient | None = None) -> ToolCatalog:
    """Calculator first, then every external tool the registry lists."""
    catalog = ToolCatalog([build_calculator_tool()])
    if client is None:
        return catalog
    for spec in wrap_external_tools(client, await client.list_tools()):
        catalog.register(spec)
    return catalog


def format_number(value: float) -> str:
    if math.isnan(value):
        return "NaN"
    if math.isinf(value):
        return "Infinity" if value > 0 else "-Infinity"
    if value == 0:
        return "0"

    # Shortest round-trip digits, laid out as ECMAScript Number::toString does.
    sign = "-" if value < 0 else ""
    _, digit_tuple, exponent = Decimal(repr(abs(value))).normalize().as_tuple()
    digits = "".join(map(str, digit_tuple))
    k = len(digits)
    n = exponent + k
    if k <= n <= 21:
        return sign + digits + "0" * (n - k)
    if 0 < n <= 21:
        return sign + digits[:n] + "." + digits[n:]
    if -6 < n <= 0:
        return sign + "0." + "0" * -n + digits
    mantissa = digits if k == 1 else digits[0] + "." + digits[1:]
    return f"{sign}{mantissa}e{n - 1:+d}"


def _ieee_divide(a: float, b: float) -> float:
    if b == 0:
        if a == 0 or math.isnan(a):
            return math.nan
        return math.copysign(math.inf, a) * math.copysign(1.0, b)
    return a / b


def _wrap_external_tool(client: ToolRegistryClient, descriptor: ExternalToolDescriptor) -> ToolSpec:
    async def _forward(arguments: dict[str, Any]) -> Any:
        return await client.call_tool(descriptor.name, arguments)

    return ToolSpec(
        name=descriptor.name,
        description=descriptor.description,
        args_schema=descriptor.input_schema,
        handler=_forward,
    )

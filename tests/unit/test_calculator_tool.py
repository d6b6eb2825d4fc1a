import pytest
from pydantic import ValidationError

from langchain_core.utils.function_calling import convert_to_openai_tool

from kb_chat.agent.tools import CALCULATOR_TOOL_NAME, build_calculator_tool, build_tool_catalog, format_number


@pytest.mark.parametrize(
    ("operation", "number1", "number2", "expected"),
    [
        ("add", 2, 3, "5"),
        ("subtract", 2, 5, "-3"),
        ("multiply", 1.5, 4, "6"),
        ("divide", 6, 3, "2"),
        ("divide", 1, 4, "0.25"),
        ("add", 0.1, 0.2, "0.30000000000000004"),
    ],
)
async def test_calculator_renders_results_like_javascript(operation, number1, number2, expected) -> None:
    spec = build_calculator_tool()
    payload = {"operation": operation, "number1": number1, "number2": number2}

    assert await spec.ainvoke(payload) == expected


@pytest.mark.parametrize(
    ("number1", "expected"),
    [(1, "Infinity"), (-1, "-Infinity"), (0, "NaN")],
)
async def test_division_by_zero_is_not_an_error(number1, expected) -> None:
    spec = build_calculator_tool()

    result = await spec.ainvoke({"operation": "divide", "number1": number1, "number2": 0})

    assert result == expected


async def test_unknown_operation_is_rejected() -> None:
    with pytest.raises(ValidationError):
        await build_calculator_tool().ainvoke({"operation": "modulo", "number1": 1, "number2": 2})


async def test_catalog_merges_calculator_with_external_tools(tool_registry) -> None:
    catalog = await build_tool_catalog(tool_registry)

    assert catalog.names() == [CALCULATOR_TOOL_NAME, "read_query", "explode"]
    assert tool_registry.list_count == 1

    result = await catalog.ainvoke("read_query", {"query": "select 1"})

    assert tool_registry.calls == [("read_query", {"query": "select 1"})]
    assert result == {"content": [{"type": "text", "text": "rows for select 1"}]}


async def test_catalog_without_registry_only_has_calculator() -> None:
    catalog = await build_tool_catalog()

    assert catalog.names() == [CALCULATOR_TOOL_NAME]
    schema = convert_to_openai_tool(catalog.as_langchain_tools()[0])["function"]
    assert schema["name"] == "calculator"
    assert set(schema["parameters"]["properties"]) == {"operation", "number1", "number2"}


@pytest.mark.parametrize(
    ("value", "expected"),
    [
        (1.2345678901234568e20, "123456789012345680000"),
        (1e21, "1e+21"),
        (1.5e300, "1.5e+300"),
        (1e-7, "1e-7"),
        (-2.5e-8, "-2.5e-8"),
        (0.000001, "0.000001"),
        (123.456, "123.456"),
        (-0.0, "0"),
        (100.0, "100"),
    ],
)
def test_number_rendering_follows_javascript_to_string(value, expected) -> None:
    assert format_number(value) == expected

import pytest
from langchain_anthropic import ChatAnthropic
from langchain_ollama import ChatOllama
from langchain_openai import ChatOpenAI

from kb_chat.agent.tools import build_tool_catalog
from kb_chat.config import ModelConfig
from kb_chat.errors import InvalidRequestError
from kb_chat.models import create_chat_model

CONFIG = ModelConfig(
    openai_api_key="sk-test",
    ollama_base_url="http://ollama.local:11434",
    anthropic_api_key="sk-ant-test",
)


@pytest.mark.parametrize(
    ("model", "family", "model_class"),
    [
        ("gpt-4o-mini", "openai", ChatOpenAI),
        ("llama3.1", "ollama", ChatOllama),
        ("claude-3-5-haiku-latest", "Anthropic", ChatAnthropic),
    ],
)
def test_supported_families_build_tool_capable_models(model, family, model_class) -> None:
    handle = create_chat_model(model, family, CONFIG)

    assert isinstance(handle.model, model_class)
    assert handle.supports_tool_binding


async def test_ollama_models_receive_the_tool_catalog() -> None:
    catalog = await build_tool_catalog()
    handle = create_chat_model("llama3.1", "ollama", CONFIG)

    bound = handle.with_tools(catalog.as_langchain_tools())

    assert [tool["function"]["name"] for tool in bound.kwargs["tools"]] == ["calculator"]


def test_empty_catalog_leaves_the_model_unbound() -> None:
    handle = create_chat_model("llama3.1", "ollama", CONFIG)

    assert handle.with_tools([]) is handle.model


def test_unknown_family_is_rejected() -> None:
    with pytest.raises(InvalidRequestError):
        create_chat_model("some-model", "mystery", CONFIG)

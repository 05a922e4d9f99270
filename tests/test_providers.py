import json
from types import SimpleNamespace
from unittest.mock import AsyncMock

import httpx
import pytest

from parley.config import LMStudioSettings, OpenAISettings, ProviderSettings
from parley.exceptions import ProviderConfigError, ProviderError
from parley.models import ChatMessage, Role, ToolCall
from parley.notes import RETRIEVAL_SCHEMA
from parley.providers import (
    LMStudioProvider,
    OpenAICompatibleProvider,
    OpenAIProvider,
    get_provider,
    resolve_provider_name,
)
from parley.tools import AGENT_TOOLS


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)
    monkeypatch.delenv("OPENAI_BASE_URL", raising=False)
    monkeypatch.delenv("PARLEY_AI_PROVIDER", raising=False)


def _completion(content=None, tool_calls=None):
    message = SimpleNamespace(content=content, tool_calls=tool_calls)
    return SimpleNamespace(choices=[SimpleNamespace(message=message)])


def _function_call(call_id, name, arguments):
    return SimpleNamespace(id=call_id, function=SimpleNamespace(name=name, arguments=arguments))


def _provider_with(monkeypatch, completion) -> tuple[OpenAICompatibleProvider, AsyncMock]:
    provider = OpenAICompatibleProvider(api_key="test", default_model="test-model")
    create = AsyncMock(return_value=completion)
    monkeypatch.setattr(provider.openai_client.chat.completions, "create", create)
    return provider, create


# =============================================================================
# Selection
# =============================================================================


def test_lm_studio_is_the_fallback() -> None:
    assert resolve_provider_name(ProviderSettings()) == "lm_studio"


def test_openai_key_selects_openai(monkeypatch) -> None:
    monkeypatch.setenv("OPENAI_API_KEY", "sk-test")

    assert resolve_provider_name(ProviderSettings()) == "openai"


def test_explicit_name_wins(monkeypatch) -> None:
    monkeypatch.setenv("OPENAI_API_KEY", "sk-test")
    monkeypatch.setenv("PARLEY_AI_PROVIDER", "LM_Studio")

    assert resolve_provider_name(ProviderSettings()) == "lm_studio"
    assert resolve_provider_name(ProviderSettings(name="openai")) == "openai"


def test_get_provider_builds_configured_backends() -> None:
    lm = get_provider(ProviderSettings(lm_studio=LMStudioSettings(model="qwen")))
    assert isinstance(lm, LMStudioProvider)
    assert lm.default_model == "qwen"

    openai = get_provider(ProviderSettings(openai=OpenAISettings(api_key="sk-test")))
    assert isinstance(openai, OpenAIProvider)
    assert openai.force_json


def test_get_provider_rejects_bad_configuration() -> None:
    with pytest.raises(ProviderConfigError):
        get_provider(ProviderSettings(name="openai"))
    with pytest.raises(ProviderConfigError):
        get_provider(ProviderSettings(name="gemini"))


def test_json_mode_is_only_forced_on_openai_hosts() -> None:
    proxied = OpenAIProvider(api_key="sk-test", base_url="http://proxy.local/v1")

    assert proxied.force_json is False


# =============================================================================
# OpenAI-compatible conversion
# =============================================================================


def test_history_conversion() -> None:
    history = [
        ChatMessage(role=Role.USER, content="Cars?", persona="User"),
        ChatMessage(role=Role.MODEL, tool_calls=[ToolCall(id="c1", name="search_notes", args={"query": "cars"})]),
        ChatMessage(role=Role.TOOL, content="Found 1 relevant notes:", tool_call_id="c1"),
        ChatMessage(role=Role.MODEL, content="Ban them.", persona="The Visionary"),
    ]

    messages = OpenAICompatibleProvider._to_openai_messages(history, "You are The Pragmatist.")

    assert messages[0] == {"role": "system", "content": "You are The Pragmatist."}
    assert messages[1] == {"role": "user", "content": "Cars?"}
    assert messages[2]["tool_calls"][0]["id"] == "c1"
    assert json.loads(messages[2]["tool_calls"][0]["function"]["arguments"]) == {"query": "cars"}
    assert messages[3] == {"role": "tool", "tool_call_id": "c1", "content": "Found 1 relevant notes:"}
    assert messages[4] == {"role": "assistant", "content": "[The Visionary]: Ban them."}


def test_content_parts_are_flattened() -> None:
    parts = [{"type": "text", "text": "Hello "}, SimpleNamespace(text="world")]

    assert OpenAICompatibleProvider._normalize_text(parts) == "Hello world"
    assert OpenAICompatibleProvider._normalize_text(None) == ""


@pytest.mark.asyncio
async def test_generate_with_tools_returns_tool_calls(monkeypatch) -> None:
    provider, create = _provider_with(
        monkeypatch,
        _completion(tool_calls=[_function_call("c9", "search_notes", '{"query": "bikes"}')]),
    )

    response = await provider.generate_with_tools(
        [ChatMessage(role=Role.USER, content="bikes?")], AGENT_TOOLS, "You are X."
    )

    assert response.text == ""
    assert response.tool_calls == [ToolCall(id="c9", name="search_notes", args={"query": "bikes"})]
    request = create.await_args.kwargs
    assert request["model"] == "test-model"
    assert [t["function"]["name"] for t in request["tools"]] == ["search_notes", "create_note"]


@pytest.mark.asyncio
async def test_generate_with_tools_returns_final_text(monkeypatch) -> None:
    provider, _ = _provider_with(monkeypatch, _completion(content="  Final answer. "))

    response = await provider.generate_with_tools([], AGENT_TOOLS, "You are X.")

    assert response.text == "Final answer."
    assert response.tool_calls == []


@pytest.mark.asyncio
async def test_malformed_tool_arguments_raise(monkeypatch) -> None:
    provider, _ = _provider_with(
        monkeypatch, _completion(tool_calls=[_function_call("c1", "create_note", "{not json")])
    )

    with pytest.raises(ProviderError):
        await provider.generate_with_tools([], AGENT_TOOLS, "You are X.")


@pytest.mark.asyncio
async def test_generate_json(monkeypatch) -> None:
    provider, create = _provider_with(monkeypatch, _completion(content='["n1", "n2"]'))

    assert await provider.generate_json("pick notes", RETRIEVAL_SCHEMA) == ["n1", "n2"]
    assert "response_format" not in create.await_args.kwargs


@pytest.mark.asyncio
async def test_generate_json_rejects_invalid_output(monkeypatch) -> None:
    provider, _ = _provider_with(monkeypatch, _completion(content="Sure! Here are the ids"))

    with pytest.raises(ProviderError):
        await provider.generate_json("pick notes", RETRIEVAL_SCHEMA)


# =============================================================================
# LM Studio
# =============================================================================


def _lm_studio_with(handler) -> LMStudioProvider:
    provider = LMStudioProvider(default_model="qwen")
    provider._http_client = httpx.AsyncClient(
        transport=httpx.MockTransport(handler), base_url="http://localhost:1234"
    )
    return provider


@pytest.mark.asyncio
async def test_lm_studio_reports_health() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path == "/v1/models"
        return httpx.Response(200, json={"data": [{"id": "qwen"}]})

    provider = _lm_studio_with(handler)

    assert await provider.health_check() is True
    await provider.close()


@pytest.mark.asyncio
async def test_lm_studio_loads_each_model_once() -> None:
    loads = []

    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path == "/v1/models/load"
        loads.append(json.loads(request.content)["model"])
        # Servers without the load endpoint auto-load on first request
        return httpx.Response(404)

    provider = _lm_studio_with(handler)

    assert await provider.ensure_model_loaded("qwen")
    assert await provider.ensure_model_loaded("qwen")
    assert await provider.ensure_model_loaded("llama")
    assert loads == ["qwen", "llama"]
    await provider.close()


@pytest.mark.asyncio
async def test_lm_studio_unreachable() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("refused", request=request)

    provider = _lm_studio_with(handler)

    assert await provider.health_check() is False
    assert await provider.ensure_model_loaded("qwen") is False
    # A failed load is retried on the next call
    assert await provider.ensure_model_loaded("qwen") is False
    await provider.close()

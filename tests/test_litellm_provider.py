"""Tests for the LiteLLM provider."""

from types import SimpleNamespace
from unittest.mock import AsyncMock

import pytest

from casechat.providers import litellm_provider
from casechat.providers.litellm_provider import LiteLLMProvider, get_provider_from_model


def completion(content="ok", finish_reason="stop"):
    return SimpleNamespace(
        choices=[SimpleNamespace(message=SimpleNamespace(content=content), finish_reason=finish_reason)],
        usage=SimpleNamespace(prompt_tokens=10, completion_tokens=2, total_tokens=12),
    )


class TestGetProviderFromModel:
    def test_prefixes(self):
        assert get_provider_from_model("anthropic/claude-sonnet") == "anthropic"
        assert get_provider_from_model("claude-3-haiku") == "anthropic"
        assert get_provider_from_model("gemini-1.5-flash") == "gemini"
        assert get_provider_from_model("openai/gpt-4o-mini") == "openai"


class TestChat:
    @pytest.mark.asyncio
    async def test_passes_sampling_options(self, monkeypatch):
        mock = AsyncMock(return_value=completion('{"summaryText": "x"}'))
        monkeypatch.setattr(litellm_provider, "acompletion", mock)
        provider = LiteLLMProvider(api_base="http://localhost:4000")

        response = await provider.chat(
            [{"role": "user", "content": "hi"}],
            max_tokens=300,
            temperature=0.3,
            response_format={"type": "json_object"},
        )

        assert response.content == '{"summaryText": "x"}'
        assert response.usage["total_tokens"] == 12
        kwargs = mock.call_args.kwargs
        assert kwargs["model"] == "openai/gpt-4o-mini"
        assert kwargs["max_tokens"] == 300
        assert kwargs["response_format"] == {"type": "json_object"}
        assert kwargs["api_base"] == "http://localhost:4000"

    @pytest.mark.asyncio
    async def test_gemini_prefix(self, monkeypatch):
        mock = AsyncMock(return_value=completion())
        monkeypatch.setattr(litellm_provider, "acompletion", mock)
        await LiteLLMProvider().chat([], model="gemini-1.5-flash")
        assert mock.call_args.kwargs["model"] == "gemini/gemini-1.5-flash"

    @pytest.mark.asyncio
    async def test_failure_reported_as_error(self, monkeypatch):
        monkeypatch.setattr(litellm_provider, "acompletion", AsyncMock(side_effect=RuntimeError("rate limited")))
        response = await LiteLLMProvider().chat([{"role": "user", "content": "hi"}])
        assert response.is_error
        assert "rate limited" in response.content

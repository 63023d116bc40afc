"""Tests for LLMConfig and the litellm provider (litellm calls are faked)."""

from types import SimpleNamespace

import pytest

from teamflow.errors import LLMInvocationError
from teamflow.llm import LiteLLMProvider, LLMConfig
from teamflow.streaming import StreamTracker


def _response(content, usage=None):
    return SimpleNamespace(
        choices=[SimpleNamespace(message=SimpleNamespace(content=content))],
        usage=usage,
    )


def _chunk(text=None, usage=None):
    choices = [SimpleNamespace(delta=SimpleNamespace(content=text))] if text else []
    return SimpleNamespace(choices=choices, usage=usage)


class TestLLMConfig:

    def test_defaults(self):
        config = LLMConfig.from_dict(None, default_model="deepseek-chat")
        assert config.model == "deepseek-chat"
        assert config.stream is False

    def test_kebab_keys(self):
        config = LLMConfig.from_dict({
            "provider": "anthropic",
            "model": "claude-3-haiku-20240307",
            "max-tokens": 256,
            "api-base": "http://localhost:4000",
        })
        assert config.max_tokens == 256
        assert config.api_base == "http://localhost:4000"
        assert config.litellm_model == "anthropic/claude-3-haiku-20240307"

    def test_model_with_prefix(self):
        config = LLMConfig(provider="deepseek", model="deepseek/deepseek-chat")
        assert config.litellm_model == "deepseek/deepseek-chat"
        assert config.pricing_key == "deepseek-chat"
        assert LLMConfig(model="gpt-4o").litellm_model == "gpt-4o"


class TestLiteLLMProvider:

    @pytest.mark.asyncio
    async def test_invoke(self, monkeypatch):
        seen = {}

        async def fake_acompletion(**kwargs):
            seen.update(kwargs)
            return _response("hello", SimpleNamespace(prompt_tokens=7, completion_tokens=2,
                                                      total_tokens=9))

        monkeypatch.setattr("litellm.acompletion", fake_acompletion)
        config = LLMConfig(model="gpt-4o-mini", api_key="sk-test", temperature=0.3)
        response = await LiteLLMProvider().invoke([{"role": "user", "content": "hi"}], config)

        assert response.content == "hello"
        assert (response.input_tokens, response.output_tokens) == (7, 2)
        assert response.model == "gpt-4o-mini"
        assert seen["api_key"] == "sk-test"
        assert seen["temperature"] == 0.3
        assert "api_base" not in seen

    @pytest.mark.asyncio
    async def test_missing_usage_is_estimated(self, monkeypatch):
        async def fake_acompletion(**kwargs):
            return _response("a reasonably long answer")

        monkeypatch.setattr("teamflow.tokenizer._get_encoder", lambda model: None)
        monkeypatch.setattr("litellm.acompletion", fake_acompletion)
        response = await LiteLLMProvider().invoke(
            [{"role": "user", "content": "please answer"}], LLMConfig())
        assert response.input_tokens > 0
        assert response.output_tokens > 0

    @pytest.mark.asyncio
    async def test_errors_are_wrapped(self, monkeypatch):
        async def fake_acompletion(**kwargs):
            raise ValueError("bad request")

        monkeypatch.setattr("litellm.acompletion", fake_acompletion)
        with pytest.raises(LLMInvocationError, match="bad request") as exc:
            await LiteLLMProvider().invoke([], LLMConfig(model="gpt-4o"))
        assert exc.value.model == "gpt-4o"

    @pytest.mark.asyncio
    async def test_streaming(self, monkeypatch):
        async def chunks():
            yield _chunk("Hel")
            yield _chunk("lo")
            yield _chunk(usage=SimpleNamespace(prompt_tokens=4, completion_tokens=2,
                                               total_tokens=6))

        async def fake_acompletion(**kwargs):
            assert kwargs["stream"] is True
            return chunks()

        monkeypatch.setattr("litellm.acompletion", fake_acompletion)
        tracker = StreamTracker()
        provider = LiteLLMProvider(tracker)
        response = await provider.invoke([], LLMConfig(stream=True))
        assert response.content == "Hello"
        assert response.input_tokens == 4
        assert len(tracker) == 0

    @pytest.mark.asyncio
    async def test_stream_failure(self, monkeypatch):
        async def chunks():
            yield _chunk("partial")
            raise ConnectionError("reset by peer")

        async def fake_acompletion(**kwargs):
            return chunks()

        monkeypatch.setattr("litellm.acompletion", fake_acompletion)
        tracker = StreamTracker()
        with pytest.raises(LLMInvocationError) as exc:
            await LiteLLMProvider(tracker).invoke([], LLMConfig(stream=True))
        assert exc.value.code == "stream"
        assert tracker.active == []

"""LLM provider boundary and the litellm-backed implementation."""

import asyncio
import time
import uuid
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import litellm

from .errors import LLMInvocationError
from .logger import get_logger
from .streaming import StreamTracker
from .tokenizer import estimate_messages_tokens, estimate_tokens

litellm.suppress_debug_info = True

_log = get_logger(__name__)

# Providers litellm resolves from the bare model name.
_IMPLICIT_PROVIDERS = {"openai", ""}


@dataclass
class LLMConfig:
    """Per-agent model settings."""

    provider: str = "openai"
    model: str = "gpt-4o-mini"
    temperature: float = 0.0
    max_tokens: int = 4096
    api_base: Optional[str] = None
    api_key: Optional[str] = None
    stream: bool = False

    @classmethod
    def from_dict(cls, data: Optional[dict], default_model: str = "gpt-4o-mini") -> "LLMConfig":
        if not data:
            return cls(model=default_model)
        return cls(
            provider=str(data.get("provider", "openai")),
            model=str(data.get("model", default_model)),
            temperature=float(data.get("temperature", 0.0)),
            max_tokens=int(data.get("max-tokens", 4096)),
            api_base=data.get("api-base"),
            api_key=data.get("api-key"),
            stream=bool(data.get("stream", False)),
        )

    @property
    def litellm_model(self) -> str:
        if "/" in self.model or self.provider in _IMPLICIT_PROVIDERS:
            return self.model
        return f"{self.provider}/{self.model}"

    @property
    def pricing_key(self) -> str:
        """Model code as it appears in the pricing table."""
        return self.model.split("/")[-1]


@dataclass
class LLMResponse:
    content: str = ""
    usage: Dict[str, int] = field(default_factory=dict)
    model: str = ""
    latency: float = 0.0

    @property
    def input_tokens(self) -> int:
        return int(self.usage.get("prompt_tokens", 0))

    @property
    def output_tokens(self) -> int:
        return int(self.usage.get("completion_tokens", 0))


class LLMProvider:
    """What the agent loop needs from a model backend."""

    async def invoke(self, messages: List[Dict[str, Any]], config: LLMConfig) -> LLMResponse:
        raise NotImplementedError


class LiteLLMProvider(LLMProvider):
    """Async chat completions through litellm.

    api_key/api_base are passed per call rather than through env vars, so
    agents on different providers can share one process.
    """

    def __init__(self, stream_tracker: Optional[StreamTracker] = None):
        self.stream_tracker = stream_tracker or StreamTracker()

    async def invoke(self, messages: List[Dict[str, Any]], config: LLMConfig) -> LLMResponse:
        kwargs: Dict[str, Any] = {
            "model": config.litellm_model,
            "messages": messages,
            "temperature": config.temperature,
            "max_tokens": config.max_tokens,
        }
        if config.api_base:
            kwargs["api_base"] = config.api_base
        if config.api_key:
            kwargs["api_key"] = config.api_key

        started = time.monotonic()
        if config.stream:
            content, usage = await self._invoke_streaming(kwargs, config)
        else:
            response = await self._call(kwargs, config)
            content = response.choices[0].message.content or ""
            usage = _usage_dict(getattr(response, "usage", None))

        if not usage:
            prompt = estimate_messages_tokens(messages, config.model)
            completion = estimate_tokens(content, config.model)
            usage = {"prompt_tokens": prompt, "completion_tokens": completion,
                     "total_tokens": prompt + completion}
        return LLMResponse(content=content, usage=usage, model=config.pricing_key,
                           latency=time.monotonic() - started)

    async def _call(self, kwargs: Dict[str, Any], config: LLMConfig):
        try:
            return await litellm.acompletion(**kwargs)
        except litellm.exceptions.AuthenticationError as e:
            raise LLMInvocationError(config.model, f"Auth failed. Check API key. {e}",
                                     code="auth") from e
        except litellm.exceptions.RateLimitError as e:
            raise LLMInvocationError(config.model, str(e), code="rate_limit") from e
        except litellm.exceptions.Timeout as e:
            raise LLMInvocationError(config.model, str(e), code="timeout") from e
        except litellm.exceptions.APIConnectionError as e:
            raise LLMInvocationError(
                config.model, f"Cannot connect (base={config.api_base or 'default'}): {e}",
                code="connection") from e
        except Exception as e:
            raise LLMInvocationError(config.model, f"{type(e).__name__}: {e}") from e

    async def _invoke_streaming(self, kwargs: Dict[str, Any], config: LLMConfig):
        cid = uuid.uuid4().hex[:12]
        tracker = self.stream_tracker
        stream = await self._call({**kwargs, "stream": True}, config)
        tracker.start(cid, model=config.pricing_key)
        usage: Dict[str, int] = {}
        try:
            async for chunk in stream:
                chunk_usage = _usage_dict(getattr(chunk, "usage", None))
                if chunk_usage:
                    usage = chunk_usage
                if not chunk.choices:
                    continue
                text = getattr(chunk.choices[0].delta, "content", None)
                if text:
                    tracker.token(cid, text)
        except asyncio.CancelledError:
            tracker.cancel(cid)
            raise
        except Exception as e:
            tracker.fail(cid, f"{type(e).__name__}: {e}")
            raise LLMInvocationError(config.model, f"Stream interrupted: {e}",
                                     code="stream") from e
        session = tracker.end(cid, usage)
        return (session.text if session else ""), usage


def _usage_dict(usage) -> Dict[str, int]:
    if not usage:
        return {}
    prompt = getattr(usage, "prompt_tokens", 0) or 0
    completion = getattr(usage, "completion_tokens", 0) or 0
    return {
        "prompt_tokens": prompt,
        "completion_tokens": completion,
        "total_tokens": getattr(usage, "total_tokens", 0) or prompt + completion,
    }

"""Token estimation for responses that arrive without a usage block."""

import json
import re
from typing import Any, Dict, Iterable, Optional

import tiktoken

from .logger import get_logger

_log = get_logger(__name__)

_FALLBACK_ENCODING = "cl100k_base"
_MESSAGE_OVERHEAD = 4
_REPLY_PRIMING = 2
_CJK_RE = re.compile(r"[\u4e00-\u9fff\u3040-\u309f\u30a0-\u30ff\uac00-\ud7af]")

_encoder_cache: Dict[str, Any] = {}


def _get_encoder(model: Optional[str]):
    """Cached tiktoken encoder for ``model`` (``provider/`` prefixes ignored).

    Returns None when no encoding can be loaded, e.g. an offline host that
    has never cached the BPE files.
    """
    key = (model or _FALLBACK_ENCODING).split("/")[-1]
    if key in _encoder_cache:
        return _encoder_cache[key]

    try:
        try:
            enc = tiktoken.encoding_for_model(key)
        except KeyError:
            enc = tiktoken.get_encoding(_FALLBACK_ENCODING)
    except Exception as e:
        _log.debug("tiktoken unavailable for %s: %s", key, e)
        enc = None

    _encoder_cache[key] = enc
    return enc


def estimate_tokens(text: str, model: Optional[str] = None) -> int:
    if not text:
        return 0
    enc = _get_encoder(model)
    if enc is not None:
        return len(enc.encode(text, disallowed_special=()))
    return _heuristic_estimate(text)


def _heuristic_estimate(text: str) -> int:
    """~4 chars per token for Latin text, ~1.5 per token for CJK."""
    cjk_chars = len(_CJK_RE.findall(text))
    non_cjk = _CJK_RE.sub('', text)
    return max(1, int(len(non_cjk) / 4 + cjk_chars / 1.5))


def estimate_messages_tokens(messages: Iterable[Dict[str, Any]],
                             model: Optional[str] = None) -> int:
    """Prompt-side estimate for a chat message list."""
    total = _REPLY_PRIMING
    for msg in messages:
        total += _MESSAGE_OVERHEAD
        content = msg.get("content") or ""
        if not isinstance(content, str):
            content = json.dumps(content, ensure_ascii=False)
        total += estimate_tokens(content, model)
    return total

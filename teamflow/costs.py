"""Token cost calculation against a per-model pricing table.

Prices are USD per million tokens. Everything here is a pure function of
its arguments; an unknown model yields the ``UNAVAILABLE`` sentinel rather
than an exception so a gap in the table never stops a workflow.
"""

import re
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Dict, Mapping, Optional, Tuple

from .logger import get_logger

_log = get_logger(__name__)

UNAVAILABLE = -1.0
DEFAULT_PRECISION = 4
DEFAULT_CURRENCY = "USD"
_PER_MILLION = Decimal(1_000_000)

CURRENCY_SYMBOLS = {
    "USD": "$",
    "EUR": "€",
    "GBP": "£",
    "JPY": "¥",
}

_NOT_AVAILABLE_TEXT = "N/A"
_NUMBER_RE = re.compile(r"-?\d+(?:\.\d+)?")


@dataclass(frozen=True)
class ModelPricing:
    model_code: str
    provider: str
    input_price_per_million: float
    output_price_per_million: float


def _p(model: str, provider: str, inp: float, out: float) -> Tuple[str, ModelPricing]:
    return model, ModelPricing(model, provider, inp, out)


MODEL_PRICING: Dict[str, ModelPricing] = dict([
    _p("gpt-4o-mini", "openai", 0.15, 0.6),
    _p("gpt-3.5-turbo", "openai", 0.5, 1.5),
    _p("gpt-3.5-turbo-0125", "openai", 0.5, 1.5),
    _p("gpt-4o", "openai", 5.0, 15.0),
    _p("gpt-4-turbo", "openai", 10.0, 30.0),
    _p("gpt-4", "openai", 30.0, 60.0),
    _p("claude-3-5-sonnet-20240620", "anthropic", 3.0, 15.0),
    _p("claude-3-opus-20240229", "anthropic", 15.0, 75.0),
    _p("claude-3-sonnet-20240229", "anthropic", 3.0, 15.0),
    _p("claude-3-haiku-20240307", "anthropic", 0.25, 1.25),
    _p("gemini-1.5-flash", "google", 0.35, 1.05),
    _p("gemini-1.5-pro", "google", 3.5, 10.5),
    _p("gemini-1.0-pro", "google", 0.5, 1.5),
    _p("open-mistral-nemo-2407", "mistral", 0.3, 0.3),
    _p("mistral-large-2407", "mistral", 3.0, 9.0),
    _p("codestral-2405", "mistral", 1.0, 3.0),
    _p("deepseek-chat", "deepseek", 0.27, 1.1),
    _p("deepseek-coder", "deepseek", 0.15, 0.6),
    _p("deepseek-reasoner", "deepseek", 0.55, 2.2),
    _p("llama3-groq-70b-8192-tool-use-preview", "groq", 0.89, 0.89),
    _p("llama3-groq-8b-8192-tool-use-preview", "groq", 0.19, 0.19),
])


@dataclass(frozen=True)
class TokenCost:
    count: int
    cost: float


@dataclass(frozen=True)
class CostDetails:
    input_cost: float
    output_cost: float
    total_cost: float
    currency: str
    prompt_tokens: TokenCost
    completion_tokens: TokenCost

    @property
    def available(self) -> bool:
        return self.total_cost != UNAVAILABLE

    @property
    def breakdown(self) -> Dict[str, Dict[str, Any]]:
        return {
            "prompt_tokens": {"count": self.prompt_tokens.count, "cost": self.prompt_tokens.cost},
            "completion_tokens": {"count": self.completion_tokens.count,
                                  "cost": self.completion_tokens.cost},
        }

    def to_dict(self) -> Dict[str, Any]:
        return {
            "input_cost": self.input_cost,
            "output_cost": self.output_cost,
            "total_cost": self.total_cost,
            "currency": self.currency,
            "breakdown": self.breakdown,
        }


def build_pricing_table(
    overrides: Optional[Mapping[str, Mapping[str, Any]]] = None,
    base: Optional[Mapping[str, ModelPricing]] = None,
) -> Dict[str, ModelPricing]:
    """Merge user pricing (``{model: {input, output, provider}}``) over the defaults."""
    table = dict(MODEL_PRICING if base is None else base)
    for model, entry in (overrides or {}).items():
        current = table.get(model)
        table[model] = ModelPricing(
            model_code=model,
            provider=str(entry.get("provider", current.provider if current else "custom")),
            input_price_per_million=float(entry.get(
                "input", current.input_price_per_million if current else 0.0)),
            output_price_per_million=float(entry.get(
                "output", current.output_price_per_million if current else 0.0)),
        )
    return table


def round_cost(value, precision: int = DEFAULT_PRECISION) -> float:
    """Round half away from zero at ``precision`` decimal places."""
    return float(_quantize(Decimal(str(value)), precision))


def _quantize(value: Decimal, precision: int) -> Decimal:
    return value.quantize(Decimal(1).scaleb(-precision), rounding=ROUND_HALF_UP)


def token_counts(usage: Any) -> Tuple[int, int]:
    """Extract (input, output) token counts from a usage mapping or object.

    Accepts both the ``input_tokens``/``output_tokens`` naming used in
    workflow stats and the provider-style ``prompt_tokens``/``completion_tokens``.
    """
    if usage is None:
        return 0, 0
    if not isinstance(usage, Mapping):
        usage = vars(usage)
    inp = usage.get("input_tokens", usage.get("prompt_tokens", 0)) or 0
    out = usage.get("output_tokens", usage.get("completion_tokens", 0)) or 0
    return int(inp), int(out)


def unavailable_cost(input_tokens: int = 0, output_tokens: int = 0,
                     currency: str = DEFAULT_CURRENCY) -> CostDetails:
    return CostDetails(
        input_cost=UNAVAILABLE,
        output_cost=UNAVAILABLE,
        total_cost=UNAVAILABLE,
        currency=currency,
        prompt_tokens=TokenCost(input_tokens, UNAVAILABLE),
        completion_tokens=TokenCost(output_tokens, UNAVAILABLE),
    )


def calculate_task_cost(
    model_code: str,
    usage: Any,
    pricing_table: Optional[Mapping[str, ModelPricing]] = None,
    precision: int = DEFAULT_PRECISION,
    currency: str = DEFAULT_CURRENCY,
) -> CostDetails:
    """Price one model's token usage."""
    input_tokens, output_tokens = token_counts(usage)
    table = MODEL_PRICING if pricing_table is None else pricing_table
    pricing = table.get(model_code)
    if pricing is None:
        _log.debug("No pricing for model %r", model_code)
        return unavailable_cost(input_tokens, output_tokens, currency)

    input_cost = _quantize(
        Decimal(input_tokens) * Decimal(str(pricing.input_price_per_million)) / _PER_MILLION,
        precision,
    )
    output_cost = _quantize(
        Decimal(output_tokens) * Decimal(str(pricing.output_price_per_million)) / _PER_MILLION,
        precision,
    )
    total = _quantize(input_cost + output_cost, precision)
    return CostDetails(
        input_cost=float(input_cost),
        output_cost=float(output_cost),
        total_cost=float(total),
        currency=currency,
        prompt_tokens=TokenCost(input_tokens, float(input_cost)),
        completion_tokens=TokenCost(output_tokens, float(output_cost)),
    )


def calculate_total_workflow_cost(
    model_usage: Mapping[str, Any],
    pricing_table: Optional[Mapping[str, ModelPricing]] = None,
    precision: int = DEFAULT_PRECISION,
    currency: str = DEFAULT_CURRENCY,
) -> CostDetails:
    """Sum per-model costs. Any unpriced model makes the whole total unavailable."""
    total_in = total_out = 0
    input_cost = output_cost = Decimal(0)
    unknown = False
    for model, usage in model_usage.items():
        details = calculate_task_cost(model, usage, pricing_table, precision, currency)
        total_in += details.prompt_tokens.count
        total_out += details.completion_tokens.count
        if not details.available:
            unknown = True
            continue
        input_cost += Decimal(str(details.input_cost))
        output_cost += Decimal(str(details.output_cost))

    if unknown:
        return unavailable_cost(total_in, total_out, currency)
    input_cost = _quantize(input_cost, precision)
    output_cost = _quantize(output_cost, precision)
    return CostDetails(
        input_cost=float(input_cost),
        output_cost=float(output_cost),
        total_cost=float(_quantize(input_cost + output_cost, precision)),
        currency=currency,
        prompt_tokens=TokenCost(total_in, float(input_cost)),
        completion_tokens=TokenCost(total_out, float(output_cost)),
    )


def format_cost(value: float, currency: str = DEFAULT_CURRENCY,
                precision: int = DEFAULT_PRECISION) -> str:
    """Render a cost with 2 to ``precision`` decimals, e.g. ``$1,234.0125``.

    The sentinel renders as ``N/A``; ``parse_cost`` reverses both forms.
    """
    if value == UNAVAILABLE:
        return _NOT_AVAILABLE_TEXT
    text = f"{_quantize(Decimal(str(value)), precision):,.{precision}f}"
    if "." in text:
        whole, frac = text.split(".")
        frac = frac.rstrip("0").ljust(min(2, precision), "0")
        text = f"{whole}.{frac}" if frac else whole
    if text.startswith("-"):
        sign, text = "-", text[1:]
    else:
        sign = ""
    symbol = CURRENCY_SYMBOLS.get(currency)
    if symbol:
        return f"{sign}{symbol}{text}"
    return f"{sign}{currency} {text}"


def parse_cost(text: str) -> float:
    """Inverse of ``format_cost``."""
    cleaned = text.strip()
    if cleaned.upper() == _NOT_AVAILABLE_TEXT:
        return UNAVAILABLE
    negative = cleaned.startswith("-")
    match = _NUMBER_RE.search(cleaned.replace(",", ""))
    if match is None:
        raise ValueError(f"Not a cost: {text!r}")
    value = abs(float(match.group(0)))
    return -value if negative else value

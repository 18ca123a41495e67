"""Token extraction and cost calculation for LLM responses."""

from typing import Any, Dict, Optional

from answer_machine.config import settings
from answer_machine.schemas.answer_machine import TokenUsage


def extract_tokens(raw: Optional[Dict[str, Any]]) -> TokenUsage:
    """
    Extract token counts from a raw LLM response.

    Recognises the OpenAI-compatible `usage` object (optionally nested under
    `data`) and the Ollama `prompt_eval_count`/`eval_count` shape. Unknown
    shapes yield zero counts. A reported total wins over the computed sum.
    """
    if not raw:
        return TokenUsage()

    usage = raw.get("usage") or (raw.get("data") or {}).get("usage")

    prompt_tokens = 0
    completion_tokens = 0
    reasoning_tokens = 0
    total_tokens = 0

    if usage:
        prompt_tokens = usage.get("prompt_tokens") or 0
        completion_tokens = usage.get("completion_tokens") or 0
        total_tokens = usage.get("total_tokens") or 0
        details = usage.get("completion_tokens_details") or {}
        reasoning_tokens = details.get("reasoning_tokens") or 0
    elif raw.get("prompt_eval_count") is not None:
        prompt_tokens = raw["prompt_eval_count"]
        completion_tokens = raw.get("eval_count") or 0
        total_tokens = prompt_tokens + completion_tokens

    return TokenUsage(
        prompt_tokens=prompt_tokens,
        completion_tokens=completion_tokens,
        reasoning_tokens=reasoning_tokens,
        total_tokens=total_tokens or (prompt_tokens + completion_tokens + reasoning_tokens),
    )


def get_token_rates(model: str = "", provider: str = "") -> Dict[str, float]:
    """Per-million rates for a model, falling back to the default table."""
    rates = dict(settings.TOKEN_RATES_PER_MILLION)
    overrides = settings.MODEL_TOKEN_RATES
    override = overrides.get(f"{provider}/{model}") or overrides.get(model)
    if override:
        rates.update(override)
    return rates


def calculate_cost(
    prompt_tokens: int,
    completion_tokens: int,
    reasoning_tokens: int,
    model: str = "",
    provider: str = "",
) -> float:
    """Linear per-million-token cost by token class."""
    rates = get_token_rates(model, provider)
    return (
        prompt_tokens / 1_000_000 * rates.get("prompt", 0.0)
        + completion_tokens / 1_000_000 * rates.get("completion", 0.0)
        + reasoning_tokens / 1_000_000 * rates.get("reasoning", 0.0)
    )


def with_cost(tokens: TokenUsage, model: str = "", provider: str = "") -> TokenUsage:
    """Return a copy of `tokens` with `cost_in_usd` filled in."""
    cost = calculate_cost(tokens.prompt_tokens, tokens.completion_tokens, tokens.reasoning_tokens, model, provider)
    return tokens.model_copy(update={"cost_in_usd": cost})


def format_token_usage(tokens: TokenUsage) -> str:
    return (
        f"Tokens: {tokens.total_tokens} (Prompt: {tokens.prompt_tokens}, "
        f"Completion: {tokens.completion_tokens}, Reasoning: {tokens.reasoning_tokens}) "
        f"- Cost: ${tokens.cost_in_usd:.6f}"
    )

"""Per-model request parameters and context window lookup."""

from typing import Any

from kvguard.config.resolver import find_agent, lookup_model
from kvguard.config.schema import Config

# Params consumed by dedicated request options rather than forwarded verbatim.
HANDLED_PARAMS = frozenset({
    "temperature",
    "maxTokens",
    "max_tokens",
    "transport",
    "cacheRetention",
    "cacheControlTtl",
    "anthropicBeta",
    "context1m",
    "tool_stream",
    "provider",
})


def _params(level) -> dict[str, Any] | None:
    return level.params or None


def resolve_model_params(
    cfg: Config | None,
    agent_id: str | None = None,
    model_key: str | None = None,
) -> dict[str, Any]:
    """Params of the most specific model entry (agent models, then defaults)."""
    if cfg is None:
        return {}
    agent = find_agent(cfg, agent_id)
    if agent is not None:
        params = lookup_model(agent.models, model_key, _params)
        if params is not None:
            return dict(params)
    params = lookup_model(cfg.agents.defaults.models, model_key, _params)
    return dict(params) if params is not None else {}


def extract_custom_params(params: dict[str, Any]) -> dict[str, Any]:
    """Drop params that are handled elsewhere, keep backend-specific ones.

    e.g. llama.cpp sampling knobs: ``top_k``, ``min_p``, ``repeat_penalty``.
    """
    return {k: v for k, v in params.items() if k not in HANDLED_PARAMS}


def apply_custom_params(payload: dict[str, Any], params: dict[str, Any]) -> dict[str, Any]:
    """Inject custom params into a request payload without clobbering its keys."""
    for key, value in extract_custom_params(params).items():
        payload.setdefault(key, value)
    return payload


def resolve_context_tokens(
    cfg: Config | None,
    agent_id: str | None = None,
    default: int | None = None,
) -> int | None:
    """Context window cap: agent entry, then defaults, then ``default``."""
    if cfg is None:
        return default
    agent = find_agent(cfg, agent_id)
    if agent is not None and agent.context_tokens is not None:
        return agent.context_tokens
    if cfg.agents.defaults.context_tokens is not None:
        return cfg.agents.defaults.context_tokens
    return default

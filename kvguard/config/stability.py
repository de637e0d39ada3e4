"""KV cache stability policy resolution."""

from dataclasses import dataclass, field

from loguru import logger

from kvguard.config.fields import PER_CHANNEL_FIELDS, PER_TURN_FIELDS, resolve_field_set
from kvguard.config.matching import RuntimeContext, matches_context
from kvguard.config.resolver import resolve_hierarchy
from kvguard.config.schema import Config, KvCacheStabilityConfig


@dataclass(frozen=True)
class ResolvedKvCacheStability:
    """Which metadata may move out of the stable prompt region this turn."""

    # Per-turn flags moved from the system prompt to the user message
    per_turn_fields: frozenset[str] = field(default_factory=frozenset)
    # Channel sections rendered statically for all configured channels
    per_channel_fields: frozenset[str] = field(default_factory=frozenset)

    @property
    def enabled(self) -> bool:
        return bool(self.per_turn_fields or self.per_channel_fields)


def is_kv_cache_stability_enabled(resolved: ResolvedKvCacheStability) -> bool:
    """Quick check: is any KV cache stability feature enabled?"""
    return resolved.enabled


def _stability_block(level) -> KvCacheStabilityConfig | None:
    return level.kv_cache_stability


def resolve_kv_cache_stability(
    cfg: Config | None,
    agent_id: str | None = None,
    model_key: str | None = None,
    context: RuntimeContext | None = None,
) -> ResolvedKvCacheStability:
    """Resolve the KV cache stability policy for an agent + model + turn.

    The nearest defined config block wins as a whole (see
    ``kvguard.config.resolver``). If it has ``overrides`` and a context is
    given, the first override whose ``when`` matches replaces both base
    selectors. No block anywhere means the feature is off.
    """
    effective = resolve_hierarchy(cfg, agent_id, model_key, _stability_block)
    if effective is None:
        return ResolvedKvCacheStability()

    per_turn = effective.per_turn_fields
    per_channel = effective.per_channel_fields

    if effective.overrides and context is not None:
        for index, override in enumerate(effective.overrides):
            if matches_context(override.when, context):
                logger.debug(
                    f"KV cache stability override #{index} matched "
                    f"(agent={agent_id}, model={model_key})"
                )
                per_turn = override.per_turn_fields
                per_channel = override.per_channel_fields
                break

    return ResolvedKvCacheStability(
        per_turn_fields=resolve_field_set(per_turn, PER_TURN_FIELDS),
        per_channel_fields=resolve_field_set(per_channel, PER_CHANNEL_FIELDS),
    )

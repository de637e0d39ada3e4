"""Hierarchical config lookup shared by every per-agent / per-model setting.

Resolution order (most specific wins):

1. ``agents.list[agent_id].models[model_key]``  (exact, then ``provider/*``)
2. ``agents.list[agent_id]``
3. ``agents.defaults.models[model_key]``  (exact, then ``provider/*``)
4. ``agents.defaults``

Each setting is resolved on its own by passing an accessor that reads it from
one level. The first level where the accessor returns something other than
``None`` wins, so two settings may come from different levels.
"""

from collections.abc import Callable, Mapping
from typing import Any, TypeVar

from kvguard.config.schema import AgentEntry, Config, ModelEntryConfig

T = TypeVar("T")

# A level is a ModelEntryConfig, an AgentEntry or AgentDefaults.
Accessor = Callable[[Any], T | None]

PROVIDER_WILDCARD = "*"


def find_agent(cfg: Config | None, agent_id: str | None) -> AgentEntry | None:
    """Find a configured agent entry by id."""
    if cfg is None or not agent_id:
        return None
    for entry in cfg.agents.entries:
        if entry.id == agent_id:
            return entry
    return None


def provider_wildcard_key(model_key: str) -> str | None:
    """Return ``"provider/*"`` for ``"provider/model"``, or None if not applicable."""
    if model_key.count("/") != 1:
        return None
    provider, model = model_key.split("/")
    if not provider or not model or model == PROVIDER_WILDCARD:
        return None
    return f"{provider}/{PROVIDER_WILDCARD}"


def lookup_model(
    models: Mapping[str, ModelEntryConfig] | None,
    model_key: str | None,
    accessor: Accessor[T],
) -> T | None:
    """Read a setting from a models map, trying the exact key before ``provider/*``."""
    if not models or not model_key:
        return None

    exact = models.get(model_key)
    if exact is not None:
        value = accessor(exact)
        if value is not None:
            return value

    wildcard_key = provider_wildcard_key(model_key)
    if wildcard_key is None:
        return None
    wildcard = models.get(wildcard_key)
    if wildcard is None:
        return None
    return accessor(wildcard)


def hierarchy_candidates(
    cfg: Config | None,
    agent_id: str | None,
    model_key: str | None,
    accessor: Accessor[T],
) -> list[T | None]:
    """Values of one setting at all four levels, most specific first."""
    if cfg is None:
        return [None, None, None, None]

    defaults = cfg.agents.defaults
    agent = find_agent(cfg, agent_id)

    return [
        lookup_model(agent.models, model_key, accessor) if agent else None,
        accessor(agent) if agent else None,
        lookup_model(defaults.models, model_key, accessor) if defaults else None,
        accessor(defaults) if defaults else None,
    ]


def resolve_hierarchy(
    cfg: Config | None,
    agent_id: str | None,
    model_key: str | None,
    accessor: Accessor[T],
) -> T | None:
    """Return the most specific defined value of a setting, or None."""
    for candidate in hierarchy_candidates(cfg, agent_id, model_key, accessor):
        if candidate is not None:
            return candidate
    return None

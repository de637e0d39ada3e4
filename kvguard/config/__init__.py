"""Configuration schema and policy resolution."""

from kvguard.config.guard import (
    ResolvedToolResultGuard,
    resolve_tool_result_guard,
    resolve_tool_result_guard_mode,
)
from kvguard.config.loader import get_config_path, load_config, save_config
from kvguard.config.matching import RuntimeContext, matches_context
from kvguard.config.schema import Config
from kvguard.config.stability import (
    ResolvedKvCacheStability,
    is_kv_cache_stability_enabled,
    resolve_kv_cache_stability,
)

__all__ = [
    "Config",
    "RuntimeContext",
    "ResolvedKvCacheStability",
    "ResolvedToolResultGuard",
    "get_config_path",
    "is_kv_cache_stability_enabled",
    "load_config",
    "matches_context",
    "resolve_kv_cache_stability",
    "resolve_tool_result_guard",
    "resolve_tool_result_guard_mode",
    "save_config",
]

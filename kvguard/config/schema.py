"""Configuration schema using Pydantic."""

from typing import Any, Literal

from loguru import logger
from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from kvguard.config.fields import (
    PER_CHANNEL_FIELDS,
    PER_TURN_FIELDS,
    FieldSelector,
    unknown_fields,
)

ToolResultGuardMode = Literal["default", "disabled", "persistent"]


def _check_selector(value: FieldSelector, universe: tuple[str, ...], label: str) -> FieldSelector:
    """Warn about unknown field names; keep the selector as configured."""
    unknown = unknown_fields(value, universe)
    if unknown:
        logger.warning(
            f"Unknown {label} field(s) {', '.join(unknown)} will have no effect. "
            f"Known: {', '.join(universe)}"
        )
    return value


class ContextMatch(BaseModel):
    """Conjunctive condition over the runtime context of a turn.

    Omitted fields match anything. List values are OR-ed within a field.
    Matching is case-insensitive and ``"*"`` matches any present value.
    """
    model_config = ConfigDict(extra="forbid")

    chat_type: str | list[str] | None = None  # "direct" | "group" | "channel"
    channel: str | list[str] | None = None  # e.g. "telegram", "discord"
    sender: list[str | int] | None = None  # matched against id, E.164 and username
    group: list[str | int] | None = None
    group_channel: list[str | int] | None = None
    sender_is_owner: bool | None = None
    is_subagent: bool | None = None


class KvCacheStabilityOverride(BaseModel):
    """Replaces both base selectors when ``when`` matches. No field-level merge."""
    when: ContextMatch = Field(default_factory=ContextMatch)
    per_turn_fields: FieldSelector = None
    per_channel_fields: FieldSelector = None

    @field_validator("per_turn_fields")
    @classmethod
    def _per_turn(cls, v: FieldSelector) -> FieldSelector:
        return _check_selector(v, PER_TURN_FIELDS, "perTurnFields")

    @field_validator("per_channel_fields")
    @classmethod
    def _per_channel(cls, v: FieldSelector) -> FieldSelector:
        return _check_selector(v, PER_CHANNEL_FIELDS, "perChannelFields")


class KvCacheStabilityConfig(BaseModel):
    """Move dynamic metadata out of the system prompt so its prefix stays cached.

    Off by default. Only useful on local backends (llama.cpp, vLLM, Ollama)
    that reuse the KV cache of the longest unchanged prefix.
    """
    per_turn_fields: FieldSelector = None  # True = all, list = only these
    per_channel_fields: FieldSelector = None
    overrides: list[KvCacheStabilityOverride] | None = None  # first match wins

    @field_validator("per_turn_fields")
    @classmethod
    def _per_turn(cls, v: FieldSelector) -> FieldSelector:
        return _check_selector(v, PER_TURN_FIELDS, "perTurnFields")

    @field_validator("per_channel_fields")
    @classmethod
    def _per_channel(cls, v: FieldSelector) -> FieldSelector:
        return _check_selector(v, PER_CHANNEL_FIELDS, "perChannelFields")


class ToolResultGuardConfig(BaseModel):
    """Tool result guard settings at one hierarchy level."""
    mode: ToolResultGuardMode | None = None
    # Fraction of the context window to compact down to once triggered
    compaction_target: float | None = Field(default=None, gt=0, lt=1)


class ModelEntryConfig(BaseModel):
    """Per-model settings, keyed by "provider/model" or "provider/*"."""
    # alias and streaming are for the model invocation layer; carried so config files round-trip
    alias: str | None = None
    params: dict[str, Any] = Field(default_factory=dict)  # extra request params
    streaming: bool | None = None
    kv_cache_stability: KvCacheStabilityConfig | None = None
    tool_result_guard: ToolResultGuardConfig | None = None


class AgentEntry(BaseModel):
    """A named agent with its own overrides."""
    id: str
    models: dict[str, ModelEntryConfig] = Field(default_factory=dict)
    kv_cache_stability: KvCacheStabilityConfig | None = None
    tool_result_guard: ToolResultGuardConfig | None = None
    context_tokens: int | None = Field(default=None, gt=0)


class AgentDefaults(BaseModel):
    """Default agent configuration."""
    model: str = "ollama/llama3.1"
    models: dict[str, ModelEntryConfig] = Field(default_factory=dict)
    kv_cache_stability: KvCacheStabilityConfig | None = None
    tool_result_guard: ToolResultGuardConfig | None = None
    context_tokens: int | None = Field(default=None, gt=0)  # context window cap


class AgentsConfig(BaseModel):
    """Agent configuration."""
    model_config = ConfigDict(populate_by_name=True)

    defaults: AgentDefaults = Field(default_factory=AgentDefaults)
    entries: list[AgentEntry] = Field(default_factory=list, alias="list")


class Config(BaseSettings):
    """Root configuration for kvguard."""
    model_config = SettingsConfigDict(env_prefix="KVGUARD_", env_nested_delimiter="__")

    agents: AgentsConfig = Field(default_factory=AgentsConfig)

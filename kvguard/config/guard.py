"""Tool result guard mode resolution."""

from dataclasses import dataclass

from kvguard.config.resolver import resolve_hierarchy
from kvguard.config.schema import Config, ToolResultGuardMode

DEFAULT_GUARD_MODE: ToolResultGuardMode = "default"


@dataclass(frozen=True)
class ResolvedToolResultGuard:
    """Effective guard settings.

    - ``default``: compact tool results in memory only
    - ``disabled``: never compact
    - ``persistent``: compact and rewrite the session log, so the next turn
      rebuilds the same (compacted) prefix instead of oscillating
    """

    mode: ToolResultGuardMode = DEFAULT_GUARD_MODE
    compaction_target: float | None = None

    @property
    def disabled(self) -> bool:
        return self.mode == "disabled"

    @property
    def persistent(self) -> bool:
        return self.mode == "persistent"


def _guard_mode(level) -> ToolResultGuardMode | None:
    guard = level.tool_result_guard
    return guard.mode if guard is not None else None


def _guard_target(level) -> float | None:
    guard = level.tool_result_guard
    return guard.compaction_target if guard is not None else None


def resolve_tool_result_guard(
    cfg: Config | None,
    agent_id: str | None = None,
    model_key: str | None = None,
) -> ResolvedToolResultGuard:
    """Resolve guard settings for an agent + model combination.

    ``mode`` and ``compaction_target`` are looked up independently, so the
    mode may come from the global defaults while the target comes from a
    per-model entry.
    """
    mode = resolve_hierarchy(cfg, agent_id, model_key, _guard_mode)
    target = resolve_hierarchy(cfg, agent_id, model_key, _guard_target)
    return ResolvedToolResultGuard(
        mode=mode or DEFAULT_GUARD_MODE,
        compaction_target=target,
    )


def resolve_tool_result_guard_mode(
    cfg: Config | None,
    agent_id: str | None = None,
    model_key: str | None = None,
) -> ToolResultGuardMode:
    """Resolve only the guard mode ("default" when nothing is configured)."""
    return resolve_tool_result_guard(cfg, agent_id, model_key).mode

"""Tool result compaction planning.

When estimated context usage crosses ``COMPACTION_TRIGGER_RATIO`` of the
window, the oldest tool results are replaced by a placeholder until usage
drops to the compaction target. Oldest-first keeps the compacted region a
stable prefix across turns, which is what the backend's KV cache can reuse.
"""

from collections.abc import Callable
from dataclasses import dataclass, field

from kvguard.agent.tokens import estimate_message_tokens
from kvguard.session.log import is_compacted_content, is_tool_result_message, tool_call_id_of

COMPACTION_TRIGGER_RATIO = 0.75

TOOL_RESULT_COMPACTION_PLACEHOLDER = (
    "[compacted: tool output removed to free context]"
)


@dataclass
class CompactionPlan:
    """Which tool results to compact, oldest first."""

    tool_call_ids: list[str] = field(default_factory=list)
    reached_target: bool = True
    freed_tokens: int = 0
    projected_tokens: int = 0
    target_tokens: int = 0

    def __bool__(self) -> bool:
        return bool(self.tool_call_ids)


def _check_ratio(name: str, value: float) -> None:
    if not 0 < value < 1:
        raise ValueError(f"{name} must be between 0 and 1 (exclusive), got {value}")


def should_compact(
    used_tokens: int,
    context_window: int,
    trigger_ratio: float = COMPACTION_TRIGGER_RATIO,
) -> bool:
    """Check if usage crossed the trigger threshold."""
    if context_window <= 0:
        raise ValueError("context_window must be positive")
    _check_ratio("trigger_ratio", trigger_ratio)
    return used_tokens >= trigger_ratio * context_window


def plan_compaction(
    messages: list[dict],
    used_tokens: int,
    context_window: int,
    compaction_target: float | None = None,
    trigger_ratio: float = COMPACTION_TRIGGER_RATIO,
    estimate: Callable[[dict], int] = estimate_message_tokens,
    placeholder: str = TOOL_RESULT_COMPACTION_PLACEHOLDER,
) -> CompactionPlan:
    """Pick the tool results to compact to get usage under the target.

    Args:
        messages: Conversation messages, oldest first. Only tool results with
            a call id that are not already compacted are candidates.
        used_tokens: Current (estimated) context usage.
        context_window: Model context window in tokens.
        compaction_target: Fraction of the window to get down to. Defaults to
            ``trigger_ratio``, i.e. free just enough to get back under budget.
        trigger_ratio: Fraction of the window that triggers compaction.
        estimate: Token estimate for one message.
        placeholder: Replacement content; its own size is subtracted from
            what each compaction frees.

    Returns:
        A plan. If candidates run out before the target is reached, the plan
        holds every candidate and ``reached_target`` is False.
    """
    if context_window <= 0:
        raise ValueError("context_window must be positive")
    _check_ratio("trigger_ratio", trigger_ratio)
    target_ratio = trigger_ratio if compaction_target is None else compaction_target
    _check_ratio("compaction_target", target_ratio)

    target_tokens = int(target_ratio * context_window)
    projected = used_tokens
    plan = CompactionPlan(projected_tokens=projected, target_tokens=target_tokens)

    if projected <= target_tokens:
        return plan

    placeholder_tokens = estimate({"role": "toolResult", "content": placeholder})

    for msg in messages:
        if not is_tool_result_message(msg):
            continue
        call_id = tool_call_id_of(msg)
        if not call_id or is_compacted_content(msg.get("content"), placeholder):
            continue
        if call_id in plan.tool_call_ids:
            continue

        freed = max(0, estimate(msg) - placeholder_tokens)
        plan.tool_call_ids.append(call_id)
        plan.freed_tokens += freed
        projected -= freed

        if projected <= target_tokens:
            break

    plan.projected_tokens = projected
    plan.reached_target = projected <= target_tokens
    return plan

"""Tool result guard: compacts old tool results under context pressure."""

from dataclasses import dataclass, field
from pathlib import Path

from loguru import logger

from kvguard.agent.compaction import (
    COMPACTION_TRIGGER_RATIO,
    TOOL_RESULT_COMPACTION_PLACEHOLDER,
    CompactionPlan,
    plan_compaction,
)
from kvguard.agent.tokens import estimate_messages_tokens, estimate_tools_tokens
from kvguard.config.guard import ResolvedToolResultGuard
from kvguard.session.log import compact_message, is_tool_result_message, tool_call_id_of
from kvguard.session.persistence import persist_tool_result_compaction


@dataclass
class GuardOutcome:
    """What the guard did on one call."""

    plan: CompactionPlan = field(default_factory=CompactionPlan)
    compacted: int = 0  # messages rewritten in memory
    persisted: bool = False
    persisted_count: int = 0


class ToolResultGuard:
    """Keeps the request under the context window by compacting tool results.

    In ``default`` mode tool results are only compacted in the outgoing
    message list. The session log still holds the full output, so the next
    turn rebuilds the uncompacted history and the prompt prefix flips between
    the two shapes (a KV cache miss each time). ``persistent`` mode also
    rewrites the session log so every later turn sees the same compacted
    prefix. ``disabled`` never touches anything.
    """

    def __init__(
        self,
        context_window: int,
        trigger_ratio: float = COMPACTION_TRIGGER_RATIO,
        placeholder: str = TOOL_RESULT_COMPACTION_PLACEHOLDER,
    ):
        if context_window <= 0:
            raise ValueError("context_window must be positive")
        if not 0 < trigger_ratio < 1:
            raise ValueError("trigger_ratio must be between 0 and 1")
        self.context_window = context_window
        self.trigger_ratio = trigger_ratio
        self.placeholder = placeholder

    def estimate_context_tokens(
        self, messages: list[dict], tools: list[dict] | None = None,
    ) -> int:
        """Estimate total context tokens for an API call."""
        total = estimate_messages_tokens(messages)
        if tools:
            total += estimate_tools_tokens(tools)
        return total

    def should_compact(self, messages: list[dict], tools: list[dict] | None = None) -> bool:
        """Check if estimated usage crossed the trigger threshold."""
        used = self.estimate_context_tokens(messages, tools)
        return used >= self.trigger_ratio * self.context_window

    def apply(
        self,
        messages: list[dict],
        resolved: ResolvedToolResultGuard,
        session_file: Path | None = None,
        tools: list[dict] | None = None,
    ) -> GuardOutcome:
        """Compact old tool results in-place on ``messages`` if over budget.

        Args:
            messages: LLM message list, oldest first. Modified in place.
            resolved: Guard settings for the current agent + model.
            session_file: Session JSONL to rewrite in ``persistent`` mode.
            tools: Tool definitions (count toward usage).

        Returns:
            The plan and what was compacted / persisted.
        """
        outcome = GuardOutcome()
        if resolved.disabled:
            return outcome

        used = self.estimate_context_tokens(messages, tools)
        if used < self.trigger_ratio * self.context_window:
            return outcome

        plan = plan_compaction(
            messages,
            used_tokens=used,
            context_window=self.context_window,
            compaction_target=resolved.compaction_target,
            trigger_ratio=self.trigger_ratio,
            placeholder=self.placeholder,
        )
        outcome.plan = plan
        if not plan:
            return outcome

        selected = set(plan.tool_call_ids)
        for msg in messages:
            if is_tool_result_message(msg) and tool_call_id_of(msg) in selected:
                if compact_message(msg, self.placeholder):
                    outcome.compacted += 1

        logger.info(
            f"Tool result guard ({resolved.mode}): {used} tokens of "
            f"{self.context_window}, compacted {outcome.compacted} result(s), "
            f"projected {plan.projected_tokens}"
            + ("" if plan.reached_target else " (target not reached)")
        )

        if resolved.persistent:
            if session_file is None:
                logger.warning(
                    "Tool result guard is persistent but no session file is known; "
                    "compaction kept in memory only"
                )
            else:
                result = persist_tool_result_compaction(
                    session_file, plan.tool_call_ids, placeholder=self.placeholder,
                )
                outcome.persisted = result.persisted
                outcome.persisted_count = result.updated_count

        return outcome

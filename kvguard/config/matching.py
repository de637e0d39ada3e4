"""Runtime context matching for context-aware policy overrides.

Identifier conventions follow the channel allow-lists:

- matching is case-insensitive and whitespace-trimmed
- ``"*"`` matches any *present* value
- ``sender`` is checked against the platform id, the E.164 phone number and
  the username of the sender

A missing context value never satisfies a concrete requirement. The one
exception is a ``sender`` wildcard, which also accepts turns where no sender
identity is known ("any sender, known or not").
"""

from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass
from typing import Any

from kvguard.config.loader import convert_keys
from kvguard.config.schema import ContextMatch

WILDCARD = "*"


@dataclass(frozen=True)
class RuntimeContext:
    """Snapshot of the current turn, built fresh by the caller for each resolution."""

    chat_type: str | None = None  # "direct" | "group" | "channel"
    channel: str | None = None
    sender_id: str | None = None
    sender_e164: str | None = None
    sender_username: str | None = None
    group_id: str | None = None
    group_channel: str | None = None
    sender_is_owner: bool | None = None
    is_subagent: bool | None = None


def normalize(value: Any) -> str:
    """Normalize an identifier for comparison."""
    if value is None:
        return ""
    return str(value).strip().lower()


def _as_list(value: Any) -> list:
    if isinstance(value, (list, tuple)):
        return list(value)
    return [value]


def _matches_any(allowed: Iterable[Any], value: Any) -> bool:
    v = normalize(value)
    for entry in allowed:
        n = normalize(entry)
        if n == WILDCARD or n == v:
            return True
    return False


def _match_choice(expected: Any, value: str | None) -> bool:
    """Scalar-or-list field (chat type, channel)."""
    if value is None:
        return False
    return _matches_any(_as_list(expected), value)


def _match_id_list(expected: Any, value: str | None) -> bool:
    """Identity list (group, group channel). Empty values never match."""
    if not value:
        return False
    return _matches_any(_as_list(expected), value)


def _match_sender(expected: Any, ctx: RuntimeContext) -> bool:
    allowed = _as_list(expected)
    if any(normalize(a) == WILDCARD for a in allowed):
        return True

    candidates = [
        c for c in (ctx.sender_id, ctx.sender_e164, ctx.sender_username) if c
    ]
    return any(_match_id_list(allowed, c) for c in candidates)


def _match_flag(expected: bool, value: bool | None) -> bool:
    return value is not None and value == expected


# Predicate field -> matcher(expected, context)
_FIELD_MATCHERS: tuple[tuple[str, Callable[[Any, RuntimeContext], bool]], ...] = (
    ("chat_type", lambda expected, ctx: _match_choice(expected, ctx.chat_type)),
    ("channel", lambda expected, ctx: _match_choice(expected, ctx.channel)),
    ("sender", _match_sender),
    ("group", lambda expected, ctx: _match_id_list(expected, ctx.group_id)),
    ("group_channel", lambda expected, ctx: _match_id_list(expected, ctx.group_channel)),
    ("sender_is_owner", lambda expected, ctx: _match_flag(expected, ctx.sender_is_owner)),
    ("is_subagent", lambda expected, ctx: _match_flag(expected, ctx.is_subagent)),
)


def matches_context(when: ContextMatch | Mapping[str, Any], context: RuntimeContext) -> bool:
    """Check whether every field present in ``when`` matches ``context``.

    Args:
        when: The override condition, a model or its dict form. Dict keys
            may be camelCase (as in the config file) or snake_case.
        context: Runtime snapshot of the current turn.

    Returns:
        True if all specified fields match; an empty condition matches anything.
    """
    if not isinstance(when, ContextMatch):
        when = ContextMatch.model_validate(convert_keys(dict(when)))

    for field_name, matcher in _FIELD_MATCHERS:
        expected = getattr(when, field_name)
        if expected is None:
            continue
        if not matcher(expected, context):
            return False
    return True

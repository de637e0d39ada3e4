"""Relocatable prompt field universes and selector normalization."""

from collections.abc import Iterable, Sequence

# Per-turn flags that change on every inbound message. When rendered in the
# system prompt they invalidate the KV cache each turn.
PER_TURN_FIELDS: tuple[str, ...] = (
    "has_reply_context",
    "has_forwarded_context",
    "has_thread_starter",
    "was_mentioned",
    "sender_id",
)

# Channel-specific system prompt sections. Dynamic ones change on channel
# switch; static ones cover every configured channel.
PER_CHANNEL_FIELDS: tuple[str, ...] = (
    "channel",
    "user_identity",
    "reactions",
    "inline_buttons",
    "runtime_channel",
    "inbound_meta",
)

FieldSelector = bool | list[str] | None


def resolve_field_set(selector: FieldSelector, universe: Sequence[str]) -> frozenset[str]:
    """Turn a selector into the concrete set of enabled field names.

    - ``True``: every field of the universe
    - ``False`` / ``None``: nothing
    - list: the listed names; unknown names are carried through untouched
    """
    if selector is True:
        return frozenset(universe)
    if isinstance(selector, (list, tuple)):
        return frozenset(str(name) for name in selector)
    return frozenset()


def ordered_fields(fields: Iterable[str], universe: Sequence[str]) -> list[str]:
    """List fields in universe order, unknown names last (sorted)."""
    present = set(fields)
    known = [name for name in universe if name in present]
    extra = sorted(present.difference(universe))
    return known + extra


def unknown_fields(selector: FieldSelector, universe: Sequence[str]) -> list[str]:
    """Names in an explicit selector that are not part of the universe."""
    if not isinstance(selector, (list, tuple)):
        return []
    return [name for name in selector if name not in universe]

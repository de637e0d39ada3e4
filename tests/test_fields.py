"""Tests for field selector normalization."""

from kvguard.config.fields import (
    PER_CHANNEL_FIELDS,
    PER_TURN_FIELDS,
    ordered_fields,
    resolve_field_set,
    unknown_fields,
)


class TestResolveFieldSet:
    def test_true_is_full_universe(self):
        assert resolve_field_set(True, PER_TURN_FIELDS) == frozenset(PER_TURN_FIELDS)

    def test_false_is_empty(self):
        assert resolve_field_set(False, PER_TURN_FIELDS) == frozenset()

    def test_none_is_empty(self):
        assert resolve_field_set(None, PER_CHANNEL_FIELDS) == frozenset()

    def test_list_selects_listed(self):
        result = resolve_field_set(["sender_id", "was_mentioned"], PER_TURN_FIELDS)
        assert result == {"sender_id", "was_mentioned"}

    def test_duplicates_collapse(self):
        result = resolve_field_set(["channel", "channel"], PER_CHANNEL_FIELDS)
        assert result == {"channel"}

    def test_unknown_names_carried_through(self):
        result = resolve_field_set(["reactions", "bogus"], PER_CHANNEL_FIELDS)
        assert result == {"reactions", "bogus"}

    def test_empty_list_is_empty(self):
        assert resolve_field_set([], PER_TURN_FIELDS) == frozenset()


class TestOrderedFields:
    def test_universe_order(self):
        fields = {"sender_id", "has_reply_context"}
        assert ordered_fields(fields, PER_TURN_FIELDS) == ["has_reply_context", "sender_id"]

    def test_unknown_last_sorted(self):
        fields = {"zeta", "channel", "alpha"}
        assert ordered_fields(fields, PER_CHANNEL_FIELDS) == ["channel", "alpha", "zeta"]


class TestUnknownFields:
    def test_bool_has_no_unknowns(self):
        assert unknown_fields(True, PER_TURN_FIELDS) == []

    def test_reports_unknown(self):
        assert unknown_fields(["sender_id", "nope"], PER_TURN_FIELDS) == ["nope"]

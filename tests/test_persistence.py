"""Tests for persisting tool result compaction into the session log."""

import json
import stat

import pytest

from kvguard.agent.compaction import TOOL_RESULT_COMPACTION_PLACEHOLDER as PLACEHOLDER
from kvguard.session.persistence import PersistResult, persist_tool_result_compaction


def _line(entry):
    return json.dumps(entry)


def _header():
    return _line({"type": "session", "id": "s1", "timestamp": "2026-01-01T00:00:00"})


def _tool_entry(call_id, content="full output", **extra):
    message = {"role": "toolResult", "toolCallId": call_id, "toolName": "exec", "content": content}
    message.update(extra)
    return _line({"type": "message", "timestamp": "2026-01-01T00:00:01", "message": message})


def _user_entry(text="hello"):
    return _line({"type": "message", "message": {"role": "user", "content": text}})


def _write(path, lines, newline="\n"):
    path.write_bytes((newline.join(lines) + newline).encode("utf-8"))


def _messages(path):
    result = {}
    for line in path.read_text(encoding="utf-8").splitlines():
        if not line.strip():
            continue
        try:
            entry = json.loads(line)
        except json.JSONDecodeError:
            continue
        msg = entry.get("message")
        if isinstance(msg, dict) and msg.get("toolCallId"):
            result[msg["toolCallId"]] = msg
    return result


@pytest.fixture
def session_file(tmp_path):
    path = tmp_path / "session.jsonl"
    _write(path, [
        _header(),
        _user_entry(),
        _tool_entry("a", details={"exitCode": 0, "stdout": "..."}),
        _tool_entry("b", content=[{"type": "text", "text": "rows"}, {"type": "image", "data": "..."}]),
        _tool_entry("c"),
    ])
    return path


class TestPersistCompaction:
    def test_string_content_replaced(self, session_file):
        result = persist_tool_result_compaction(session_file, ["a"])
        assert result == PersistResult(persisted=True, updated_count=1)

        msg = _messages(session_file)["a"]
        assert msg["content"] == PLACEHOLDER
        assert "details" not in msg
        assert msg["toolName"] == "exec"

    def test_block_content_becomes_text_block(self, session_file):
        persist_tool_result_compaction(session_file, ["b"])
        msg = _messages(session_file)["b"]
        assert msg["content"] == [{"type": "text", "text": PLACEHOLDER}]

    def test_other_lines_byte_identical(self, session_file):
        before = session_file.read_bytes().split(b"\n")
        persist_tool_result_compaction(session_file, ["b"])
        after = session_file.read_bytes().split(b"\n")

        assert len(after) == len(before)
        changed = [i for i, (x, y) in enumerate(zip(before, after)) if x != y]
        assert changed == [3]
        assert after[-1] == b""

    def test_unknown_ids_do_nothing(self, session_file):
        before = session_file.read_bytes()
        result = persist_tool_result_compaction(session_file, ["zzz"])
        assert result == PersistResult()
        assert session_file.read_bytes() == before

    def test_empty_ids_skip_reading(self, tmp_path):
        messages = []
        result = persist_tool_result_compaction(tmp_path / "missing.jsonl", [], warn=messages.append)
        assert result.persisted is False
        assert messages == []

    def test_idempotent(self, session_file):
        first = persist_tool_result_compaction(session_file, ["a", "c"])
        assert first.updated_count == 2
        snapshot = session_file.read_bytes()

        second = persist_tool_result_compaction(session_file, ["a", "c"])
        assert second == PersistResult(persisted=False, updated_count=0)
        assert session_file.read_bytes() == snapshot

    def test_custom_placeholder(self, session_file):
        persist_tool_result_compaction(session_file, ["c"], placeholder="[gone]")
        assert _messages(session_file)["c"]["content"] == "[gone]"

    def test_openai_style_entry(self, tmp_path):
        path = tmp_path / "s.jsonl"
        entry = {"type": "message", "message": {"role": "tool", "tool_call_id": "call_1", "content": "data"}}
        _write(path, [_line(entry)])

        result = persist_tool_result_compaction(path, ["call_1"])
        assert result.updated_count == 1
        saved = json.loads(path.read_text().strip())
        assert saved["message"]["content"] == PLACEHOLDER

    def test_non_message_entries_ignored(self, tmp_path):
        path = tmp_path / "s.jsonl"
        # A tool result outside a message entry is not a log message
        _write(path, [_line({"type": "custom", "toolCallId": "a", "content": "x"})])
        before = path.read_bytes()
        assert persist_tool_result_compaction(path, ["a"]).persisted is False
        assert path.read_bytes() == before


class TestMalformedInput:
    def test_blank_and_malformed_lines_kept(self, tmp_path):
        path = tmp_path / "s.jsonl"
        lines = [_header(), "", "{broken json", "   ", "[1, 2, 3]", _tool_entry("a")]
        _write(path, lines)

        result = persist_tool_result_compaction(path, ["a"])
        assert result.updated_count == 1

        after = path.read_text(encoding="utf-8").split("\n")
        assert after[:5] == lines[:5]
        assert PLACEHOLDER in after[5]

    def test_missing_file_warns(self, tmp_path):
        warnings = []
        result = persist_tool_result_compaction(tmp_path / "nope.jsonl", ["a"], warn=warnings.append)
        assert result == PersistResult()
        assert len(warnings) == 1
        assert "failed to read session file" in warnings[0]

    def test_no_trailing_newline_preserved(self, tmp_path):
        path = tmp_path / "s.jsonl"
        path.write_text(_header() + "\n" + _tool_entry("a"), encoding="utf-8")

        persist_tool_result_compaction(path, ["a"])
        assert not path.read_text(encoding="utf-8").endswith("\n")

    def test_crlf_preserved(self, tmp_path):
        path = tmp_path / "s.jsonl"
        _write(path, [_header(), _tool_entry("a")], newline="\r\n")

        persist_tool_result_compaction(path, ["a"])
        raw = path.read_bytes()
        assert raw.count(b"\r\n") == 2
        assert raw.endswith(b"\r\n")
        assert b"\n" not in raw.replace(b"\r\n", b"")

    def test_lone_surrogate_in_matched_entry(self, tmp_path):
        path = tmp_path / "s.jsonl"
        # A truncated emoji leaves an escaped high surrogate in a passthrough field
        path.write_bytes(
            b'{"type":"message","message":{"role":"toolResult","toolCallId":"a",'
            b'"toolName":"x\\ud83d","content":"big"}}\n'
        )
        warnings = []
        result = persist_tool_result_compaction(path, ["a"], warn=warnings.append)

        assert result == PersistResult(persisted=True, updated_count=1)
        assert warnings == []
        raw = path.read_bytes()
        assert b"\\ud83d" in raw
        assert json.loads(raw)["message"]["content"] == PLACEHOLDER

    def test_invalid_utf8_line_kept(self, tmp_path):
        path = tmp_path / "s.jsonl"
        corrupt = b'{"type":"custom","note":"\xff\xfe"}'
        path.write_bytes(corrupt + b"\n" + _tool_entry("a").encode("utf-8") + b"\n")

        warnings = []
        result = persist_tool_result_compaction(path, ["a"], warn=warnings.append)

        assert result == PersistResult(persisted=True, updated_count=1)
        assert warnings == []
        lines = path.read_bytes().split(b"\n")
        assert lines[0] == corrupt
        assert json.loads(lines[1])["message"]["content"] == PLACEHOLDER

    def test_unicode_kept(self, tmp_path):
        path = tmp_path / "s.jsonl"
        user = json.dumps({"type": "message", "message": {"role": "user", "content": "привет 👋"}}, ensure_ascii=False)
        _write(path, [user, _tool_entry("a")])

        persist_tool_result_compaction(path, ["a"])
        assert path.read_text(encoding="utf-8").split("\n")[0] == user


class TestAtomicRewrite:
    def test_permissions_preserved(self, session_file):
        session_file.chmod(0o640)
        persist_tool_result_compaction(session_file, ["a"])
        assert stat.S_IMODE(session_file.stat().st_mode) == 0o640

    def test_no_temp_files_left(self, session_file):
        persist_tool_result_compaction(session_file, ["a"])
        assert [p.name for p in session_file.parent.iterdir()] == [session_file.name]

    def test_failed_rename_leaves_original(self, session_file, monkeypatch):
        before = session_file.read_bytes()

        def boom(src, dst):
            raise OSError("disk full")

        monkeypatch.setattr("kvguard.utils.helpers.os.replace", boom)

        warnings = []
        result = persist_tool_result_compaction(session_file, ["a"], warn=warnings.append)

        assert result == PersistResult()
        assert session_file.read_bytes() == before
        assert [p.name for p in session_file.parent.iterdir()] == [session_file.name]
        assert len(warnings) == 1
        assert "failed to write session file" in warnings[0]
        assert "disk full" in warnings[0]

    def test_encode_failure_reported(self, session_file, monkeypatch):
        before = session_file.read_bytes()

        def bad_write(path, data, encoding="utf-8", errors="strict"):
            raise UnicodeEncodeError("utf-8", "\ud83d", 0, 1, "surrogates not allowed")

        monkeypatch.setattr("kvguard.session.persistence.atomic_write_text", bad_write)

        warnings = []
        result = persist_tool_result_compaction(session_file, ["a"], warn=warnings.append)

        assert result == PersistResult()
        assert session_file.read_bytes() == before
        assert "failed to write session file" in warnings[0]

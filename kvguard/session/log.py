"""Session log entries and the append-only JSONL session file."""

import json
import uuid
from datetime import datetime
from pathlib import Path
from typing import Any

from loguru import logger

TOOL_RESULT_ROLES = ("toolResult", "tool")


def is_tool_result_message(msg: dict[str, Any]) -> bool:
    """Check whether a message is a tool result (role or type marker)."""
    return msg.get("role") in TOOL_RESULT_ROLES or msg.get("type") == "toolResult"


def is_tool_result_entry(entry: dict[str, Any]) -> bool:
    """Check whether a log entry is a message entry carrying a tool result."""
    msg = entry.get("message")
    return (
        entry.get("type") == "message"
        and isinstance(msg, dict)
        and is_tool_result_message(msg)
    )


def tool_call_id_of(msg: dict[str, Any]) -> str | None:
    """Tool call id of a tool result (log and LLM message spellings)."""
    call_id = msg.get("toolCallId") or msg.get("tool_call_id")
    return str(call_id) if call_id else None


def is_compacted_content(content: Any, placeholder: str) -> bool:
    """Content already equals the placeholder (string or single text block)."""
    if content == placeholder:
        return True
    return (
        isinstance(content, list)
        and len(content) == 1
        and isinstance(content[0], dict)
        and content[0].get("text") == placeholder
    )


def compact_message(msg: dict[str, Any], placeholder: str) -> bool:
    """Replace a tool result's content with the placeholder, in place.

    String (or missing) content becomes the placeholder string, any other
    shape becomes a single text block. ``details`` is dropped.

    Returns:
        False if the message was already compacted, True otherwise.
    """
    content = msg.get("content")
    if is_compacted_content(content, placeholder):
        return False

    if content is None or isinstance(content, str):
        msg["content"] = placeholder
    else:
        msg["content"] = [{"type": "text", "text": placeholder}]
    msg.pop("details", None)
    return True


class SessionLog:
    """
    Append-only conversation log.

    One JSON object per line. The first line is a ``{"type": "session"}``
    header, every message is wrapped as ``{"type": "message", "message": {...}}``.
    """

    def __init__(self, path: Path):
        self.path = Path(path)

    def create(self, session_id: str | None = None) -> None:
        """Write the session header line if the file does not exist yet."""
        if self.path.exists():
            return
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self._append({
            "type": "session",
            "id": session_id or uuid.uuid4().hex[:12],
            "timestamp": datetime.now().isoformat(),
        })

    def append_message(self, role: str, content: Any, **fields: Any) -> dict[str, Any]:
        """Append a message entry and return the message dict."""
        self.create()
        msg = {"role": role, "content": content, **fields}
        self._append({
            "type": "message",
            "timestamp": datetime.now().isoformat(),
            "message": msg,
        })
        return msg

    def entries(self) -> list[dict[str, Any]]:
        """Parsed entries; blank and malformed lines are skipped."""
        if not self.path.exists():
            return []

        entries = []
        with open(self.path, encoding="utf-8") as f:
            for lineno, line in enumerate(f, start=1):
                line = line.strip()
                if not line:
                    continue
                try:
                    data = json.loads(line)
                except json.JSONDecodeError:
                    logger.debug(f"Skipping malformed line {lineno} in {self.path.name}")
                    continue
                if isinstance(data, dict):
                    entries.append(data)
        return entries

    def messages(self) -> list[dict[str, Any]]:
        """Messages in log order (oldest first)."""
        return [
            e["message"] for e in self.entries()
            if e.get("type") == "message" and isinstance(e.get("message"), dict)
        ]

    def tool_results(self) -> list[dict[str, Any]]:
        """Tool result messages with a call id, oldest first."""
        return [
            m for m in self.messages()
            if is_tool_result_message(m) and tool_call_id_of(m)
        ]

    def _append(self, entry: dict[str, Any]) -> None:
        with open(self.path, "a", encoding="utf-8") as f:
            f.write(json.dumps(entry, ensure_ascii=False) + "\n")

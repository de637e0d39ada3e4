"""Persist tool result compaction into the session JSONL file."""

import json
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from pathlib import Path

from loguru import logger

from kvguard.agent.compaction import TOOL_RESULT_COMPACTION_PLACEHOLDER
from kvguard.session.log import compact_message, is_tool_result_entry, tool_call_id_of
from kvguard.utils.helpers import atomic_write_text


@dataclass(frozen=True)
class PersistResult:
    persisted: bool = False
    updated_count: int = 0


def _split_cr(part: str) -> tuple[str, str]:
    """Split off a trailing carriage return (CRLF logs)."""
    if part.endswith("\r"):
        return part[:-1], "\r"
    return part, ""


def persist_tool_result_compaction(
    session_file: Path | str,
    tool_call_ids: Iterable[str],
    placeholder: str = TOOL_RESULT_COMPACTION_PLACEHOLDER,
    warn: Callable[[str], None] | None = None,
) -> PersistResult:
    """Rewrite compacted tool results in the session file.

    Matching tool result entries get the placeholder as content (same shape
    as before) and lose their ``details``. Every other line, including blank
    and malformed ones (invalid UTF-8 included), is written back byte for
    byte. Rewritten entries are serialized as ASCII-escaped compact JSON.
    Entries that already hold the placeholder are left alone and not counted.

    The new content is written to a sibling temp file and renamed over the
    original, so the file is either fully replaced or not touched at all.
    Nothing is written when no entry changed.

    Never raises: read and write failures are reported through ``warn``
    (the logger when not given) and a ``persisted=False`` result.
    """
    ids = set(tool_call_ids)
    report = warn or logger.warning

    if not ids:
        return PersistResult()

    path = Path(session_file)
    try:
        # Undecodable bytes survive the round trip as lone surrogates
        with open(path, encoding="utf-8", errors="surrogateescape", newline="") as f:
            content = f.read()
    except OSError as e:
        report(f"tool result guard persistence: failed to read session file: {e}")
        return PersistResult()

    output: list[str] = []
    updated_count = 0

    for line in content.split("\n"):
        body, cr = _split_cr(line)
        if not body.strip():
            output.append(line)
            continue

        try:
            entry = json.loads(body)
        except json.JSONDecodeError:
            # Not ours to repair
            output.append(line)
            continue

        if (
            not isinstance(entry, dict)
            or not is_tool_result_entry(entry)
            or tool_call_id_of(entry["message"]) not in ids
        ):
            output.append(line)
            continue

        if not compact_message(entry["message"], placeholder):
            output.append(line)
            continue

        updated_count += 1
        output.append(
            json.dumps(entry, ensure_ascii=True, separators=(",", ":")) + cr
        )

    if updated_count == 0:
        return PersistResult()

    try:
        atomic_write_text(path, "\n".join(output), errors="surrogateescape")
    except (OSError, ValueError) as e:
        report(f"tool result guard persistence: failed to write session file: {e}")
        return PersistResult()

    logger.info(
        f"Persisted tool result compaction to {path.name}: "
        f"{updated_count} result(s) replaced"
    )
    return PersistResult(persisted=True, updated_count=updated_count)

"""Approximate token estimation for context budgeting."""

import json
from typing import Any

CHARS_PER_TOKEN = 4  # Cross-model estimate (EN text/code/JSON)
IMAGE_TOKENS = 800  # ~800x600 image on a vision model
MESSAGE_OVERHEAD = 4  # Per-message overhead (role, separators)


def estimate_tokens(text: str) -> int:
    """Estimate token count from character count."""
    return len(text) // CHARS_PER_TOKEN


def estimate_content_tokens(content: Any) -> int:
    """Estimate tokens of message content (string or list of content blocks)."""
    if content is None:
        return 0
    if isinstance(content, str):
        return estimate_tokens(content)
    if isinstance(content, list):
        total = 0
        for block in content:
            if not isinstance(block, dict):
                continue
            if block.get("type") == "text":
                total += estimate_tokens(str(block.get("text", "")))
            elif block.get("type") in ("image", "image_url"):
                total += IMAGE_TOKENS
        return total
    return estimate_tokens(json.dumps(content, default=str))


def estimate_message_tokens(msg: dict) -> int:
    """Estimate tokens for one message, including tool call arguments."""
    total = MESSAGE_OVERHEAD + estimate_content_tokens(msg.get("content"))

    for tc in msg.get("tool_calls") or []:
        fn = tc.get("function", {})
        args = fn.get("arguments", "")
        if isinstance(args, dict):
            args = json.dumps(args)
        total += estimate_tokens(str(fn.get("name", "")))
        total += estimate_tokens(str(args))

    return total


def estimate_messages_tokens(messages: list[dict]) -> int:
    """Estimate total tokens for a message list."""
    return sum(estimate_message_tokens(m) for m in messages)


def estimate_tools_tokens(tools: list[dict]) -> int:
    """Estimate tokens for tool definitions."""
    return estimate_tokens(json.dumps(tools))

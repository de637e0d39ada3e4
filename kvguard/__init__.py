"""kvguard - KV-cache stability policy and tool-result guard for local LLM backends."""

__version__ = "0.1.0"
__logo__ = "🧊"

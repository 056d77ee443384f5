"""LangSmith tracing for oracle calls. Zero-cost when LANGSMITH_API_KEY is unset.

The env var is checked on each call, not at import time, so tests and
scripts can toggle tracing without reloading modules.
"""

from __future__ import annotations

import os
from typing import Any

import structlog

_log = structlog.get_logger("tracing")


def tracing_enabled() -> bool:
    return bool(os.environ.get("LANGSMITH_API_KEY", "").strip())


def wrap_gemini(client: Any) -> Any:
    """Wrap a google-genai client for auto-tracing. No-op without LANGSMITH_API_KEY."""
    if not tracing_enabled():
        return client
    from langsmith.wrappers import wrap_gemini as _wrap

    try:
        return _wrap(client)
    except Exception as exc:
        _log.error(
            "langsmith_wrap_gemini_failed",
            error=str(exc),
            error_type=type(exc).__name__,
            reason="langsmith Gemini wrapping failed; continuing without tracing",
        )
        return client

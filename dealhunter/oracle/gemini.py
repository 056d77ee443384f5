"""Gemini access and boundary validation for oracle responses.

The hosted model is asked for JSON, but replies may still arrive wrapped in
code fences or surrounded by prose. parse_response() recovers the JSON value
and validates it against the caller's pydantic type before anything flows
downstream.
"""

from __future__ import annotations

import asyncio
import json
from typing import Any, TypeVar

import structlog
from google import genai
from google.genai import types
from pydantic import TypeAdapter, ValidationError

from dealhunter.config import settings
from dealhunter.errors import OracleError, ResponseValidationError
from dealhunter.utils.tracing import wrap_gemini

log = structlog.get_logger("oracle.gemini")

T = TypeVar("T")

JSON_CONFIG = types.GenerateContentConfig(
    response_mime_type="application/json",
    temperature=0.2,
)


def get_client() -> genai.Client:
    """Create a Gemini client using the configured API key."""
    if not settings.google_ai_api_key:
        raise OracleError("GOOGLE_AI_API_KEY not set", retryable=False)
    return wrap_gemini(genai.Client(api_key=settings.google_ai_api_key))


def strip_code_fence(text: str) -> str:
    """Remove a surrounding markdown code fence, with or without a language tag."""
    text = text.strip()
    if not text.startswith("```"):
        return text
    text = text.removeprefix("```")
    for lang in ("json", "JSON"):
        text = text.removeprefix(lang)
    text = text.lstrip("\n")
    return text.rsplit("```", 1)[0].strip()


def _scan_balanced(text: str, start: int) -> str | None:
    """Return text[start:end] for the bracket group opening at start, if balanced."""
    opener = text[start]
    closer = "}" if opener == "{" else "]"
    depth = 0
    in_string = False
    escape_next = False
    for i in range(start, len(text)):
        ch = text[i]
        if escape_next:
            escape_next = False
            continue
        if in_string:
            if ch == "\\":
                escape_next = True
            elif ch == '"':
                in_string = False
            continue
        if ch == '"':
            in_string = True
        elif ch == opener:
            depth += 1
        elif ch == closer:
            depth -= 1
            if depth == 0:
                return text[start : i + 1]
    return None


def extract_json(text: str) -> Any:
    """Parse a JSON object or array out of free-form model text.

    Handles pure JSON, fenced JSON, and JSON with a preamble or postamble.
    Raises ValueError when nothing parseable is found.
    """
    text = strip_code_fence(text)
    if not text:
        raise ValueError("empty response")

    try:
        return json.loads(text)
    except json.JSONDecodeError:
        pass

    starts = [i for i in (text.find("{"), text.find("[")) if i != -1]
    if not starts:
        raise ValueError("no JSON object or array found")
    candidate = _scan_balanced(text, min(starts))
    if candidate is None:
        raise ValueError("unbalanced JSON in response")
    try:
        return json.loads(candidate)
    except json.JSONDecodeError as exc:
        raise ValueError(f"invalid JSON: {exc.msg}") from exc


def parse_response(text: str, schema: type[T] | Any, agent: str) -> T:
    """Extract JSON from text and validate it; raise ResponseValidationError otherwise."""
    log.debug("oracle_raw_response", agent=agent, preview=text[:200])
    try:
        data = extract_json(text)
    except ValueError as exc:
        log.error("oracle_response_unparseable", agent=agent, error=str(exc), preview=text[:500])
        raise ResponseValidationError(agent, str(exc)) from exc

    try:
        return TypeAdapter(schema).validate_python(data)  # type: ignore[no-any-return]
    except ValidationError as exc:
        log.error(
            "oracle_response_invalid",
            agent=agent,
            error_count=exc.error_count(),
            first_error=str(exc.errors()[0]["msg"]) if exc.errors() else "",
        )
        raise ResponseValidationError(agent, str(exc)) from exc


async def generate_text(
    client: genai.Client,
    model: str,
    parts: list[types.Part],
    agent: str,
) -> str:
    """Send one user turn and return the concatenated text of the reply."""
    contents = [types.Content(role="user", parts=parts)]
    try:
        response = await asyncio.to_thread(
            client.models.generate_content,
            model=model,
            contents=contents,
            config=JSON_CONFIG,
        )
    except Exception as exc:
        # TODO: Catch typed google.genai errors.APIError once retry policy is decided
        log.error("oracle_call_failed", agent=agent, model=model, error=str(exc)[:300])
        raise OracleError(f"{agent} call to {model} failed: {exc}") from exc

    usage = response.usage_metadata
    log.info(
        "oracle_call_complete",
        agent=agent,
        model=model,
        input_tokens=getattr(usage, "prompt_token_count", None),
        output_tokens=getattr(usage, "candidates_token_count", None),
    )
    return response.text or ""

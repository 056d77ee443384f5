"""The four hosted-model agents: extractor, librarian, interpreter, matcher.

Each agent fills a prompt template, makes one Gemini call, and validates the
reply against its contract model. All intelligence lives in the prompts
(dealhunter/prompts/*.txt); this module is request plumbing.
"""

from __future__ import annotations

import json
from pathlib import Path

import structlog
from google import genai
from google.genai import types

from dealhunter.config import settings
from dealhunter.errors import ResponseValidationError
from dealhunter.models.contracts import (
    AdFile,
    InterpretResponse,
    MasterInventoryItem,
    MatchResponse,
    NormalizedItem,
    RawItem,
)
from dealhunter.oracle.gemini import generate_text, get_client, parse_response

log = structlog.get_logger("oracle.agents")

PROMPTS_DIR = Path(__file__).resolve().parent.parent / "prompts"

EXTRACTOR = "Extractor"
LIBRARIAN = "Librarian"
INTERPRETER = "Interpreter"
MATCHER = "Matcher"

_prompt_cache: dict[str, str] = {}


def load_prompt(name: str) -> str:
    """Load a prompt template from PROMPTS_DIR (cached after first read)."""
    if name not in _prompt_cache:
        _prompt_cache[name] = (PROMPTS_DIR / f"{name}.txt").read_text()
    return _prompt_cache[name]


def _inventory_for_prompt(inventory: list[MasterInventoryItem]) -> str:
    """Compact inventory view for matching: only what the model needs to choose."""
    rows = [
        item.model_dump(
            by_alias=True,
            include={
                "id",
                "store_name",
                "normalized_name",
                "brand",
                "price",
                "unit",
                "deal_description",
                "is_loss_leader",
                "original_price",
                "category",
            },
        )
        for item in inventory
    ]
    return json.dumps(rows)


class GeminiOracle:
    """Gemini-backed implementation of the extract/normalize/interpret/match oracle."""

    def __init__(self, client: genai.Client | None = None, model: str | None = None) -> None:
        self._client = client
        self.model = model or settings.gemini_model

    @property
    def client(self) -> genai.Client:
        if self._client is None:
            self._client = get_client()
        return self._client

    async def extract(self, files: list[AdFile]) -> list[RawItem]:
        """Read product tiles off the ad files. May legitimately return []."""
        log.info("extractor_start", file_count=len(files), files=[f.name for f in files])
        prompt = load_prompt("extractor").format(file_names=", ".join(f.name for f in files))
        parts = [types.Part(text=prompt)]
        parts.extend(types.Part.from_bytes(data=f.data, mime_type=f.mime_type) for f in files)

        text = await generate_text(self.client, self.model, parts, EXTRACTOR)
        items = parse_response(text or "[]", list[RawItem], EXTRACTOR)
        log.info(
            "extractor_complete",
            count=len(items),
            sample=[i.raw_name for i in items[:3]],
        )
        return items

    async def normalize(self, shard: list[RawItem]) -> list[NormalizedItem]:
        items_json = json.dumps([item.model_dump(by_alias=True) for item in shard])
        prompt = load_prompt("librarian").format(items_json=items_json, item_count=len(shard))

        text = await generate_text(self.client, self.model, [types.Part(text=prompt)], LIBRARIAN)
        items = parse_response(text or "[]", list[NormalizedItem], LIBRARIAN)
        if len(items) != len(shard):
            log.warning("librarian_count_mismatch", sent=len(shard), received=len(items))
            raise ResponseValidationError(
                LIBRARIAN, f"expected {len(shard)} items, got {len(items)}"
            )
        return items

    async def interpret(self, grocery_list: str) -> list[str]:
        """Expand the user's free-form list into keywords. Blank input gives []."""
        if not grocery_list.strip():
            log.info("interpreter_empty_list")
            return []

        prompt = load_prompt("interpreter").format(grocery_list=grocery_list)
        text = await generate_text(self.client, self.model, [types.Part(text=prompt)], INTERPRETER)

        # Models sometimes answer with the bare keyword array despite the prompt
        parsed = parse_response(text or "{}", InterpretResponse | list[str], INTERPRETER)
        if isinstance(parsed, list):
            log.warning("interpreter_returned_array")
            keywords = parsed
        else:
            keywords = parsed.expanded_keywords
        keywords = [k.strip() for k in keywords if k.strip()]
        log.info("interpreter_complete", keywords=keywords)
        return keywords

    async def match(
        self,
        keywords: list[str],
        inventory: list[MasterInventoryItem],
    ) -> MatchResponse:
        log.info("matcher_start", keywords=len(keywords), inventory=len(inventory))
        prompt = load_prompt("matcher").format(
            keywords_json=json.dumps(keywords),
            inventory_json=_inventory_for_prompt(inventory),
        )
        text = await generate_text(self.client, self.model, [types.Part(text=prompt)], MATCHER)
        response = parse_response(text or "{}", MatchResponse, MATCHER)
        log.info("matcher_complete", matches=len(response.matches))
        return response

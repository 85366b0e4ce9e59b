"""Claude-powered extraction backend — structured output via forced tool use."""

from __future__ import annotations

import logging
import os
from typing import Any

import anthropic
from anthropic import AsyncAnthropic
from anthropic.types import ToolUseBlock

from triage.extraction.extractor import ExtractionError, ExtractionUnavailable
from triage.extraction.normalizer import map_entities, map_key_phrases, map_sentiment
from triage.extraction.types import Extraction

logger = logging.getLogger(__name__)

# Haiku: fast and cheap enough to run on every email and ticket in a batch.
DEFAULT_MODEL = "claude-haiku-4-5-20251001"
_MAX_TOKENS = 1024
_TOOL_NAME = "record_text_features"

ENTITY_TYPES = [
    "PERSON", "LOCATION", "ORGANIZATION", "COMMERCIAL_ITEM", "EVENT",
    "DATE", "QUANTITY", "TITLE", "OTHER",
]


class AnalysisError(ExtractionError):
    """Raised when Claude answers without the expected tool call."""


# ── Tool definition ────────────────────────────────────────────────────────────

#: Anthropic tool schema mirroring the entity / key phrase / sentiment shape.
#: Descriptions are intentionally terse to minimise input tokens per call.
EXTRACTION_TOOL: dict[str, Any] = {
    "name": _TOOL_NAME,
    "description": "Record entities, key phrases and sentiment found in a text.",
    "input_schema": {
        "type": "object",
        "properties": {
            "entities": {
                "type": "array",
                "items": {
                    "type": "object",
                    "properties": {
                        "text": {"type": "string"},
                        "type": {"type": "string", "enum": ENTITY_TYPES},
                        "score": {"type": "number", "minimum": 0, "maximum": 1},
                    },
                    "required": ["text", "type", "score"],
                },
                "description": "Named people, organisations, products, events, titles.",
            },
            "key_phrases": {
                "type": "array",
                "items": {
                    "type": "object",
                    "properties": {
                        "text": {"type": "string"},
                        "score": {"type": "number", "minimum": 0, "maximum": 1},
                    },
                    "required": ["text", "score"],
                },
                "description": "Salient noun phrases, verbatim from the text.",
            },
            "sentiment": {
                "type": "object",
                "properties": {
                    "label": {
                        "type": "string",
                        "enum": ["POSITIVE", "NEGATIVE", "NEUTRAL", "MIXED"],
                    },
                    "positive": {"type": "number", "minimum": 0, "maximum": 1},
                    "negative": {"type": "number", "minimum": 0, "maximum": 1},
                    "neutral": {"type": "number", "minimum": 0, "maximum": 1},
                    "mixed": {"type": "number", "minimum": 0, "maximum": 1},
                },
                "required": ["label", "positive", "negative", "neutral", "mixed"],
            },
        },
        "required": ["entities", "key_phrases", "sentiment"],
    },
}


def build_messages(text: str) -> list[dict[str, str]]:
    """Build the Anthropic messages list for extracting features from text."""
    return [
        {
            "role": "user",
            "content": (
                f"Extract entities, key phrases and sentiment from the text below "
                f"and call {_TOOL_NAME} with your findings. Scores are confidences "
                "between 0 and 1.\n\n" + text
            ),
        }
    ]


# ── Extractor ──────────────────────────────────────────────────────────────────


class AnthropicExtractor:
    """Sends one text to Claude and returns its features as an Extraction.

    Uses Anthropic's tool_use with a forced tool_choice so the response is
    always machine-readable: no JSON parsing, no markdown fences.

    Usage::

        extractor = AnthropicExtractor()
        extraction = await extractor.extract("Login broken\\n\\nI get an error...")
    """

    def __init__(self, api_key: str | None = None, model: str = DEFAULT_MODEL) -> None:
        key = api_key or os.environ.get("ANTHROPIC_API_KEY", "")
        if not key:
            raise ExtractionUnavailable(
                "ANTHROPIC_API_KEY is not set; add it to the environment or .env "
                "file, or select another backend with TRIAGE_BACKEND"
            )
        self._client = AsyncAnthropic(api_key=key)
        self._model = model

    async def aclose(self) -> None:
        await self._client.close()

    async def extract(self, text: str) -> Extraction:
        """Extract features from text.

        Raises:
            ExtractionUnavailable: if Anthropic rejects the credentials.
            ExtractionError: on any other API failure or a missing tool call.
        """
        try:
            response = await self._client.messages.create(
                model=self._model,
                max_tokens=_MAX_TOKENS,
                tools=[EXTRACTION_TOOL],  # type: ignore[list-item]
                tool_choice={"type": "tool", "name": _TOOL_NAME},
                messages=build_messages(text),  # type: ignore[arg-type]
            )
        except (anthropic.AuthenticationError, anthropic.PermissionDeniedError) as exc:
            raise ExtractionUnavailable(f"Anthropic rejected the credentials: {exc}") from exc
        except anthropic.APIError as exc:
            raise ExtractionError(f"Anthropic extraction call failed: {exc}") from exc

        for block in response.content:
            if isinstance(block, ToolUseBlock) and block.name == _TOOL_NAME:
                return parse_extraction(block.input)  # type: ignore[arg-type]

        raise AnalysisError(
            f"Claude did not return a {_TOOL_NAME} tool call "
            f"(stop_reason={response.stop_reason!r})"
        )


def parse_extraction(data: dict[str, Any]) -> Extraction:
    """Convert the raw tool-call input dict into a typed Extraction."""
    sentiment = data.get("sentiment") or {}
    return Extraction(
        entities=map_entities(data.get("entities")),
        key_phrases=map_key_phrases(data.get("key_phrases")),
        sentiment=map_sentiment(sentiment.get("label"), sentiment),
    )

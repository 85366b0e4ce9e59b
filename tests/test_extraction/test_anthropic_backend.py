"""Tests for the Claude extraction backend (tool-use integration)."""

from unittest.mock import AsyncMock, MagicMock

import anthropic
import httpx
import pytest
from anthropic.types import ToolUseBlock

from triage.extraction.anthropic_backend import (
    EXTRACTION_TOOL,
    AnalysisError,
    AnthropicExtractor,
    build_messages,
    parse_extraction,
)
from triage.extraction.extractor import ExtractionError, ExtractionUnavailable
from triage.extraction.types import SentimentLabel


# ── Helpers ────────────────────────────────────────────────────────────────────


def make_tool_block(data: dict[str, object], name: str = "record_text_features") -> ToolUseBlock:
    return ToolUseBlock(type="tool_use", id="toolu_test_123", name=name, input=data)


def make_response(*blocks: object, stop_reason: str = "tool_use") -> MagicMock:
    r = MagicMock()
    r.content = list(blocks)
    r.stop_reason = stop_reason
    return r


def make_request() -> httpx.Request:
    return httpx.Request("POST", "https://api.anthropic.com/v1/messages")


VALID_DATA: dict[str, object] = {
    "entities": [{"text": "Acme Portal", "type": "COMMERCIAL_ITEM", "score": 0.92}],
    "key_phrases": [
        {"text": "login error", "score": 0.95},
        {"text": "password page", "score": 0.81},
    ],
    "sentiment": {
        "label": "NEGATIVE",
        "positive": 0.02,
        "negative": 0.88,
        "neutral": 0.08,
        "mixed": 0.02,
    },
}


# ── build_messages / tool schema ───────────────────────────────────────────────


class TestBuildMessages:
    def test_single_user_message_with_text(self) -> None:
        msgs = build_messages("Login broken\n\nI see an error")
        assert len(msgs) == 1
        assert msgs[0]["role"] == "user"
        assert "I see an error" in msgs[0]["content"]

    def test_instruction_names_tool(self) -> None:
        assert EXTRACTION_TOOL["name"] in build_messages("x")[0]["content"]


class TestParseExtraction:
    def test_parses_all_sections(self) -> None:
        result = parse_extraction(VALID_DATA)
        assert [p.text for p in result.key_phrases] == ["login error", "password page"]
        assert result.entities[0].type == "COMMERCIAL_ITEM"
        assert result.sentiment.label == SentimentLabel.NEGATIVE
        assert result.sentiment.scores.negative == 0.88

    def test_missing_sections_default_to_empty(self) -> None:
        result = parse_extraction({})
        assert result.entities == ()
        assert result.key_phrases == ()
        assert result.sentiment.label == SentimentLabel.NEUTRAL


# ── AnthropicExtractor ─────────────────────────────────────────────────────────


class TestAnthropicExtractorInit:
    def test_missing_key_is_unavailable(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.delenv("ANTHROPIC_API_KEY", raising=False)
        with pytest.raises(ExtractionUnavailable):
            AnthropicExtractor(api_key="")

    def test_key_from_environment(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("ANTHROPIC_API_KEY", "env-key")
        AnthropicExtractor()


class TestAnthropicExtractorExtract:
    @pytest.fixture
    def extractor(self) -> AnthropicExtractor:
        return AnthropicExtractor(api_key="test-key")

    async def test_returns_extraction_on_success(self, extractor: AnthropicExtractor) -> None:
        extractor._client.messages.create = AsyncMock(
            return_value=make_response(make_tool_block(VALID_DATA))
        )
        result = await extractor.extract("Login broken")
        assert len(result.key_phrases) == 2

    async def test_forces_tool_choice(self, extractor: AnthropicExtractor) -> None:
        create = AsyncMock(return_value=make_response(make_tool_block(VALID_DATA)))
        extractor._client.messages.create = create
        await extractor.extract("Login broken")
        kwargs = create.call_args.kwargs
        assert kwargs["tool_choice"] == {"type": "tool", "name": "record_text_features"}
        assert kwargs["tools"] == [EXTRACTION_TOOL]

    async def test_skips_non_tool_blocks(self, extractor: AnthropicExtractor) -> None:
        text_block = MagicMock()
        text_block.type = "text"
        extractor._client.messages.create = AsyncMock(
            return_value=make_response(text_block, make_tool_block(VALID_DATA))
        )
        result = await extractor.extract("Login broken")
        assert result.sentiment.label == SentimentLabel.NEGATIVE

    async def test_no_tool_call_raises_analysis_error(self, extractor: AnthropicExtractor) -> None:
        extractor._client.messages.create = AsyncMock(
            return_value=make_response(stop_reason="end_turn")
        )
        with pytest.raises(AnalysisError):
            await extractor.extract("Login broken")

    async def test_wrong_tool_name_raises_analysis_error(
        self, extractor: AnthropicExtractor
    ) -> None:
        extractor._client.messages.create = AsyncMock(
            return_value=make_response(make_tool_block({}, name="other_tool"))
        )
        with pytest.raises(AnalysisError):
            await extractor.extract("Login broken")

    async def test_auth_error_is_unavailable(self, extractor: AnthropicExtractor) -> None:
        error = anthropic.AuthenticationError(
            "invalid x-api-key",
            response=httpx.Response(401, request=make_request()),
            body=None,
        )
        extractor._client.messages.create = AsyncMock(side_effect=error)
        with pytest.raises(ExtractionUnavailable):
            await extractor.extract("Login broken")

    async def test_connection_error_is_extraction_error(
        self, extractor: AnthropicExtractor
    ) -> None:
        error = anthropic.APIConnectionError(request=make_request())
        extractor._client.messages.create = AsyncMock(side_effect=error)
        with pytest.raises(ExtractionError) as info:
            await extractor.extract("Login broken")
        assert not isinstance(info.value, ExtractionUnavailable)

    async def test_aclose_closes_client(self, extractor: AnthropicExtractor) -> None:
        extractor._client.close = AsyncMock()
        await extractor.aclose()
        extractor._client.close.assert_awaited_once()

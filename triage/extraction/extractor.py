"""Extractor interface, its error types, and backend construction."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Protocol, runtime_checkable

from triage.extraction.types import Extraction

if TYPE_CHECKING:
    from triage.pipeline.config import TriageConfig

logger = logging.getLogger(__name__)


class ExtractionError(Exception):
    """Raised when feature extraction fails for a single text."""


class ExtractionUnavailable(ExtractionError):
    """Raised when the extraction backend has no credentials or is not configured.

    This is a deployment problem rather than a data problem, so batch
    analysis lets it propagate instead of skipping the item.
    """


# ── Extractor interface ────────────────────────────────────────────────────────


@runtime_checkable
class Extractor(Protocol):
    """Entity / key-phrase / sentiment extraction for one text blob."""

    async def extract(self, text: str) -> Extraction:
        """Return the features of text.

        Raises:
            ExtractionUnavailable: if the backend is not configured.
            ExtractionError: if this particular call failed.
        """
        ...

    async def aclose(self) -> None:
        """Release network resources held by the backend."""
        ...


def create_extractor(config: TriageConfig) -> Extractor:
    """Build the backend selected by config.backend.

    Called once at process start; the result is passed by reference to the
    analyzer and closed with aclose() on shutdown.

    Raises:
        ExtractionUnavailable: unknown backend name or missing credentials.
    """
    backend = config.backend.lower()
    if backend == "anthropic":
        from triage.extraction.anthropic_backend import AnthropicExtractor

        return AnthropicExtractor(api_key=config.anthropic_api_key, model=config.anthropic_model)
    if backend == "comprehend":
        from triage.extraction.comprehend_backend import ComprehendExtractor

        return ComprehendExtractor(region=config.aws_region)
    raise ExtractionUnavailable(
        f"Unknown extraction backend {config.backend!r}; "
        "set TRIAGE_BACKEND to 'anthropic' or 'comprehend'"
    )

"""AWS Comprehend extraction backend."""

from __future__ import annotations

import asyncio
import logging
from typing import Any

import boto3
from botocore.client import BaseClient
from botocore.exceptions import (
    BotoCoreError,
    ClientError,
    NoCredentialsError,
    NoRegionError,
    PartialCredentialsError,
)

from triage.extraction.extractor import ExtractionError, ExtractionUnavailable
from triage.extraction.normalizer import map_entities, map_key_phrases, map_sentiment
from triage.extraction.types import Extraction

logger = logging.getLogger(__name__)

_LANGUAGE = "en"
_CREDENTIAL_ERRORS = (NoCredentialsError, PartialCredentialsError, NoRegionError)


def get_comprehend_client(region: str | None = None) -> BaseClient:
    """Return a Comprehend client; credentials resolve through the usual AWS chain."""
    return boto3.client("comprehend", region_name=region or None)


class ComprehendExtractor:
    """Runs DetectEntities, DetectKeyPhrases and DetectSentiment concurrently.

    boto3 is blocking, so each call runs in a worker thread; the three calls
    share no state and are gathered together.
    """

    def __init__(self, region: str | None = None, client: BaseClient | None = None) -> None:
        try:
            self._client = client or get_comprehend_client(region)
        except _CREDENTIAL_ERRORS as exc:
            raise ExtractionUnavailable(f"AWS Comprehend is not configured: {exc}") from exc

    async def aclose(self) -> None:
        self._client.close()

    async def extract(self, text: str) -> Extraction:
        try:
            entities, phrases, sentiment = await asyncio.gather(
                asyncio.to_thread(self._call, "detect_entities", text),
                asyncio.to_thread(self._call, "detect_key_phrases", text),
                asyncio.to_thread(self._call, "detect_sentiment", text),
            )
        except _CREDENTIAL_ERRORS as exc:
            raise ExtractionUnavailable(
                "AWS credentials not configured; attach an IAM role or set "
                f"AWS_ACCESS_KEY_ID / AWS_SECRET_ACCESS_KEY ({exc})"
            ) from exc
        except ClientError as exc:
            code = exc.response.get("Error", {}).get("Code", "")
            if code in ("UnrecognizedClientException", "AccessDeniedException"):
                raise ExtractionUnavailable(f"AWS rejected the credentials: {exc}") from exc
            raise ExtractionError(f"Comprehend call failed: {exc}") from exc
        except BotoCoreError as exc:
            raise ExtractionError(f"Comprehend call failed: {exc}") from exc

        return Extraction(
            entities=map_entities(entities.get("Entities")),
            key_phrases=map_key_phrases(phrases.get("KeyPhrases")),
            sentiment=map_sentiment(sentiment.get("Sentiment"), sentiment.get("SentimentScore")),
        )

    def _call(self, operation: str, text: str) -> dict[str, Any]:
        method = getattr(self._client, operation)
        return method(Text=text, LanguageCode=_LANGUAGE)

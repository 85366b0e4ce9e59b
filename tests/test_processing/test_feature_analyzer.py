"""Tests for FeatureAnalyzer: per-item analysis and bounded batch extraction."""

import asyncio
from collections.abc import Callable
from datetime import datetime, timedelta

import pytest

from triage.extraction.extractor import ExtractionError, ExtractionUnavailable
from triage.extraction.types import SentimentLabel
from triage.processing.analyzer import FeatureAnalyzer
from triage.processing.fingerprint import fingerprint
from triage.processing.types import Priority, RawEmail, RawTicket


# ── Helpers ────────────────────────────────────────────────────────────────────


def make_email(t0: datetime, **kwargs: object) -> RawEmail:
    defaults: dict[str, object] = dict(
        id="e1",
        subject="Login broken",
        sender="alice@example.com",
        received_at=t0,
        body="I get an error on the password page.",
    )
    return RawEmail(**{**defaults, **kwargs})  # type: ignore[arg-type]


def make_ticket(t0: datetime, **kwargs: object) -> RawTicket:
    defaults: dict[str, object] = dict(
        id="T-1",
        title="Login failures",
        created_at=t0,
        description="Users see an error on the login page.",
        status="open",
        category="bug",
    )
    return RawTicket(**{**defaults, **kwargs})  # type: ignore[arg-type]


# ── Single items ───────────────────────────────────────────────────────────────


class TestAnalyzeEmail:
    async def test_derives_features(
        self, t0: datetime, fake_extractor: Callable, make_extraction: Callable
    ) -> None:
        features = make_extraction(
            {"login error": 0.95, "password page": 0.8}, sentiment="NEGATIVE", negative=0.8
        )
        analyzer = FeatureAnalyzer(fake_extractor({"Login broken": features}), batch_pause=0)

        result = await analyzer.analyze_email(make_email(t0, recipients=("ops@example.com",)))

        assert result.id == "e1"
        assert result.recipients == ("ops@example.com",)
        assert result.categories == {"bug"}
        assert result.suggested_priority == Priority.HIGH
        assert result.sentiment.label == SentimentLabel.NEGATIVE
        assert result.fingerprint == fingerprint("Login broken", features.key_phrases, ())
        assert 0 < result.topic_score <= 1

    async def test_document_is_subject_and_body(
        self, t0: datetime, fake_extractor: Callable
    ) -> None:
        extractor = fake_extractor()
        await FeatureAnalyzer(extractor).analyze_email(make_email(t0, body="<p>Hi there</p>"))
        assert extractor.calls == ["Login broken\n\nHi there"]

    async def test_blank_email_never_reaches_backend(
        self, t0: datetime, fake_extractor: Callable
    ) -> None:
        extractor = fake_extractor()
        result = await FeatureAnalyzer(extractor).analyze_email(
            make_email(t0, subject="", body="   ")
        )
        assert extractor.calls == []
        assert result.key_phrases == ()
        assert result.sentiment.label == SentimentLabel.NEUTRAL
        assert result.suggested_priority == Priority.LOW
        assert result.topic_score == 0.0

    async def test_failure_propagates_for_single_item(
        self, t0: datetime, fake_extractor: Callable
    ) -> None:
        analyzer = FeatureAnalyzer(fake_extractor(fail_on={"Login broken"}))
        with pytest.raises(ExtractionError):
            await analyzer.analyze_email(make_email(t0))


class TestAnalyzeTicket:
    async def test_keeps_ticket_fields_and_derives_categories(
        self, t0: datetime, fake_extractor: Callable, make_extraction: Callable
    ) -> None:
        features = make_extraction({"login failures": 0.9, "error": 0.7})
        analyzer = FeatureAnalyzer(fake_extractor({"Login failures": features}))

        result = await analyzer.analyze_ticket(make_ticket(t0))

        assert result.id == "T-1"
        assert result.category == "bug"
        assert result.is_open
        assert result.categories == {"bug"}

    @pytest.mark.parametrize(
        ("status", "is_open"),
        [("open", True), ("In-Progress", True), ("pending", True), ("new", True),
         ("closed", False), ("resolved", False)],
    )
    async def test_open_statuses(
        self, t0: datetime, fake_extractor: Callable, status: str, is_open: bool
    ) -> None:
        result = await FeatureAnalyzer(fake_extractor()).analyze_ticket(
            make_ticket(t0, status=status)
        )
        assert result.is_open is is_open


# ── Batches ────────────────────────────────────────────────────────────────────


class TestBatches:
    async def test_failed_item_is_skipped_and_reported(
        self, t0: datetime, fake_extractor: Callable
    ) -> None:
        emails = [make_email(t0, id=f"e{i}", subject=f"Subject {i}") for i in range(4)]
        analyzer = FeatureAnalyzer(fake_extractor(fail_on={"Subject 2"}), batch_pause=0)

        result = await analyzer.analyze_emails(emails)

        assert [e.id for e in result.analyzed] == ["e0", "e1", "e3"]
        assert result.failed_ids == ["e2"]

    async def test_failure_logged_with_item_id(
        self, t0: datetime, fake_extractor: Callable, caplog: pytest.LogCaptureFixture
    ) -> None:
        analyzer = FeatureAnalyzer(fake_extractor(fail_on={"Login broken"}), batch_pause=0)
        with caplog.at_level("ERROR"):
            await analyzer.analyze_emails([make_email(t0, id="bad-1")])
        assert "bad-1" in caplog.text

    async def test_unavailable_aborts_batch(self, t0: datetime, fake_extractor: Callable) -> None:
        analyzer = FeatureAnalyzer(fake_extractor(unavailable=True), batch_pause=0)
        with pytest.raises(ExtractionUnavailable):
            await analyzer.analyze_emails([make_email(t0)])

    async def test_concurrency_bounded_by_batch_size(
        self, t0: datetime, fake_extractor: Callable
    ) -> None:
        extractor = fake_extractor()
        emails = [
            make_email(t0 + timedelta(minutes=i), id=f"e{i}", subject=f"S{i}") for i in range(7)
        ]
        result = await FeatureAnalyzer(extractor, batch_size=3, batch_pause=0).analyze_emails(
            emails
        )
        assert len(result.analyzed) == 7
        assert 1 < extractor.max_in_flight <= 3

    async def test_pauses_between_chunks_only(
        self, t0: datetime, fake_extractor: Callable, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        pauses: list[float] = []
        real_sleep = asyncio.sleep

        async def fake_sleep(delay: float) -> None:
            if delay:
                pauses.append(delay)
            await real_sleep(0)

        monkeypatch.setattr("triage.processing.analyzer.asyncio.sleep", fake_sleep)
        emails = [make_email(t0, id=f"e{i}", subject=f"S{i}") for i in range(5)]
        await FeatureAnalyzer(fake_extractor(), batch_size=2, batch_pause=0.1).analyze_emails(
            emails
        )
        assert pauses == [0.1, 0.1]

    async def test_empty_batch(self, fake_extractor: Callable) -> None:
        result = await FeatureAnalyzer(fake_extractor()).analyze_tickets([])
        assert result.analyzed == []
        assert result.failed_ids == []

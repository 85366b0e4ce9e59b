"""Tests for TriageConfig.from_env()."""

from pathlib import Path

import pytest

from triage.pipeline.config import TriageConfig

_VARS = [
    "TRIAGE_BACKEND",
    "ANTHROPIC_API_KEY",
    "TRIAGE_ANTHROPIC_MODEL",
    "AWS_REGION",
    "TRIAGE_DUPLICATE_THRESHOLD",
    "TRIAGE_MATCH_THRESHOLD",
    "TRIAGE_AMBIGUITY_MARGIN",
    "TRIAGE_BATCH_SIZE",
    "TRIAGE_BATCH_PAUSE_SECONDS",
    "TRIAGE_MAX_BATCH",
    "TRIAGE_DB_PATH",
]


@pytest.fixture(autouse=True)
def clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in _VARS:
        monkeypatch.delenv(name, raising=False)


class TestTriageConfigFromEnv:
    def test_defaults(self) -> None:
        cfg = TriageConfig.from_env()
        assert cfg.backend == "anthropic"
        assert cfg.duplicate_threshold == 0.6
        assert cfg.match_threshold == 0.35
        assert cfg.ambiguity_margin == 0.15
        assert cfg.batch_size == 5
        assert cfg.batch_pause == 0.1
        assert cfg.max_batch == 500
        assert cfg.db_path == Path("data/triage.db")

    def test_reads_overrides(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("TRIAGE_BACKEND", " Comprehend ")
        monkeypatch.setenv("AWS_REGION", "eu-west-1")
        monkeypatch.setenv("TRIAGE_DUPLICATE_THRESHOLD", "0.75")
        monkeypatch.setenv("TRIAGE_BATCH_SIZE", "10")
        monkeypatch.setenv("TRIAGE_DB_PATH", "/tmp/x.db")
        cfg = TriageConfig.from_env()
        assert cfg.backend == "comprehend"
        assert cfg.aws_region == "eu-west-1"
        assert cfg.duplicate_threshold == 0.75
        assert cfg.batch_size == 10
        assert cfg.db_path == Path("/tmp/x.db")

    def test_invalid_numbers_fall_back(
        self, monkeypatch: pytest.MonkeyPatch, caplog: pytest.LogCaptureFixture
    ) -> None:
        monkeypatch.setenv("TRIAGE_MATCH_THRESHOLD", "lots")
        monkeypatch.setenv("TRIAGE_MAX_BATCH", "0")
        with caplog.at_level("WARNING"):
            cfg = TriageConfig.from_env()
        assert cfg.match_threshold == 0.35
        assert cfg.max_batch == 500
        assert "TRIAGE_MATCH_THRESHOLD" in caplog.text

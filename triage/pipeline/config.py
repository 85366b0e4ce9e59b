"""Runtime configuration: thresholds, concurrency and backend selection."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path

logger = logging.getLogger(__name__)


def _env_float(name: str, default: float) -> float:
    raw = os.environ.get(name)
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw)
    except ValueError:
        logger.warning("Invalid %s %r; defaulting to %s", name, raw, default)
        return default


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if raw is None or not raw.strip():
        return default
    try:
        value = int(raw)
    except ValueError:
        logger.warning("Invalid %s %r; defaulting to %s", name, raw, default)
        return default
    if value < 1:
        logger.warning("%s must be positive, got %d; defaulting to %s", name, value, default)
        return default
    return value


@dataclass
class TriageConfig:
    """Tunable knobs for analysis, grouping and recommendation.

    The threshold defaults are calibrated against the reference scenarios
    (reply threads from one sender group together; an email about an open bug
    ticket links to it; an unrelated email creates a new ticket).
    """

    backend: str = "anthropic"
    anthropic_api_key: str = ""
    anthropic_model: str = "claude-haiku-4-5-20251001"
    aws_region: str = "us-east-1"

    duplicate_threshold: float = 0.6
    match_threshold: float = 0.35
    ambiguity_margin: float = 0.15

    batch_size: int = 5
    batch_pause: float = 0.1
    max_batch: int = 500

    db_path: Path = field(default_factory=lambda: Path("data/triage.db"))

    @classmethod
    def from_env(cls) -> TriageConfig:
        """Build TriageConfig from environment variables."""
        return cls(
            backend=os.environ.get("TRIAGE_BACKEND", "anthropic").strip().lower(),
            anthropic_api_key=os.environ.get("ANTHROPIC_API_KEY", ""),
            anthropic_model=os.environ.get(
                "TRIAGE_ANTHROPIC_MODEL", "claude-haiku-4-5-20251001"
            ),
            aws_region=os.environ.get("AWS_REGION", "us-east-1"),
            duplicate_threshold=_env_float("TRIAGE_DUPLICATE_THRESHOLD", 0.6),
            match_threshold=_env_float("TRIAGE_MATCH_THRESHOLD", 0.35),
            ambiguity_margin=_env_float("TRIAGE_AMBIGUITY_MARGIN", 0.15),
            batch_size=_env_int("TRIAGE_BATCH_SIZE", 5),
            batch_pause=_env_float("TRIAGE_BATCH_PAUSE_SECONDS", 0.1),
            max_batch=_env_int("TRIAGE_MAX_BATCH", 500),
            db_path=Path(os.environ.get("TRIAGE_DB_PATH", "data/triage.db")),
        )

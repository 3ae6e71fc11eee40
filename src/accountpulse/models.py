"""Summary: Domain model dataclasses for AccountPulse.

Importance: Defines the core records shared across the cache, pipeline, and storage.
Alternatives: Pass raw dictionaries everywhere.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable

from accountpulse.constants import (
    LAST_RETRIEVED,
    NAME_FIELD,
    NEGATIVE,
    NEUTRAL,
    PARAMS_FIELD,
    POSITIVE,
    PROVIDER_FIELD,
    RATINGS,
)


ProviderCall = Callable[[list[Any]], Awaitable[Any]]


def now_ms() -> int:
    """Return the current wall-clock time in epoch milliseconds."""

    return int(time.time() * 1000)


@dataclass(frozen=True)
class ProviderFunction:
    """Summary: Describes one callable function exposed by a data provider.

    Importance: Tells the cache how to call a provider and how to shred its response into items.
    Alternatives: Hardcode response handling inside each provider module.
    """

    provider: str
    name: str
    func: ProviderCall
    item_key: str = "id"
    entity: str | None = None
    array_key: str | None = None
    sentiment_text_field: str | None = None
    sentiment_field: str | None = None
    text_field: str | None = None


@dataclass(frozen=True)
class InvokeInfo:
    """Summary: Records how and when an entity was last fetched.

    Importance: Drives freshness decisions and lets the load pipeline replay the last call.
    Alternatives: Track last access times on the user record.
    """

    provider: str | None = None
    name: str | None = None
    params: list[Any] = field(default_factory=list)
    last_retrieved: int | None = None

    @staticmethod
    def from_document(document: dict[str, Any] | None) -> "InvokeInfo":
        if not document:
            return InvokeInfo()
        params = document.get(PARAMS_FIELD)
        return InvokeInfo(
            provider=document.get(PROVIDER_FIELD),
            name=document.get(NAME_FIELD),
            params=list(params) if isinstance(params, (list, tuple)) else [],
            last_retrieved=document.get(LAST_RETRIEVED),
        )

    def to_document(self) -> dict[str, Any]:
        return {
            PROVIDER_FIELD: self.provider,
            NAME_FIELD: self.name,
            PARAMS_FIELD: list(self.params),
            LAST_RETRIEVED: self.last_retrieved,
        }


@dataclass(frozen=True)
class SentimentResult:
    """Summary: Score and coarse rating returned by a sentiment scorer.

    Importance: Normalizes scorer outputs that arrive as objects, pairs, or bare numbers.
    Alternatives: Store only the numeric score and derive ratings on read.
    """

    score: float
    rating: str

    @staticmethod
    def coerce(value: Any) -> "SentimentResult":
        """Summary: Build a result from a scorer's raw return value.

        Importance: Accepts `SentimentResult`, `{score, rating}`, `[score, rating]`, or a number.
        Alternatives: Require every scorer to return the dataclass.
        """

        if isinstance(value, SentimentResult):
            return value
        if isinstance(value, dict):
            score = float(value["score"])
            return SentimentResult(score=score, rating=value.get("rating") or rating_for_score(score))
        if isinstance(value, (list, tuple)) and value:
            score = float(value[0])
            rating = value[1] if len(value) > 1 else None
            return SentimentResult(score=score, rating=rating or rating_for_score(score))
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return SentimentResult(score=float(value), rating=rating_for_score(float(value)))
        raise ValueError(f"Unsupported sentiment result: {value!r}")


# scores within this distance of zero are rated neutral
NEUTRAL_BAND = 0.1

LABEL_SCORES = {POSITIVE: 0.4, NEUTRAL: 0.0, NEGATIVE: -0.4}


def rating_for_score(score: float) -> str:
    """Summary: Map a polarity score to a positive/neutral/negative rating.

    Importance: Gives every metadata record a coarse rating for snapshot counts.
    Alternatives: Let each scorer define its own thresholds.
    """

    if score > NEUTRAL_BAND:
        return POSITIVE
    if score < -NEUTRAL_BAND:
        return NEGATIVE
    return NEUTRAL


def score_for_label(label: Any) -> SentimentResult | None:
    """Summary: Convert a provider-supplied sentiment label into a result.

    Importance: Reuses classifications the provider already made instead of calling the scorer.
    Alternatives: Always score the item text.
    """

    if not isinstance(label, str):
        return None
    normalized = label.strip().lower()
    if normalized not in RATINGS:
        return None
    return SentimentResult(score=LABEL_SCORES[normalized], rating=normalized)


@dataclass
class LoadReport:
    """Summary: Counts produced by one load pipeline run.

    Importance: Makes partial failures visible in logs and tests.
    Alternatives: Log individual outcomes only.
    """

    users: int = 0
    refreshed: int = 0
    failed: int = 0
    skipped: int = 0

"""Summary: Aggregation of sentiment metadata into history snapshots.

Importance: Turns per-item sentiment into daily per-provider counts and averages.
Alternatives: Compute aggregates on read from raw metadata.
"""

from __future__ import annotations

from collections import defaultdict
from typing import Any, Iterable, Mapping

from accountpulse.constants import (
    METADATA_PROVIDER_FIELD,
    NEGATIVE,
    NEUTRAL,
    POSITIVE,
    SENTIMENT_FIELD,
    SENTIMENT_SCORE_FIELD,
)
from accountpulse.models import rating_for_score


ALL_PROVIDERS = "all"
AVERAGE_SCORE = "averageScore"
UNKNOWN_PROVIDER = "unknown"


def tally(records: Iterable[Mapping[str, Any]]) -> dict[str, Any]:
    """Summary: Count ratings and average the defined scores of a set of records.

    Importance: Records without a score do not drag the average; no scores means None.
    Alternatives: Treat missing scores as zero.
    """

    counts = {POSITIVE: 0, NEUTRAL: 0, NEGATIVE: 0}
    scores: list[float] = []
    for record in records:
        score = record.get(SENTIMENT_SCORE_FIELD)
        has_score = isinstance(score, (int, float)) and not isinstance(score, bool)
        rating = record.get(SENTIMENT_FIELD)
        if rating is None and has_score:
            rating = rating_for_score(float(score))
        if rating in counts:
            counts[rating] += 1
        if has_score:
            scores.append(float(score))
    average = sum(scores) / len(scores) if scores else None
    return {**counts, AVERAGE_SCORE: average}


def summarize(records: list[Mapping[str, Any]], timestamp: int) -> dict[str, Any]:
    """Summary: Build one history document from a user's metadata.

    Importance: Groups by the provider stamped on each record, plus an overall tally.
    Alternatives: Store one history document per provider.
    """

    by_provider: dict[str, list[Mapping[str, Any]]] = defaultdict(list)
    for record in records:
        by_provider[record.get(METADATA_PROVIDER_FIELD) or UNKNOWN_PROVIDER].append(record)
    return {
        "timestamp": timestamp,
        ALL_PROVIDERS: tally(records),
        "providers": {provider: tally(group) for provider, group in sorted(by_provider.items())},
    }

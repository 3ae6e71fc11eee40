"""Summary: Tests for sentiment scorers.

Importance: Ensures scorers return ratings on the shared score scale.
Alternatives: Use live sentiment APIs in integration tests only.
"""

from __future__ import annotations

import pytest

from accountpulse.models import SentimentResult, rating_for_score, score_for_label
from accountpulse.sentiment import (
    GoogleLanguageSentimentScorer,
    LexiconSentimentScorer,
    SentimentScorerFactory,
)


@pytest.mark.asyncio
async def test_lexicon_scorer_polarity() -> None:
    """Summary: Verify the lexicon scorer separates positive, negative, and neutral text.

    Importance: Confirms the offline default produces usable ratings.
    Alternatives: Compare against a fixed list of expected scores.
    """

    scorer = LexiconSentimentScorer()

    assert await scorer.analyze("Great food and friendly staff") == SentimentResult(0.5, "positive")
    assert await scorer.analyze("Rude waiter, cold soup") == SentimentResult(-0.5, "negative")
    assert await scorer.analyze("Open until nine") == SentimentResult(0.0, "neutral")
    assert (await scorer.analyze("good but slow")).rating == "neutral"


def test_rating_thresholds() -> None:
    assert rating_for_score(0.11) == "positive"
    assert rating_for_score(0.1) == "neutral"
    assert rating_for_score(-0.1) == "neutral"
    assert rating_for_score(-0.11) == "negative"


def test_score_for_label() -> None:
    assert score_for_label(" Negative ") == SentimentResult(-0.4, "negative")
    assert score_for_label("mixed") is None
    assert score_for_label(3) is None


@pytest.mark.asyncio
async def test_google_scorer_parses_document_sentiment(monkeypatch: pytest.MonkeyPatch) -> None:
    scorer = GoogleLanguageSentimentScorer("key", "https://language.example/analyze")
    monkeypatch.setattr(
        scorer, "_analyze_sync", lambda text: {"documentSentiment": {"score": -0.3, "magnitude": 1}}
    )

    assert await scorer.analyze("meh") == SentimentResult(-0.3, "negative")


def test_factory_selects_scorer(config_factory) -> None:
    assert isinstance(SentimentScorerFactory(config_factory()).build(), LexiconSentimentScorer)
    google = SentimentScorerFactory(
        config_factory(sentiment_provider="google", google_language_api_key="k")
    ).build()
    assert isinstance(google, GoogleLanguageSentimentScorer)
    with pytest.raises(ValueError):
        SentimentScorerFactory(config_factory(sentiment_provider="google")).build()

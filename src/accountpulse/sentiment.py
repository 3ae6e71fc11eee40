"""Summary: Sentiment scorer abstraction and implementations.

Importance: Keeps polarity scoring swappable between an offline lexicon and a cloud API.
Alternatives: Call a vendor SDK directly from the data access layer.
"""

from __future__ import annotations

import asyncio
import json
import logging
import re
import urllib.error
import urllib.parse
import urllib.request
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any

from accountpulse.config import AppConfig
from accountpulse.errors import UpstreamError
from accountpulse.models import SentimentResult, rating_for_score


logger = logging.getLogger(__name__)


class SentimentScorer(ABC):
    """Summary: Abstract interface for text polarity scoring.

    Importance: Lets the cache enrich items without knowing which engine scores them.
    Alternatives: Pass a bare callable around.
    """

    @abstractmethod
    async def analyze(self, text: str) -> Any:
        """Summary: Score a block of text.

        Importance: Returns a `SentimentResult`, a `[score, rating]` pair, or a bare number.
        Alternatives: Return a provider-specific response object.
        """


POSITIVE_WORDS = frozenset(
    {
        "amazing",
        "awesome",
        "best",
        "delicious",
        "excellent",
        "fantastic",
        "friendly",
        "good",
        "great",
        "happy",
        "helpful",
        "love",
        "loved",
        "nice",
        "perfect",
        "recommend",
        "wonderful",
    }
)

NEGATIVE_WORDS = frozenset(
    {
        "awful",
        "bad",
        "cold",
        "dirty",
        "disappointed",
        "disappointing",
        "horrible",
        "hate",
        "poor",
        "rude",
        "slow",
        "terrible",
        "worst",
        "never",
    }
)

_WORD_RE = re.compile(r"[a-z']+")


class LexiconSentimentScorer(SentimentScorer):
    """Summary: Deterministic word-list scorer.

    Importance: Enables offline workflows and repeatable tests.
    Alternatives: Ship a small local model.
    """

    async def analyze(self, text: str) -> SentimentResult:
        """Summary: Score text by counting positive and negative words.

        Importance: Produces scores on the same [-0.5, 0.5] scale as the cloud scorer.
        Alternatives: Weight words by intensity.
        """

        words = _WORD_RE.findall((text or "").lower())
        positive = sum(1 for word in words if word in POSITIVE_WORDS)
        negative = sum(1 for word in words if word in NEGATIVE_WORDS)
        if positive + negative == 0:
            return SentimentResult(score=0.0, rating=rating_for_score(0.0))
        score = round(0.5 * (positive - negative) / (positive + negative), 3)
        return SentimentResult(score=score, rating=rating_for_score(score))


class GoogleLanguageSentimentScorer(SentimentScorer):
    """Summary: Scorer backed by the Google Natural Language API.

    Importance: Matches the scorer used in production deployments.
    Alternatives: Use the google-cloud-language client library.
    """

    def __init__(self, api_key: str, url: str, timeout: float = 30) -> None:
        self._api_key = api_key
        self._url = url
        self._timeout = timeout

    async def analyze(self, text: str) -> SentimentResult:
        raw = await asyncio.to_thread(self._analyze_sync, text)
        try:
            score = float(raw["documentSentiment"]["score"])
        except (KeyError, TypeError, ValueError) as exc:
            raise UpstreamError(f"Unexpected sentiment response: {raw!r}") from exc
        return SentimentResult(score=score, rating=rating_for_score(score))

    def _analyze_sync(self, text: str) -> dict[str, Any]:
        payload = {
            "document": {"type": "PLAIN_TEXT", "content": text},
            "encodingType": "UTF8",
        }
        query = urllib.parse.urlencode({"key": self._api_key})
        request = urllib.request.Request(
            url=f"{self._url}?{query}",
            data=json.dumps(payload).encode("utf-8"),
            headers={"Content-Type": "application/json"},
            method="POST",
        )
        try:
            with urllib.request.urlopen(request, timeout=self._timeout) as response:
                return json.loads(response.read().decode("utf-8"))
        except urllib.error.URLError as exc:
            raise UpstreamError(f"Sentiment request failed: {exc}") from exc


@dataclass(frozen=True)
class SentimentScorerFactory:
    """Summary: Factory for selecting a sentiment scorer from configuration.

    Importance: Keeps scorer selection logic centralized.
    Alternatives: Wire scorers manually at the application entrypoint.
    """

    config: AppConfig

    def build(self) -> SentimentScorer:
        if self.config.sentiment_provider == "google":
            if not self.config.google_language_api_key:
                raise ValueError("GOOGLE_LANGUAGE_API_KEY is required for google sentiment")
            return GoogleLanguageSentimentScorer(
                self.config.google_language_api_key,
                self.config.google_language_url,
                timeout=self.config.provider_timeout_seconds,
            )
        if self.config.sentiment_provider != "lexicon":
            logger.warning(
                "Unknown sentiment provider %s, using lexicon", self.config.sentiment_provider
            )
        return LexiconSentimentScorer()

"""Summary: Yelp Fusion data provider.

Importance: Supplies business listings and reviews that feed sentiment enrichment.
Alternatives: Use a third-party Yelp SDK.
"""

from __future__ import annotations

import asyncio
import json
import urllib.error
import urllib.parse
import urllib.request
from typing import Any

from accountpulse.errors import UpstreamError
from accountpulse.models import ProviderFunction


PROVIDER = "yelp"
BUSINESSES_ENTITY = "yelp:businesses"


class YelpProvider:
    """Summary: Calls the Yelp Fusion REST API with a bearer key.

    Importance: Exposes `addBusiness` and `getReviews` as cacheable provider functions.
    Alternatives: Scrape public business pages.
    """

    def __init__(self, api_key: str, base_url: str, timeout: float = 30) -> None:
        self._api_key = api_key
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout

    def functions(self) -> list[ProviderFunction]:
        return [
            ProviderFunction(
                provider=PROVIDER,
                name="addBusiness",
                func=self.add_business,
                entity=BUSINESSES_ENTITY,
                array_key="businesses",
            ),
            ProviderFunction(
                provider=PROVIDER,
                name="getReviews",
                func=self.get_reviews,
                array_key="reviews",
                sentiment_text_field="text",
                text_field="text",
            ),
        ]

    async def add_business(self, params: list[Any]) -> dict[str, Any]:
        """Summary: Look up a business by phone number.

        Importance: Seeds the businesses entity for later review fetches.
        Alternatives: Search by name and location.
        """

        phone = _first_param(params, "phone")
        query = urllib.parse.urlencode({"phone": phone})
        return await asyncio.to_thread(self._get, f"/businesses/search/phone?{query}")

    async def get_reviews(self, params: list[Any]) -> dict[str, Any]:
        business_id = urllib.parse.quote(str(_first_param(params, "business id")), safe="")
        return await asyncio.to_thread(self._get, f"/businesses/{business_id}/reviews")

    def _get(self, path: str) -> dict[str, Any]:
        request = urllib.request.Request(
            f"{self._base_url}{path}",
            headers={
                "Content-Type": "application/json",
                "Authorization": f"Bearer {self._api_key}",
            },
            method="GET",
        )
        try:
            with urllib.request.urlopen(request, timeout=self._timeout) as response:
                raw = response.read().decode("utf-8")
        except urllib.error.HTTPError as exc:
            error_body = exc.read().decode("utf-8")
            raise UpstreamError(f"Yelp API request failed: {error_body or exc.reason}") from exc
        except urllib.error.URLError as exc:
            raise UpstreamError(f"Yelp API request failed: {exc}") from exc
        return json.loads(raw)


def _first_param(params: list[Any], label: str) -> Any:
    if not params or params[0] in (None, ""):
        raise UpstreamError(f"Yelp call requires a {label}")
    return params[0]

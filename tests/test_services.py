"""Summary: Tests for the profile service.

Importance: Ensures notification preferences merge into the profile section.
Alternatives: Validate profiles only through the API.
"""

from __future__ import annotations

import pytest

from accountpulse.services import ProfileService


@pytest.mark.asyncio
async def test_profile_merges_known_fields(store) -> None:
    """Summary: Verify partial updates merge and unknown fields are dropped.

    Importance: Keeps the profile section well-formed across clients.
    Alternatives: Overwrite the profile on every update.
    """

    profiles = ProfileService(store=store)

    assert await profiles.get_profile("u1") is None
    await profiles.store_profile("u1", {"notifyEmail": "a@example.com", "color": "blue"})
    profile = await profiles.store_profile("u1", {"negativeReviews": "all"})

    assert profile == {"notifyEmail": "a@example.com", "negativeReviews": "all"}
    assert await profiles.get_profile("u1") == profile

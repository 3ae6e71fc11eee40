"""Summary: User-facing services layered on the document store.

Importance: Keeps profile handling out of the HTTP and CLI layers.
Alternatives: Read and write user data sections directly in each entrypoint.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Mapping

from accountpulse.constants import PROFILE_SECTION
from accountpulse.errors import StoreError
from accountpulse.storage.document_store import DocumentStore


logger = logging.getLogger(__name__)

NOTIFY_EMAIL = "notifyEmail"
NOTIFY_SMS = "notifySMS"
NEGATIVE_REVIEWS = "negativeReviews"
ALL_REVIEWS = "all"

PROFILE_FIELDS = (NOTIFY_EMAIL, NOTIFY_SMS, NEGATIVE_REVIEWS)


@dataclass(frozen=True)
class ProfileService:
    """Summary: Stores notification preferences in the user's profile section.

    Importance: Lets users choose how they hear about negative reviews.
    Alternatives: Keep preferences in a separate table.
    """

    store: DocumentStore

    async def get_profile(self, user_id: str) -> dict[str, Any] | None:
        try:
            return await self.store.get_user_data(user_id, PROFILE_SECTION)
        except StoreError as exc:
            logger.warning("get_profile %s failed: %s", user_id, exc)
            return None

    async def store_profile(self, user_id: str, profile: Mapping[str, Any]) -> dict[str, Any] | None:
        """Summary: Merge known preference fields into the profile.

        Importance: Unknown keys are dropped so the section stays well-formed.
        Alternatives: Store whatever the client sends.
        """

        unknown = sorted(set(profile) - set(PROFILE_FIELDS))
        if unknown:
            logger.info("store_profile: ignoring fields %s", unknown)
        fields = {key: value for key, value in profile.items() if key in PROFILE_FIELDS}
        try:
            return await self.store.set_user_data(user_id, PROFILE_SECTION, fields)
        except StoreError as exc:
            logger.warning("store_profile %s failed: %s", user_id, exc)
            return None

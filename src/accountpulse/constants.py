"""Summary: Reserved names and field keys used by the document store layout.

Importance: Keeps the persisted layout identical across stores, the cache, and the pipeline.
Alternatives: Inline string literals at each call site.
"""

from __future__ import annotations

# synthetic user that owns pipeline run state
SYSTEM_INFO = "__system_info"
# reserved document name inside every entity collection
INVOKE_INFO = "__invoke_info"
HISTORY = "__history"
METADATA = "metadata"

# invocation-info fields
PROVIDER_FIELD = "provider"
NAME_FIELD = "name"
PARAMS_FIELD = "params"
LAST_RETRIEVED = "lastRetrieved"

# metadata fields spliced into item documents
METADATA_ID_FIELD = "id"
METADATA_USER_ID_FIELD = "userId"
METADATA_PROVIDER_FIELD = "provider"
METADATA_TEXT_FIELD = "text"
SENTIMENT_FIELD = "__sentiment"
SENTIMENT_SCORE_FIELD = "__sentimentScore"

# system-info sections and their fields
DATA_PIPELINE_SECTION = "dataPipeline"
LOAD_SECTION = "load"
SNAPSHOT_SECTION = "snapshot"
LAST_UPDATED_TIMESTAMP = "lastUpdatedTimestamp"
IN_PROGRESS = "inProgress"
PROFILE_SECTION = "profile"

# pipeline actions carried by transport messages
LOAD_ACTION = "load"
LEGACY_LOAD_ACTION = "invoke-load"
SNAPSHOT_ACTION = "snapshot"
LEGACY_SNAPSHOT_ACTION = "refreshHistory"

POSITIVE = "positive"
NEUTRAL = "neutral"
NEGATIVE = "negative"
RATINGS = (POSITIVE, NEUTRAL, NEGATIVE)


def metadata_collection(entity: str) -> str:
    """Summary: Build the metadata sub-collection path for an entity.

    Importance: Metadata lives under the entity's invocation-info record so it survives item rewrites.
    Alternatives: Keep metadata in a separate top-level collection per user.
    """

    return f"{entity}/{INVOKE_INFO}/{METADATA}"

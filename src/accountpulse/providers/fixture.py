"""Summary: Provider that serves canned responses from local JSON manifests.

Importance: Supports offline demos and tests without provider credentials.
Alternatives: Record and replay real HTTP traffic.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any

from accountpulse.models import ProviderFunction


logger = logging.getLogger(__name__)


class FixtureProvider:
    """Summary: Loads provider manifests from a directory of JSON files.

    Importance: Each file declares one provider, its functions, and their responses.
    Alternatives: Hardcode sample data in the class.

    A manifest looks like::

        {"provider": "demo",
         "functions": {"getPosts": {"entity": "demo:posts", "arrayKey": "posts",
                                    "sentimentTextField": "message",
                                    "responses": {"page-1": {...}},
                                    "response": {...}}}}

    `responses` is keyed by the call params joined with "|"; `response` is the fallback.
    """

    def __init__(self, fixtures_dir: Path) -> None:
        self._fixtures_dir = fixtures_dir

    def functions(self) -> list[ProviderFunction]:
        functions: list[ProviderFunction] = []
        for path in sorted(self._fixtures_dir.glob("*.json")):
            try:
                manifest = json.loads(path.read_text(encoding="utf-8"))
            except (OSError, json.JSONDecodeError) as exc:
                logger.warning("Skipping fixture manifest %s: %s", path, exc)
                continue
            functions.extend(manifest_functions(manifest))
        return functions


def manifest_functions(manifest: dict[str, Any]) -> list[ProviderFunction]:
    """Summary: Build provider descriptors from one parsed manifest.

    Importance: Lets tests register fixture providers without touching the filesystem.
    Alternatives: Require manifests on disk.
    """

    provider = manifest["provider"]
    functions = []
    for name, entry in manifest.get("functions", {}).items():
        functions.append(
            ProviderFunction(
                provider=provider,
                name=name,
                func=_responder(entry),
                item_key=entry.get("itemKey", "id"),
                entity=entry.get("entity"),
                array_key=entry.get("arrayKey"),
                sentiment_text_field=entry.get("sentimentTextField"),
                sentiment_field=entry.get("sentimentField"),
                text_field=entry.get("textField"),
            )
        )
    return functions


def _responder(entry: dict[str, Any]):
    responses = entry.get("responses", {})
    fallback = entry.get("response")

    async def respond(params: list[Any]) -> Any:
        key = "|".join(str(param) for param in params or [])
        return responses.get(key, fallback)

    return respond

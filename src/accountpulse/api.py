"""Summary: FastAPI application for AccountPulse.

Importance: Exposes the cache, metadata, history, and pipeline push endpoint over HTTP.
Alternatives: Use a CLI-only workflow or a different web framework.
"""

from __future__ import annotations

import base64
import binascii
import json
import logging
from contextlib import asynccontextmanager
from typing import Any

from fastapi import Depends, FastAPI, Header, HTTPException, Query
from pydantic import BaseModel, Field

from accountpulse.app import AppContext, build_context
from accountpulse.config import AppConfig
from accountpulse.constants import LOAD_SECTION, SNAPSHOT_SECTION
from accountpulse.models import ProviderFunction
from accountpulse.pipeline import create_data_pipeline


logger = logging.getLogger(__name__)


class MetadataRequest(BaseModel):
    """Summary: Request payload for merging metadata records.

    Importance: Each record must carry the id of the item it annotates.
    Alternatives: Accept an id-keyed mapping only.
    """

    entity: str | None = None
    records: list[dict[str, Any]] = Field(default_factory=list)


class ProfileRequest(BaseModel):
    """Summary: Request payload for notification preferences.

    Importance: Keeps profile updates explicit for API clients.
    Alternatives: Accept arbitrary JSON.
    """

    notifyEmail: str | None = None
    notifySMS: str | None = None
    negativeReviews: str | None = None


class PushEnvelope(BaseModel):
    """Summary: Push-subscription delivery of a pipeline message.

    Importance: Accepts the hosted pub/sub envelope or a bare `{action, ...}` body.
    Alternatives: Accept only one of the two shapes.
    """

    message: dict[str, Any] | None = None
    subscription: str | None = None
    action: str | None = None
    timestamp: int | None = None


def decode_push(envelope: PushEnvelope) -> dict[str, Any]:
    """Summary: Extract the action message from a push delivery.

    Importance: Hosted brokers send base64-encoded JSON under `message.data`.
    Alternatives: Require clients to post decoded JSON.
    """

    if envelope.message is None:
        return {"action": envelope.action, "timestamp": envelope.timestamp}
    data = envelope.message.get("data")
    if not data:
        return {}
    try:
        decoded = json.loads(base64.b64decode(data).decode("utf-8"))
    except (binascii.Error, UnicodeDecodeError, json.JSONDecodeError) as exc:
        logger.warning("decode_push: bad message data: %s", exc)
        return {}
    return decoded if isinstance(decoded, dict) else {}


def create_app(config: AppConfig, context: AppContext | None = None) -> FastAPI:
    """Summary: Create a FastAPI app wired to AccountPulse services.

    Importance: Ensures the API layer shares the same configuration and storage.
    Alternatives: Instantiate services globally outside the factory.
    """

    if not logging.getLogger().handlers:
        logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")
    context = context or build_context(config)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        await create_data_pipeline(
            context.pipeline, context.transport, context.scheduler, config.environment
        )
        context.transport.start()
        context.scheduler.start()
        try:
            yield
        finally:
            await context.scheduler.stop()
            await context.transport.stop()
            await context.dal.drain()

    app = FastAPI(title="AccountPulse API", version="0.1.0", lifespan=lifespan)
    app.state.context = context

    def require_api_key(x_api_key: str | None = Header(default=None)) -> None:
        """Summary: Enforce API key authentication when configured.

        Importance: Adds a minimal security layer for local and private deployments.
        Alternatives: Use OAuth or session-based authentication.
        """

        if not config.api_key:
            return
        if x_api_key != config.api_key:
            raise HTTPException(status_code=401, detail="Invalid API key")

    def resolve(provider: str, function: str) -> ProviderFunction:
        found = context.registry.get(provider, function)
        if found is None:
            raise HTTPException(status_code=404, detail=f"Unknown provider function {provider}:{function}")
        return found

    @app.get("/health")
    def health() -> dict[str, str]:
        return {"status": "ok"}

    @app.get("/providers", dependencies=[Depends(require_api_key)])
    def list_providers() -> dict[str, list[str]]:
        return {
            name: [function.name for function in context.registry.functions(name)]
            for name in context.registry.providers()
        }

    @app.get("/users/{user_id}/data/{provider}/{function}", dependencies=[Depends(require_api_key)])
    async def get_data(
        user_id: str,
        provider: str,
        function: str,
        entity: str | None = None,
        param: list[str] = Query(default=[]),
        force: bool = False,
    ) -> list[dict[str, Any]] | None:
        """Summary: Read an entity through the cache.

        Importance: The main read path for dashboards. Data that cannot be refreshed
        comes back as null with a 200, meaning no data is available.
        Alternatives: Map failures to 5xx status codes.
        """

        return await context.dal.get_data(
            user_id, resolve(provider, function), entity, param, force_refresh=force
        )

    @app.get("/users/{user_id}/metadata", dependencies=[Depends(require_api_key)])
    async def get_metadata(user_id: str) -> list[dict[str, Any]]:
        return await context.dal.get_metadata(user_id) or []

    @app.post("/users/{user_id}/metadata/{provider}/{function}", dependencies=[Depends(require_api_key)])
    async def store_metadata(
        user_id: str, provider: str, function: str, payload: MetadataRequest
    ) -> list[dict[str, Any]]:
        merged = await context.dal.store_metadata(
            user_id, resolve(provider, function), payload.entity, payload.records
        )
        if merged is None:
            raise HTTPException(status_code=400, detail="Metadata not stored")
        return merged

    @app.delete(
        "/users/{user_id}/metadata/{provider}/{function}/{item_id}",
        dependencies=[Depends(require_api_key)],
    )
    async def remove_metadata(
        user_id: str, provider: str, function: str, item_id: str, entity: str | None = None
    ) -> dict[str, bool]:
        removed = await context.dal.remove_metadata(
            user_id, resolve(provider, function), entity, item_id
        )
        if removed is None:
            raise HTTPException(status_code=400, detail="Metadata not removed")
        if not removed:
            raise HTTPException(status_code=404, detail="Metadata not found")
        return {"removed": True}

    @app.get("/users/{user_id}/items/{provider}/{function}", dependencies=[Depends(require_api_key)])
    async def list_items(
        user_id: str, provider: str, function: str, entity: str | None = None
    ) -> list[dict[str, Any]] | None:
        return await context.dal.list_items(user_id, resolve(provider, function), entity)

    @app.delete(
        "/users/{user_id}/items/{provider}/{function}/{item_id}",
        dependencies=[Depends(require_api_key)],
    )
    async def remove_item(
        user_id: str, provider: str, function: str, item_id: str, entity: str | None = None
    ) -> list[dict[str, Any]] | None:
        """Summary: Drop one item from an entity and return what remains.

        Importance: Removes a tracked business without touching its metadata.
        Alternatives: Hide items through a metadata flag.
        """

        return await context.dal.remove_item(user_id, resolve(provider, function), entity, item_id)

    @app.get("/users/{user_id}/history", dependencies=[Depends(require_api_key)])
    async def get_history(user_id: str) -> list[dict[str, Any]]:
        return await context.pipeline.get_history(user_id) or []

    @app.get("/users/{user_id}/profile", dependencies=[Depends(require_api_key)])
    async def get_profile(user_id: str) -> dict[str, Any]:
        return await context.profiles.get_profile(user_id) or {}

    @app.post("/users/{user_id}/profile", dependencies=[Depends(require_api_key)])
    async def store_profile(user_id: str, payload: ProfileRequest) -> dict[str, Any]:
        profile = await context.profiles.store_profile(
            user_id, payload.model_dump(exclude_none=True)
        )
        if profile is None:
            raise HTTPException(status_code=503, detail="Profile not stored")
        return profile

    @app.post("/invoke")
    async def invoke(envelope: PushEnvelope) -> dict[str, Any]:
        """Summary: Push-subscription endpoint for pipeline messages.

        Importance: Unknown, stale, and duplicate messages still get a 200 so the broker acks them.
        Alternatives: Return errors and let the broker redeliver.
        """

        message = decode_push(envelope)
        ran = await context.pipeline.handle_message(message)
        return {"action": message.get("action"), "ran": ran}

    @app.post("/pipeline/{section}/reset", dependencies=[Depends(require_api_key)])
    async def reset_section(section: str) -> dict[str, Any]:
        if section not in (LOAD_SECTION, SNAPSHOT_SECTION):
            raise HTTPException(status_code=404, detail="Unknown section")
        return await context.pipeline.reset_section(section)

    return app

"""Summary: API integration tests.

Importance: Validates FastAPI endpoints against the cache and pipeline workflows.
Alternatives: Use manual curl testing only.
"""

from __future__ import annotations

import base64
import json
from pathlib import Path

from fastapi.testclient import TestClient

from accountpulse.api import create_app


REPO_DATA = Path(__file__).resolve().parents[1] / "data"


def _build_client(tmp_path: Path, config_factory, **overrides) -> TestClient:
    """Summary: Build a TestClient over an isolated SQLite store.

    Importance: Uses the shipped demo fixture provider and prod wiring, so no
    background scheduler runs during tests.
    Alternatives: Inject an in-memory context.
    """

    config = config_factory(
        db_path=str(tmp_path / "test.db"),
        store_backend="sqlite",
        fixtures_dir=str(REPO_DATA),
        **overrides,
    )
    return TestClient(create_app(config))


def test_api_get_data_enriches_items(tmp_path: Path, config_factory) -> None:
    """Summary: Verify the data endpoint fetches and scores demo posts.

    Importance: Confirms the HTTP layer wires into the cache and sentiment scorer.
    Alternatives: Validate only the CLI workflow.
    """

    with _build_client(tmp_path, config_factory) as client:
        assert client.get("/health").json() == {"status": "ok"}
        response = client.get("/users/u1/data/demo/getPosts")
        assert response.status_code == 200
        ratings = {item["id"]: item["__sentiment"] for item in response.json()}
        assert ratings == {"p1": "positive", "p2": "negative", "p3": "neutral"}

        reviews = client.get(
            "/users/u1/data/demo/getReviews", params={"entity": "demo:reviews", "param": "biz-1"}
        )
        assert [item["__sentimentScore"] for item in reviews.json()] == [0.4, -0.4]

        assert client.get("/providers").json() == {"demo": ["getPosts", "getReviews"]}


def test_api_unknown_provider_and_empty_data(tmp_path: Path, config_factory) -> None:
    with _build_client(tmp_path, config_factory) as client:
        assert client.get("/users/u1/data/nope/getPosts").status_code == 404
        missing = client.get(
            "/users/u1/data/demo/getReviews", params={"entity": "demo:reviews", "param": "biz-9"}
        )
        assert missing.status_code == 200
        assert missing.json() is None


def test_api_metadata_roundtrip(tmp_path: Path, config_factory) -> None:
    with _build_client(tmp_path, config_factory) as client:
        stored = client.post(
            "/users/u1/metadata/demo/getPosts",
            json={"records": [{"id": "p1", "flag": "follow-up"}]},
        )
        assert stored.status_code == 200
        assert stored.json() == [{"id": "p1", "flag": "follow-up", "userId": "u1", "provider": "demo"}]

        assert [record["id"] for record in client.get("/users/u1/metadata").json()] == ["p1"]
        assert client.delete("/users/u1/metadata/demo/getPosts/p1").json() == {"removed": True}
        assert client.delete("/users/u1/metadata/demo/getPosts/p1").status_code == 404
        bad = client.post("/users/u1/metadata/demo/getPosts", json={"records": [{"flag": "x"}]})
        assert bad.status_code == 400


def test_api_invoke_push_runs_snapshot(tmp_path: Path, config_factory) -> None:
    """Summary: Verify a push delivery triggers the snapshot pipeline once.

    Importance: Confirms the push endpoint decodes broker envelopes.
    Alternatives: Only accept decoded JSON bodies.
    """

    with _build_client(tmp_path, config_factory) as client:
        client.get("/users/u1/data/demo/getPosts")
        data = base64.b64encode(json.dumps({"action": "snapshot"}).encode("utf-8")).decode("utf-8")
        envelope = {"message": {"data": data, "messageId": "1"}, "subscription": "sub"}

        first = client.post("/invoke", json=envelope)
        second = client.post("/invoke", json=envelope)

        assert first.json() == {"action": "snapshot", "ran": True}
        assert second.json() == {"action": "snapshot", "ran": False}
        history = client.get("/users/u1/history").json()
        assert len(history) == 1
        assert history[0]["providers"]["demo"]["positive"] == 1

        unknown = client.post("/invoke", json={"action": "reboot"})
        assert unknown.status_code == 200
        assert unknown.json()["ran"] is False


def test_api_reset_and_profile(tmp_path: Path, config_factory) -> None:
    with _build_client(tmp_path, config_factory) as client:
        assert client.post("/pipeline/load/reset").json() == {"inProgress": False}
        assert client.post("/pipeline/other/reset").status_code == 404

        saved = client.post("/users/u1/profile", json={"notifyEmail": "a@example.com"})
        assert saved.json() == {"notifyEmail": "a@example.com"}
        assert client.get("/users/u1/profile").json() == {"notifyEmail": "a@example.com"}


def test_api_key_required_when_configured(tmp_path: Path, config_factory) -> None:
    with _build_client(tmp_path, config_factory, api_key="secret") as client:
        assert client.get("/health").status_code == 200
        assert client.get("/users/u1/metadata").status_code == 401
        assert client.get("/users/u1/metadata", headers={"x-api-key": "secret"}).json() == []


def test_api_list_and_remove_items(tmp_path: Path, config_factory) -> None:
    """Summary: Verify stored items are listed and removed over HTTP.

    Importance: Removing an item returns the remaining collection.
    Alternatives: Require a refetch after each removal.
    """

    with _build_client(tmp_path, config_factory) as client:
        client.get("/users/u1/data/demo/getPosts")
        client.portal.call(client.app.state.context.dal.drain)

        listed = client.get("/users/u1/items/demo/getPosts").json()
        remaining = client.delete("/users/u1/items/demo/getPosts/p2").json()

        assert [item["id"] for item in listed] == ["p1", "p2", "p3"]
        assert [item["id"] for item in remaining] == ["p1", "p3"]
        assert client.get("/users/u1/history").json() == []

"""Summary: Tests for the command-line interface.

Importance: Ensures CLI commands drive the cache and pipeline through shared services.
Alternatives: Test the CLI manually.
"""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from accountpulse.app import build_context
from accountpulse.cli import build_parser, execute


REPO_DATA = Path(__file__).resolve().parents[1] / "data"


@pytest.mark.asyncio
async def test_cli_get_data_and_metadata(tmp_path: Path, config_factory, capsys) -> None:
    """Summary: Verify get-data, store-metadata, and list-metadata commands.

    Importance: Confirms the CLI reads through the cache and merges annotations.
    Alternatives: Call the services directly.
    """

    context = build_context(config_factory(fixtures_dir=str(REPO_DATA)))
    parser = build_parser()

    await execute(parser.parse_args(["get-data", "u1", "demo", "getPosts"]), context)
    items = json.loads(capsys.readouterr().out)
    assert [item["id"] for item in items] == ["p1", "p2", "p3"]

    records = tmp_path / "records.json"
    records.write_text(json.dumps({"p2": {"reply": "sent"}}), encoding="utf-8")
    await execute(parser.parse_args(["store-metadata", "u1", "demo", "getPosts", str(records)]), context)
    capsys.readouterr()

    await execute(parser.parse_args(["list-metadata", "u1"]), context)
    metadata = {record["id"]: record for record in json.loads(capsys.readouterr().out)}
    assert metadata["p2"]["reply"] == "sent"
    assert metadata["p2"]["__sentiment"] == "negative"


@pytest.mark.asyncio
async def test_cli_publish_runs_load_through_transport(config_factory, capsys) -> None:
    context = build_context(
        config_factory(fixtures_dir=str(REPO_DATA), environment="dev")
    )
    parser = build_parser()
    await execute(parser.parse_args(["get-data", "u1", "demo", "getPosts"]), context)
    capsys.readouterr()

    await execute(parser.parse_args(["publish", "load"]), context)

    assert "processed 1 messages" in capsys.readouterr().out
    state = await context.pipeline.section_state("load")
    assert state["inProgress"] is False


@pytest.mark.asyncio
async def test_cli_unknown_provider(config_factory) -> None:
    context = build_context(config_factory())
    with pytest.raises(ValueError):
        await execute(build_parser().parse_args(["get-data", "u1", "nope", "x"]), context)


@pytest.mark.asyncio
async def test_cli_remove_item(config_factory, capsys) -> None:
    context = build_context(config_factory(fixtures_dir=str(REPO_DATA)))
    parser = build_parser()
    await execute(parser.parse_args(["get-data", "u1", "demo", "getPosts"]), context)
    capsys.readouterr()

    await execute(parser.parse_args(["remove-item", "u1", "demo", "getPosts", "p1"]), context)
    assert [item["id"] for item in json.loads(capsys.readouterr().out)] == ["p2", "p3"]

    await execute(parser.parse_args(["list-items", "u1", "demo", "getPosts"]), context)
    assert [item["id"] for item in json.loads(capsys.readouterr().out)] == ["p2", "p3"]


@pytest.mark.asyncio
async def test_cli_publish_rejected_in_prod(config_factory) -> None:
    context = build_context(config_factory(environment="prod"))
    with pytest.raises(ValueError):
        await execute(build_parser().parse_args(["publish", "load"]), context)

"""Summary: Command-line interface for AccountPulse.

Importance: Provides a local-first entry point for cache reads and pipeline runs.
Alternatives: Drive everything through the HTTP API.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
from dataclasses import asdict
from pathlib import Path
from typing import Any

from accountpulse.app import AppContext, build_context
from accountpulse.config import AppConfig
from accountpulse.constants import LOAD_ACTION, LOAD_SECTION, SNAPSHOT_SECTION
from accountpulse.models import now_ms
from accountpulse.pipeline import SECTION_FOR_ACTION, create_data_pipeline


def build_parser() -> argparse.ArgumentParser:
    """Summary: Build the CLI argument parser.

    Importance: Defines supported commands for local operation.
    Alternatives: Use a CLI framework like Typer or Click.
    """

    parser = argparse.ArgumentParser(description="AccountPulse CLI")
    subparsers = parser.add_subparsers(dest="command", required=True)

    get_data = subparsers.add_parser("get-data", help="Read an entity through the cache")
    get_data.add_argument("user_id", type=str)
    get_data.add_argument("provider", type=str)
    get_data.add_argument("function", type=str)
    get_data.add_argument("--entity", type=str, default=None)
    get_data.add_argument("--param", dest="params", action="append", default=[])
    get_data.add_argument("--force", action="store_true")

    list_metadata = subparsers.add_parser("list-metadata", help="List metadata for a user")
    list_metadata.add_argument("user_id", type=str)

    store_metadata = subparsers.add_parser("store-metadata", help="Merge metadata from a JSON file")
    store_metadata.add_argument("user_id", type=str)
    store_metadata.add_argument("provider", type=str)
    store_metadata.add_argument("function", type=str)
    store_metadata.add_argument("path", type=str)
    store_metadata.add_argument("--entity", type=str, default=None)

    subparsers.add_parser("run-load", help="Force-refresh every cached entity now")

    run_snapshot = subparsers.add_parser("run-snapshot", help="Write history snapshots now")
    run_snapshot.add_argument("--user", type=str, default=None)

    publish = subparsers.add_parser("publish", help="Publish a pipeline action message")
    publish.add_argument("action", choices=sorted(SECTION_FOR_ACTION), default=LOAD_ACTION)

    list_items = subparsers.add_parser("list-items", help="List stored items without a provider call")
    list_items.add_argument("user_id", type=str)
    list_items.add_argument("provider", type=str)
    list_items.add_argument("function", type=str)
    list_items.add_argument("--entity", type=str, default=None)

    remove_item = subparsers.add_parser("remove-item", help="Remove one item from an entity")
    remove_item.add_argument("user_id", type=str)
    remove_item.add_argument("provider", type=str)
    remove_item.add_argument("function", type=str)
    remove_item.add_argument("item_id", type=str)
    remove_item.add_argument("--entity", type=str, default=None)

    reset = subparsers.add_parser("reset-section", help="Clear a stuck in-progress flag")
    reset.add_argument("section", choices=[LOAD_SECTION, SNAPSHOT_SECTION])

    history = subparsers.add_parser("history", help="List history snapshots for a user")
    history.add_argument("user_id", type=str)
    return parser


def run_cli(argv: list[str] | None = None) -> None:
    """Summary: Execute CLI commands based on arguments.

    Importance: Drives the cache and pipeline without a server.
    Alternatives: Invoke services via an HTTP API.
    """

    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")
    parser = build_parser()
    args = parser.parse_args(argv)
    context = build_context(AppConfig.from_env())
    asyncio.run(execute(args, context))


async def execute(args: argparse.Namespace, context: AppContext) -> None:
    if args.command in ("get-data", "store-metadata", "list-items", "remove-item"):
        provider = context.registry.get(args.provider, args.function)
        if provider is None:
            raise ValueError(f"Unknown provider function {args.provider}:{args.function}")

    if args.command == "get-data":
        data = await context.dal.get_data(
            args.user_id, provider, args.entity, args.params, force_refresh=args.force
        )
        await context.dal.drain()
        _print_json(data)
        return

    if args.command == "list-metadata":
        _print_json(await context.dal.get_metadata(args.user_id))
        return

    if args.command == "store-metadata":
        records = json.loads(Path(args.path).read_text(encoding="utf-8"))
        _print_json(await context.dal.store_metadata(args.user_id, provider, args.entity, records))
        return

    if args.command == "list-items":
        _print_json(await context.dal.list_items(args.user_id, provider, args.entity))
        return

    if args.command == "remove-item":
        _print_json(
            await context.dal.remove_item(args.user_id, provider, args.entity, args.item_id)
        )
        return

    if args.command == "run-load":
        report = await context.pipeline.run_load()
        await context.dal.drain()
        _print_json(asdict(report))
        return

    if args.command == "run-snapshot":
        _print_json(await context.pipeline.refresh_history(args.user))
        return

    if args.command == "publish":
        if context.config.environment == "prod":
            raise ValueError("publish needs a dev environment; prod delivers through POST /invoke")
        names = await create_data_pipeline(
            context.pipeline, context.transport, None, context.config.environment
        )
        delivered = context.transport.publish(
            names["topicName"], {"action": args.action, "timestamp": now_ms()}
        )
        processed = 0
        for subscription in context.transport.subscriptions(names["topicName"]):
            processed += await subscription.pull()
        await context.dal.drain()
        print(f"Delivered to {delivered} subscriptions, processed {processed} messages.")
        return

    if args.command == "reset-section":
        _print_json(await context.pipeline.reset_section(args.section))
        return

    if args.command == "history":
        _print_json(await context.pipeline.get_history(args.user_id))
        return


def _print_json(value: Any) -> None:
    print(json.dumps(value, indent=2, default=str))


if __name__ == "__main__":
    run_cli()

"""CLI entrypoint for querymap."""

from __future__ import annotations

import argparse
import asyncio
import json

from querymap.logging_config import setup_logging
from querymap.models import IntentResult, RenderOutcome


def main() -> None:
    setup_logging()

    parser = argparse.ArgumentParser(prog="querymap")
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("serve")

    parse_parser = sub.add_parser("parse")
    parse_parser.add_argument("text")

    render_parser = sub.add_parser("render")
    render_parser.add_argument("text")
    render_parser.add_argument("--geojson", action="store_true", help="Print the map sources as well")

    try_parser = sub.add_parser("try")
    try_parser.add_argument("text", nargs="?")

    history_parser = sub.add_parser("history")
    history_parser.add_argument("--limit", type=int, default=None)
    history_parser.add_argument("--clear", action="store_true")

    args = parser.parse_args()

    if args.command == "serve":
        _serve()
    elif args.command == "parse":
        asyncio.run(_parse_once(args.text))
    elif args.command == "render":
        asyncio.run(_render_once(args.text, args.geojson))
    elif args.command == "try":
        _try_mode(args.text)
    elif args.command == "history":
        _history(args.limit, args.clear)


def _serve() -> None:
    import uvicorn

    from querymap.config import get_settings

    settings = get_settings()
    uvicorn.run(
        "querymap.api:app",
        host=settings.api.host,
        port=settings.api.port,
        reload=(settings.env == "development"),
        log_level=settings.log_level.lower(),
    )


async def _parse_once(text: str) -> None:
    from querymap.pipeline import get_pipeline

    result = await get_pipeline().process(text)
    print(json.dumps(result.model_dump(mode="json", by_alias=True), ensure_ascii=False, indent=2))


async def _render_once(text: str, with_geojson: bool) -> None:
    from querymap.pipeline import get_pipeline
    from querymap.visualize import GeoJSONMap, VisualizationDispatcher

    result = await get_pipeline().process(text)
    map_handle = GeoJSONMap()
    outcome = await VisualizationDispatcher().apply(result, map_handle)
    _print_cli_result(text, result, outcome)
    if with_geojson:
        print(json.dumps(map_handle.to_dict(), ensure_ascii=False, indent=2))


def _try_mode(initial_text: str | None) -> None:
    from querymap.context import SessionContext
    from querymap.history import SearchHistory
    from querymap.pipeline import get_pipeline
    from querymap.visualize import GeoJSONMap, VisualizationDispatcher

    pipeline = get_pipeline()
    dispatcher = VisualizationDispatcher()
    history = SearchHistory()
    session = SessionContext.create()

    async def run_once(text: str) -> None:
        result = await pipeline.process_with_context(text, session)
        outcome = await dispatcher.apply(result, GeoJSONMap())
        history.add(text)
        _print_cli_result(text, result, outcome)

    if initial_text:
        asyncio.run(run_once(initial_text))
        return

    print("QueryMap Interactive")
    print("Type a place query; follow-ups like 'and Chicago' extend the last one.")
    print("Type 'reset' to start over, 'quit' to exit.")

    while True:
        text = input("query> ").strip()
        if not text:
            continue
        if text.lower() in {"quit", "exit", "q"}:
            break
        if text.lower() == "reset":
            session.reset()
            print("Conversation reset.")
            continue
        asyncio.run(run_once(text))


def _history(limit: int | None, clear: bool) -> None:
    from querymap.history import SearchHistory

    history = SearchHistory()
    if clear:
        history.clear()
        print("Search history cleared.")
        return
    queries = history.recent(limit)
    if not queries:
        print("(no recent searches)")
        return
    for i, q in enumerate(queries, 1):
        print(f"{i:>3}. {q}")


def _print_cli_result(text: str, result: IntentResult, outcome: RenderOutcome) -> None:
    print("\n" + "-" * 72)
    print(f"Query: {text}")
    print(f"Intent: {result.intent_type.value} ({result.visualization_type.value})")
    print(f"Source: {result.source.value} / {result.matched_rule}")
    if result.travel_mode:
        print(f"Travel mode: {result.travel_mode.value}")
    if result.preferences:
        print(f"Preferences: {', '.join(result.preferences)}")
    if result.message:
        print(f"Message: {result.message}")
    if result.needs_clarification and result.clarification:
        print(f"Clarify: {result.clarification.message}")
        if result.clarification.alternatives:
            print(f"   Alternatives: {', '.join(result.clarification.alternatives)}")
        if result.clarification.options:
            print(f"   Options: {', '.join(result.clarification.options)}")

    print(f"Render: {outcome.mode.value}" + (f" ({outcome.line_color})" if outcome.line_color else ""))
    if outcome.message:
        print(f"   {outcome.message}")

    if not outcome.rendered:
        print("(nothing rendered)")
        return
    for i, loc in enumerate(outcome.rendered, 1):
        lon, lat = loc.coordinates
        print(f"\n{i}. {loc.name}")
        print(f"   Coords:      {lat:.4f}, {lon:.4f}")
        print(f"   Entity type: {loc.entity_type.value}")
        if loc.time_context:
            print(f"   Time:        {loc.time_context}")
    if outcome.dropped:
        print(f"\nNot found: {', '.join(outcome.dropped)}")


if __name__ == "__main__":
    main()

"""Command line interface for OutingPlanner."""

from __future__ import annotations

import argparse
import json
import sys
from typing import Any, Sequence

from pydantic import ValidationError

from outingplanner.contracts import RequestIdentity
from outingplanner.itinerary_text import render_payload_text
from outingplanner.places_tool import TYPE_ALIASES, PlacesClient, PlacesToolError
from outingplanner.plan_normalizer import normalize_json
from outingplanner.plan_source import PlanSourceClient, PlanSourceError
from outingplanner.settings import Settings, load_env_file
from outingplanner.stop_resolver import StopResolver


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="outingplanner",
        description="Normalize generated outing plans and plot their stops.",
    )
    subparsers = parser.add_subparsers(dest="command")

    normalize_parser = subparsers.add_parser(
        "normalize",
        help="Print the normalized plans payload as JSON.",
    )
    normalize_parser.add_argument("file", nargs="?", help="Raw plans JSON file (stdin if omitted).")

    text_parser = subparsers.add_parser(
        "text",
        help="Print the itinerary text view of every plan.",
    )
    text_parser.add_argument("file", nargs="?", help="Raw plans JSON file (stdin if omitted).")

    resolve_parser = subparsers.add_parser(
        "resolve",
        help="Geocode the stops of one plan and print map pins.",
    )
    resolve_parser.add_argument("file", nargs="?", help="Raw plans JSON file (stdin if omitted).")
    resolve_parser.add_argument(
        "--plan-index",
        type=int,
        default=0,
        help="Index of the plan to resolve (default: 0).",
    )

    recommend_parser = subparsers.add_parser(
        "recommend",
        help="Print nearby recommendations for a city.",
    )
    recommend_parser.add_argument("city", help="City to search around.")
    recommend_parser.add_argument(
        "--type",
        dest="types",
        action="append",
        choices=sorted(TYPE_ALIASES),
        help="Recommendation tab; repeat for several (default: all).",
    )
    recommend_parser.add_argument("--limit", type=int, default=10, help="Results per type (max 50).")

    plans_parser = subparsers.add_parser(
        "plans",
        help="Fetch and normalize the generated plans of an outing.",
    )
    plans_parser.add_argument("outing_id", type=int, help="Outing identifier.")
    plans_parser.add_argument("--email", required=True, help="Email of the requesting member.")
    plans_parser.add_argument("--text", action="store_true", help="Print the itinerary text view instead of JSON.")
    return parser


def load_settings() -> Settings:
    load_env_file(".env")
    return Settings.from_env()


# Lookups stop short of the resolver timeout so partial hits still arrive in time.
_BATCH_BUDGET_SHARE = 0.8


def build_places_client(settings: Settings) -> PlacesClient:
    return PlacesClient(
        settings.places_api_key,
        timeout_seconds=settings.http_timeout_seconds,
        batch_timeout_seconds=settings.resolve_timeout_seconds * _BATCH_BUDGET_SHARE,
    )


def build_plan_source(settings: Settings) -> PlanSourceClient:
    return PlanSourceClient(settings.api_base, timeout_seconds=settings.http_timeout_seconds)


def read_source(path: str | None) -> str:
    if path is None or path == "-":
        return sys.stdin.read()
    with open(path, encoding="utf-8") as handle:
        return handle.read()


def run_resolve(source: str, plan_index: int, settings: Settings) -> list[dict[str, Any]]:
    payload = normalize_json(source)
    if not 0 <= plan_index < len(payload.plans):
        raise IndexError(f"Plan index {plan_index} out of range ({len(payload.plans)} plan(s)).")
    resolver = StopResolver(
        build_places_client(settings),
        max_stops=settings.max_stops,
        timeout_seconds=settings.resolve_timeout_seconds,
    )
    pins = resolver.resolve(payload.plans[plan_index])
    return [pin.model_dump(mode="json", by_alias=True) for pin in pins]


def main(argv: Sequence[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command == "normalize":
        payload = normalize_json(read_source(args.file))
        print(json.dumps(payload.model_dump(mode="json", by_alias=True), ensure_ascii=True))
        return 0

    if args.command == "text":
        print(render_payload_text(normalize_json(read_source(args.file))))
        return 0

    if args.command == "resolve":
        try:
            pins = run_resolve(read_source(args.file), args.plan_index, load_settings())
        except IndexError as exc:
            print(str(exc), file=sys.stderr)
            return 2
        print(json.dumps(pins, ensure_ascii=True))
        return 0

    if args.command == "recommend":
        settings = load_settings()
        try:
            result = build_places_client(settings).recommend(args.city, args.types, limit=args.limit)
        except PlacesToolError as exc:
            print(str(exc), file=sys.stderr)
            return 1
        print(json.dumps(result.model_dump(mode="json", by_alias=True), ensure_ascii=True))
        return 0

    if args.command == "plans":
        try:
            identity = RequestIdentity(email=args.email)
        except ValidationError:
            print(f"Invalid email: {args.email!r}", file=sys.stderr)
            return 2
        try:
            payload = build_plan_source(load_settings()).load_plans(args.outing_id, identity)
        except PlanSourceError as exc:
            print(str(exc), file=sys.stderr)
            return 2
        if args.text:
            print(render_payload_text(payload))
        else:
            print(json.dumps(payload.model_dump(mode="json", by_alias=True), ensure_ascii=True))
        return 0

    parser.print_help()
    return 0

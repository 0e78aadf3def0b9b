"""
Bunda CLI entrypoint.

This CLI is intended for local maintenance and debugging without the HTTP API:
creating the schema, trying geocoder lookups, running a proximity search and
backfilling missing coordinates.
"""

from __future__ import annotations

import argparse
import json
from typing import Any

from bunda.config.settings import get_settings
from bunda.core.geo import GeoPoint
from bunda.core.logging import configure_logging
from bunda.domain.models import Pagination, PropertyFilters
from bunda.geocoding.backfill import update_missing_coordinates
from bunda.geocoding.gateway import build_gateway
from bunda.search.proximity import search_in_radius, search_near_address
from bunda.storage.db import build_engine, build_session_factory, init_db, session_scope


def _print_json(payload: Any) -> None:
    print(json.dumps(payload, ensure_ascii=False, indent=2))


def _cmd_init_db(args: argparse.Namespace) -> int:
    settings = get_settings()
    engine = build_engine(settings, url=args.database_url)
    init_db(engine)
    print(f"Schema ready at {engine.url.render_as_string(hide_password=True)}")
    return 0


def _cmd_geocode(args: argparse.Namespace) -> int:
    gateway = build_gateway(get_settings())
    results = gateway.batch_geocode(args.address)
    _print_json([r.model_dump(mode="json") for r in results])
    return 0 if all(r.ok for r in results) else 1


def _cmd_reverse(args: argparse.Namespace) -> int:
    gateway = build_gateway(get_settings())
    result = gateway.reverse_geocode(float(args.lat), float(args.lon))
    _print_json(result.model_dump(mode="json"))
    return 0 if result.ok else 1


def _cmd_suggest(args: argparse.Namespace) -> int:
    gateway = build_gateway(get_settings())
    for s in gateway.address_suggestions(args.text, args.limit):
        print(f"{s.lat:.5f},{s.lon:.5f}  {s.text}")
    return 0


def _cmd_search(args: argparse.Namespace) -> int:
    """Handle the `search` subcommand."""
    settings = get_settings()
    if (args.lat is None or args.lon is None) and not args.address:
        raise SystemExit("search: give --lat and --lon, or --address")

    filters = PropertyFilters(
        status=args.status,
        min_price=args.min_price,
        max_price=args.max_price,
        min_bedrooms=args.min_bedrooms,
    )
    pagination = Pagination(page=int(args.page), page_size=int(args.page_size))
    sessions = build_session_factory(build_engine(settings))

    with session_scope(sessions) as session:
        if args.lat is not None and args.lon is not None:
            center = GeoPoint(lat=float(args.lat), lon=float(args.lon))
            result = search_in_radius(session, center, args.radius, filters, pagination, settings=settings)
        else:
            gateway = build_gateway(settings)
            result = search_near_address(
                session, gateway, args.address, args.radius, filters, pagination, settings=settings
            )

    if args.json:
        _print_json(result.model_dump(mode="json"))
        return 0

    print(f"{result.total_count} properties (page {result.page}/{max(result.total_pages, 1)})")
    for i, item in enumerate(result.items, start=1 + (result.page - 1) * result.page_size):
        dist = f"{item.distance:6.2f} km" if item.distance is not None else "      -  "
        print(f"{i:>3}. {dist}  EUR {item.price:>10,.0f}  {item.title} ({item.postal_code} {item.city})")
    return 0


def _cmd_backfill(args: argparse.Namespace) -> int:
    settings = get_settings()
    if args.batch_size is not None:
        settings = settings.model_copy(
            update={"backfill": settings.backfill.model_copy(update={"batch_size": int(args.batch_size)})}
        )
    sessions = build_session_factory(build_engine(settings))
    gateway = build_gateway(settings)
    with session_scope(sessions) as session:
        report = update_missing_coordinates(session, gateway, settings=settings)
    _print_json(report.as_dict())
    return 0


def build_parser() -> argparse.ArgumentParser:
    """Build the argparse parser for the Bunda CLI."""
    parser = argparse.ArgumentParser(prog="bunda")
    parser.add_argument("--log-level", type=str, default=None, help="Override app.log_level")
    sub = parser.add_subparsers(dest="command", required=True)

    init = sub.add_parser("init-db", help="Create missing database tables.")
    init.add_argument("--database-url", type=str, default=None, help="Override database.url")
    init.set_defaults(func=_cmd_init_db)

    geo = sub.add_parser("geocode", help="Geocode one or more addresses.")
    geo.add_argument("address", nargs="+", help='e.g. "Wetstraat 16, 1000 Brussel"')
    geo.set_defaults(func=_cmd_geocode)

    rev = sub.add_parser("reverse", help="Reverse geocode a coordinate.")
    rev.add_argument("--lat", required=True, type=float)
    rev.add_argument("--lon", required=True, type=float)
    rev.set_defaults(func=_cmd_reverse)

    sug = sub.add_parser("suggest", help="Address autocomplete for a partial input.")
    sug.add_argument("text")
    sug.add_argument("--limit", type=int, default=None)
    sug.set_defaults(func=_cmd_suggest)

    s = sub.add_parser("search", help="Find properties around a point or an address.")
    s.add_argument("--lat", type=float, default=None)
    s.add_argument("--lon", type=float, default=None)
    s.add_argument("--address", type=str, default=None)
    s.add_argument("--radius", type=float, default=None, help="km; clamped to search.max_radius_km")
    s.add_argument("--status", choices=["available", "sold", "pending"], default=None)
    s.add_argument("--min-price", type=float, default=None)
    s.add_argument("--max-price", type=float, default=None)
    s.add_argument("--min-bedrooms", type=int, default=None)
    s.add_argument("--page", type=int, default=1)
    s.add_argument("--page-size", type=int, default=10)
    s.add_argument("--json", action="store_true", help="Output machine-readable JSON")
    s.set_defaults(func=_cmd_search)

    bf = sub.add_parser("backfill", help="Geocode one batch of properties without coordinates.")
    bf.add_argument("--batch-size", type=int, default=None)
    bf.set_defaults(func=_cmd_backfill)
    return parser


def main(argv: list[str] | None = None) -> int:
    """CLI entrypoint callable used by `python -m bunda.cli`."""
    parser = build_parser()
    args = parser.parse_args(argv)
    configure_logging(args.log_level)
    func: Any = getattr(args, "func")
    return int(func(args))


if __name__ == "__main__":
    raise SystemExit(main())

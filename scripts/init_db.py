#!/usr/bin/env python3
"""
Create the stock ledger tables (and optionally seed locations).

Usage:
  python -m scripts.init_db
  python -m scripts.init_db --db-url postgresql://... --location WH1:Main warehouse:warehouse
"""

from __future__ import annotations

import argparse
import sys
from pathlib import Path

from stock_config import load_settings
from stock_kernel.db.engine import (
    create_tables,
    drop_tables,
    get_session_factory,
    init_engine_from_url,
    session_scope,
)
from stock_kernel.logging_config import configure_logging
from stock_kernel.models.location import LocationType
from stock_kernel.services.location_service import LocationService


def _location(value: str) -> tuple[str, str, LocationType]:
    parts = value.split(":")
    if len(parts) != 3:
        raise argparse.ArgumentTypeError(f"expected CODE:NAME:TYPE, got {value!r}")
    code, name, kind = parts
    try:
        return code, name, LocationType(kind)
    except ValueError:
        raise argparse.ArgumentTypeError(f"unknown location type {kind!r}") from None


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Create stock ledger tables.")
    parser.add_argument("--config", type=Path, default=None, help="Settings YAML.")
    parser.add_argument("--db-url", default=None, help="Database URL; overrides the configured one.")
    parser.add_argument(
        "--drop",
        action="store_true",
        help="Drop existing tables first.  Destroys all data.",
    )
    parser.add_argument(
        "--location",
        type=_location,
        action="append",
        default=[],
        help="Seed a location as CODE:NAME:TYPE (repeatable).",
    )
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    args = _parse_args(argv)
    settings = load_settings(args.config)

    configure_logging(level=settings.log_level_number)
    engine = init_engine_from_url(args.db_url or settings.database.url, **settings.database.engine_kwargs())

    if args.drop:
        drop_tables(engine)
    create_tables(engine)
    print(f"Tables ready on {engine.url.render_as_string(hide_password=True)}")

    if args.location:
        with session_scope(get_session_factory()) as session:
            service = LocationService(session)
            for code, name, kind in args.location:
                location_id = service.create(code, name, kind)
                print(f"  location {code}: {location_id}")
    return 0


if __name__ == "__main__":
    sys.exit(main())

#!/usr/bin/env python3
"""
Attribute the backlog of unprocessed sales and losses to batches (FIFO).

Each pending consumption event is processed in its own transaction.  A run
that fails part-way leaves the remaining events unprocessed; running again
picks them up.

Usage:
  python -m scripts.run_attribution
  python -m scripts.run_attribution --limit 500 --db-url postgresql://...
  python -m scripts.run_attribution --config settings.yaml

Prints a JSON summary and exits 1 when any event failed.
"""

from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path

from stock_config import load_settings
from stock_kernel.db.engine import get_session_factory, init_engine_from_url
from stock_kernel.db.immutability import register_immutability_listeners
from stock_kernel.logging_config import configure_logging
from stock_services.attribution_runner import AttributionRunner


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Run FIFO attribution over unprocessed consumption events.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Settings YAML (default: STOCK_LEDGER_CONFIG env or packaged defaults).",
    )
    parser.add_argument(
        "--db-url",
        default=None,
        help="Database URL; overrides the configured one.",
    )
    parser.add_argument(
        "--limit",
        type=int,
        default=None,
        help="Process at most this many events (default: attribution.batch_limit).",
    )
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    args = _parse_args(argv)
    settings = load_settings(args.config)

    configure_logging(level=settings.log_level_number)
    register_immutability_listeners()
    init_engine_from_url(args.db_url or settings.database.url, **settings.database.engine_kwargs())

    runner = AttributionRunner(
        get_session_factory(),
        batch_limit=settings.attribution.batch_limit,
    )
    summary = runner.run(limit=args.limit)

    print(json.dumps(summary.to_dict(), indent=2))
    return 0 if summary.failed_count == 0 else 1


if __name__ == "__main__":
    sys.exit(main())

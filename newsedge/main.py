"""NewsEdge — CLI entrypoint.

Run one pipeline stage and print its JSON result::

    python -m newsedge.main --ingest
    python -m newsedge.main --outcomes --date 2026-01-15
    python -m newsedge.main --summary --days 7
    python -m newsedge.main --reset-cursor --clear-events
    python -m newsedge.main --server
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from typing import Any

from newsedge import __version__, factory
from newsedge.config import get_settings
from newsedge.utils import is_valid_date_str, setup_logging, yesterday_utc

logger = logging.getLogger("newsedge")


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="newsedge",
        description="NewsEdge: news-driven signal generation and evaluation",
    )
    group = parser.add_argument_group("commands")
    group.add_argument("--ingest", action="store_true", help="Run one news ingestion pass")
    group.add_argument("--outcomes", action="store_true", help="Compute outcomes for one day of signals")
    group.add_argument("--summary", action="store_true", help="Print the signal telemetry summary")
    group.add_argument("--reset-cursor", action="store_true", help="Reset the numeric news cursor")
    group.add_argument("--server", action="store_true", help="Run the FastAPI server")

    parser.add_argument("--date", help="YYYY-MM-DD (default: yesterday UTC)")
    parser.add_argument("--days", type=int, default=1, help="Days to aggregate for --summary (1-14)")
    parser.add_argument("--clear-events", action="store_true", help="With --reset-cursor: also clear events and today's counter")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    return parser


def _emit(payload: Any) -> None:
    print(json.dumps(payload, indent=2, default=str))


async def _amain(args: argparse.Namespace) -> int:
    settings = get_settings()

    if args.server:
        import uvicorn
        from newsedge.api.app import create_app

        config = uvicorn.Config(
            create_app(),
            host=settings.api_host,
            port=settings.api_port,
            log_level=settings.log_level.lower(),
        )
        await uvicorn.Server(config).serve()
        return 0

    if args.date and not is_valid_date_str(args.date):
        logger.error("Invalid date format. Use YYYY-MM-DD")
        return 2

    store = factory.get_store()
    try:
        if args.ingest:
            if not settings.classifier_configured:
                logger.error("CLASSIFIER_API_KEY is not configured")
                return 1
            result = await factory.build_gateway(store, settings).ingest()
            _emit(result.to_dict())
        elif args.outcomes:
            _emit(await factory.build_outcome_cron(store, settings).run_for_date(args.date))
        elif args.summary:
            from newsedge.telemetry.summary import signal_summary
            _emit(await signal_summary(store, args.date or yesterday_utc(), args.days))
        elif args.reset_cursor:
            gateway = factory.build_gateway(store, settings)
            _emit({"ok": True, "actions": await gateway.reset_cursor(clear_events=args.clear_events)})
        else:
            _build_parser().print_help(sys.stderr)
            return 2
    finally:
        await factory.close_store()
    return 0


def main() -> None:
    parser = _build_parser()
    args = parser.parse_args()

    settings = get_settings()
    setup_logging(settings.log_level)

    try:
        code = asyncio.run(_amain(args))
    except KeyboardInterrupt:
        logger.info("Interrupted, shutting down")
        code = 130
    sys.exit(code)


if __name__ == "__main__":
    main()

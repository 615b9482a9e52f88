"""Command-line entry point: init storage, run a scrape, search, stats."""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from dataclasses import asdict
from typing import Sequence

from config.settings import settings
from core.models import ScrapeTarget
from scrapers.runner import build_repository, ensure_storage, run_scrape

log = logging.getLogger(__name__)


def positive_int(value: str) -> int:
    try:
        parsed = int(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"Expected a positive integer, got: {value}") from None
    if parsed <= 0:
        raise argparse.ArgumentTypeError(f"Expected a positive integer, got: {value}")
    return parsed


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="forum-ingest",
        description="Ingest subreddit posts and comments into raw and document storage.",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("init", help="Ensure database schema and raw object bucket")

    scrape = sub.add_parser("scrape", help="Scrape a subreddit into storage")
    scrape.add_argument("--subreddit", required=True, help="Subreddit name without r/")
    scrape.add_argument("--limit", type=positive_int, default=100, help="Max submissions")
    scrape.add_argument(
        "--include-comments",
        action=argparse.BooleanOptionalAction,
        default=True,
        help="Fetch comments for each submission",
    )
    scrape.add_argument(
        "--max-comments-per-post",
        type=positive_int,
        default=100,
        help="Maximum comments captured per submission",
    )

    search = sub.add_parser("search", help="Keyword search over indexed documents")
    search.add_argument("query")
    search.add_argument("--limit", type=positive_int, default=20)

    sub.add_parser("stats", help="Document and item counts")
    return parser


async def _run(args: argparse.Namespace) -> dict:
    await ensure_storage()

    if args.command == "init":
        return {"status": "init_complete"}
    if args.command == "scrape":
        target = ScrapeTarget(
            subreddit=args.subreddit,
            limit=args.limit,
            include_comments=args.include_comments,
            max_comments_per_post=args.max_comments_per_post,
        )
        summary = await run_scrape(target)
        return summary.to_dict()
    if args.command == "search":
        hits = await build_repository().search_by_keyword(args.query, args.limit)
        return {"query": args.query, "count": len(hits), "hits": [asdict(h) for h in hits]}
    return await build_repository().get_stats()


def main(argv: Sequence[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=getattr(logging, settings.LOG_LEVEL),
        format="%(asctime)s  %(levelname)-8s  %(name)s  %(message)s",
        stream=sys.stderr,
    )
    try:
        result = asyncio.run(_run(args))
    except Exception as exc:
        log.error("Command %s failed: %s", args.command, exc)
        return 1
    print(json.dumps(result, indent=2, default=str))
    return 0


if __name__ == "__main__":
    sys.exit(main())

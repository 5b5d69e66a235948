"""
Command line interface handling for the guest review service.

Subcommands:
  serve       Run the HTTP API (uvicorn)
  sync        Ingest Hostaway reviews (live or fallback dataset)
  list        Query reviews with filters, sorting and paging
  approve     Approve (or with --revoke, unapprove) a review
  categories  Per-listing category averages
  issues      Keyword frequencies over approved reviews
  stats       Show store statistics
  export      Write the canonical collection to a JSON file
"""

import argparse
from pathlib import Path

from guest_reviews.config import DEFAULT_CONFIG_PATH
from guest_reviews.query import SortOrder


def _str_to_bool(value: str) -> bool:
    """Parse boolean string for argparse (type=bool is broken)."""
    if value.lower() in ("true", "1", "yes", "on"):
        return True
    if value.lower() in ("false", "0", "no", "off"):
        return False
    raise argparse.ArgumentTypeError(f"Boolean value expected, got '{value}'")


def _add_common_args(parser: argparse.ArgumentParser) -> None:
    """Add common arguments shared across subcommands."""
    parser.add_argument(
        "--config", type=str, default=None,
        help="path to custom configuration file",
    )
    parser.add_argument(
        "--store-path", type=str, default=None,
        help="path to the JSON review store (default: reviews_db.json)",
    )


def _add_filter_args(parser: argparse.ArgumentParser) -> None:
    """Filters shared by 'list' and 'categories'."""
    parser.add_argument("--listing", type=str, default=None,
                        help="listing name substring (case-insensitive)")
    parser.add_argument("--rating-min", type=float, default=None,
                        help="minimum overall rating")
    parser.add_argument("--channel", type=str, default=None,
                        help="channel name (case-insensitive)")
    parser.add_argument("--from", dest="date_from", type=str, default=None,
                        help="inclusive lower bound on submission time")
    parser.add_argument("--to", dest="date_to", type=str, default=None,
                        help="inclusive upper bound on submission time")
    parser.add_argument("--approved", type=_str_to_bool, default=None,
                        help="filter on approval flag (true/false)")


def _build_parsers(sub: argparse._SubParsersAction) -> None:
    # serve
    sp = sub.add_parser("serve", help="Run the HTTP API server")
    _add_common_args(sp)
    sp.add_argument("--host", type=str, default=None, help="bind address")
    sp.add_argument("--port", type=int, default=None, help="listen port")
    sp.add_argument("--reload", action="store_true", help="auto-reload on code changes")

    # sync
    sp = sub.add_parser("sync", help="Ingest Hostaway reviews into the store")
    _add_common_args(sp)

    # list
    sp = sub.add_parser("list", help="Query reviews")
    _add_common_args(sp)
    _add_filter_args(sp)
    sp.add_argument("--sort", choices=[s.value for s in SortOrder], default=None,
                    help="result ordering")
    sp.add_argument("--page", type=int, default=None, help="1-indexed page number")
    sp.add_argument("--page-size", type=int, default=None, help="items per page (max 200)")

    # approve
    sp = sub.add_parser("approve", help="Approve a review for public display")
    _add_common_args(sp)
    sp.add_argument("identity", help="internal review id or Hostaway review id")
    sp.add_argument("--revoke", action="store_true", help="unapprove instead")

    # categories
    sp = sub.add_parser("categories", help="Per-listing category averages")
    _add_common_args(sp)
    _add_filter_args(sp)

    # issues
    sp = sub.add_parser("issues", help="Keyword frequencies over approved reviews")
    _add_common_args(sp)
    sp.add_argument("--limit", type=int, default=50, help="number of words (default: 50)")

    # stats
    sp = sub.add_parser("stats", help="Show store statistics")
    _add_common_args(sp)

    # export
    sp = sub.add_parser("export", help="Write reviews to a JSON file")
    _add_common_args(sp)
    _add_filter_args(sp)
    sp.add_argument("-o", "--output", type=str, default="reviews_export.json",
                    help="output file (default: reviews_export.json)")


def build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(
        description="Guest review ingestion, query and moderation",
    )
    sub = ap.add_subparsers(dest="command")
    _build_parsers(sub)
    _add_common_args(ap)
    return ap


def parse_arguments(argv=None):
    """Parse command line arguments with subcommands."""
    args = build_parser().parse_args(argv)

    # Default to serving the API if no subcommand
    if args.command is None:
        args.command = "serve"

    if getattr(args, "config", None) is not None:
        args.config = Path(args.config)
    else:
        args.config = DEFAULT_CONFIG_PATH

    return args

#!/usr/bin/env python3
"""
Guest Reviews
=============

Main entry point: API server plus ingestion, query and moderation commands.
"""

import json
import sys

from guest_reviews.cli import parse_arguments
from guest_reviews.config import load_config


def _get_store_path(config, args):
    """Resolve store path from CLI args or config."""
    if getattr(args, "store_path", None):
        return args.store_path
    return config.get("store_path", "reviews_db.json")


def _open_store(config, args):
    from guest_reviews.review_store import ReviewStore
    return ReviewStore(_get_store_path(config, args)).initialize()


def _filters_from_args(args):
    from guest_reviews.query import FilterSpec
    return FilterSpec.from_params(
        listing=getattr(args, "listing", None),
        rating_min=getattr(args, "rating_min", None),
        channel=getattr(args, "channel", None),
        date_from=getattr(args, "date_from", None),
        date_to=getattr(args, "date_to", None),
        approved=getattr(args, "approved", None),
    )


def _print_json(data):
    print(json.dumps(data, ensure_ascii=False, indent=2))


def _run_serve(config, args):
    """Run the serve command."""
    import uvicorn
    from api_server import create_app

    if getattr(args, "store_path", None):
        config["store_path"] = args.store_path
    api = config.get("api", {})
    host = getattr(args, "host", None) or api.get("host", "0.0.0.0")
    port = getattr(args, "port", None) or api.get("port", 4000)

    if getattr(args, "reload", False):
        # reload needs an import string; the factory re-reads config.yaml
        uvicorn.run("api_server:create_app", factory=True, host=host, port=port, reload=True)
    else:
        uvicorn.run(create_app(config), host=host, port=port)


def _run_sync(config, args):
    """Run the sync command."""
    from guest_reviews.ingestion import Ingestor

    store = _open_store(config, args)
    ingestor = Ingestor.from_config(store, config)
    try:
        result = ingestor.ingest()
    finally:
        if ingestor.client is not None:
            ingestor.client.close()
    print(f"Source:     {result.source}")
    print(f"Normalized: {len(result.normalized)}")
    print(f"Added:      {result.added}")
    print(f"Stored:     {len(store)}")
    return result


def _run_list(config, args):
    """Run the list command."""
    from guest_reviews.query import QuerySpec, SortOrder, query

    store = _open_store(config, args)
    sort = getattr(args, "sort", None)
    query_cfg = config.get("query", {})
    result = query(store.load_all(), QuerySpec(
        filters=_filters_from_args(args),
        sort=SortOrder(sort) if sort else None,
        page=getattr(args, "page", None),
        page_size=getattr(args, "page_size", None),
        default_page_size=query_cfg.get("default_page_size", 50),
        max_page_size=query_cfg.get("max_page_size", 200),
    ))
    _print_json(result.to_dict())
    return result


def _run_approve(config, args):
    """Run the approve command."""
    from guest_reviews.errors import NotFoundError

    store = _open_store(config, args)
    approved = not getattr(args, "revoke", False)
    try:
        review = store.set_approved(args.identity, approved)
    except NotFoundError:
        print(f"Error: review '{args.identity}' not found")
        sys.exit(1)
    state = "approved" if review.approved else "unapproved"
    print(f"Review {review.id} (Hostaway id {review.source_id}) {state}")
    return review


def _run_categories(config, args):
    """Run the categories command."""
    from guest_reviews.categories import category_aggregate

    store = _open_store(config, args)
    items = category_aggregate(store.load_all(), _filters_from_args(args))
    _print_json({"totalListings": len(items), "items": items})
    return items


def _run_issues(config, args):
    """Run the issues command."""
    from guest_reviews.keywords import extract_keywords

    store = _open_store(config, args)
    items = extract_keywords(store.load_all(), limit=getattr(args, "limit", 50))
    if not items:
        print("No approved reviews with text yet.")
    for entry in items:
        print(f"  {entry['count']:>4}  {entry['word']}")
    return items


def _run_stats(config, args):
    """Run the stats command."""
    store = _open_store(config, args)
    stats = store.get_stats()
    print("Review Store Statistics")
    print("=" * 40)
    print(f"  Store:     {stats['store_path']}")
    print(f"  Reviews:   {stats['total']}")
    print(f"  Approved:  {stats['approved']}")
    print(f"  Listings:  {stats['listings']}")
    print(f"  Channels:  {', '.join(stats['channels']) or '-'}")
    size_bytes = stats["store_size_bytes"]
    if size_bytes > 1024 * 1024:
        print(f"  Size:      {size_bytes / (1024*1024):.1f} MB")
    else:
        print(f"  Size:      {size_bytes / 1024:.1f} KB")
    return stats


def _run_export(config, args):
    """Run the export command."""
    from pathlib import Path
    from guest_reviews.query import apply_filters

    store = _open_store(config, args)
    reviews = apply_filters(store.load_all(), _filters_from_args(args))
    output = Path(getattr(args, "output", None) or "reviews_export.json")
    output.write_text(
        json.dumps({"reviews": [r.to_dict() for r in reviews]}, ensure_ascii=False, indent=2),
        encoding="utf-8",
    )
    print(f"Exported {len(reviews)} reviews to {output}")
    return len(reviews)


_COMMANDS = {
    "serve": _run_serve,
    "sync": _run_sync,
    "list": _run_list,
    "approve": _run_approve,
    "categories": _run_categories,
    "issues": _run_issues,
    "stats": _run_stats,
    "export": _run_export,
}


def main():
    args = parse_arguments()
    config = load_config(args.config)

    from guest_reviews.log_manager import setup_logging_from_config
    setup_logging_from_config(config)

    from guest_reviews.errors import ValidationError
    try:
        _COMMANDS[args.command](config, args)
    except ValidationError as e:
        print(f"Error: {e}")
        sys.exit(2)


if __name__ == "__main__":
    main()

"""
Timestamp helpers shared by the canonicalizer and the query filters.

Hostaway reports submission times as "YYYY-MM-DD HH:MM:SS" without a zone;
those are read as UTC. Output is always ISO-8601 UTC with millisecond
precision and a trailing "Z", e.g. "2020-08-21T22:45:14.000Z".
"""

from datetime import datetime, timezone
from typing import Optional


def parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    """Parse a legacy or ISO timestamp into an aware UTC datetime.

    Returns None when *value* is empty or unparseable.
    """
    if not isinstance(value, str):
        return None
    text = value.strip()
    if not text:
        return None

    # "2020-08-21 22:45:14" -> "2020-08-21T22:45:14"
    text = text.replace(" ", "T", 1)
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"

    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None

    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    try:
        return parsed.astimezone(timezone.utc)
    except OverflowError:
        # offset pushes the instant outside year 1..9999
        return None


def format_timestamp(moment: datetime) -> str:
    """Format a datetime as ISO-8601 UTC with milliseconds."""
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    moment = moment.astimezone(timezone.utc)
    return f"{moment:%Y-%m-%dT%H:%M:%S}.{moment.microsecond // 1000:03d}Z"


def utc_now() -> datetime:
    return datetime.now(timezone.utc)

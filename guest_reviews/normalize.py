"""
Canonicalization of upstream Hostaway review records.

canonicalize() is total: any RawReview (or raw dict) yields a valid
CanonicalReview. Missing overall ratings are derived from category
sub-ratings; unparseable timestamps fall back to the current time.
"""

import logging
import math
import secrets
import string
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence, Union

from guest_reviews.models import CanonicalReview, CategoryRating, RawReview
from guest_reviews.timeutil import format_timestamp, parse_timestamp, utc_now

log = logging.getLogger("reviews")

DEFAULT_CHANNEL = "hostaway"

_ID_ALPHABET = string.ascii_letters + string.digits
_ID_LENGTH = 16  # 62**16 ~ 4.8e28 possible ids


def generate_id(length: int = _ID_LENGTH) -> str:
    """Random alphanumeric id from a CSPRNG."""
    return "".join(secrets.choice(_ID_ALPHABET) for _ in range(length))


def round_half_away_from_zero(value: float) -> int:
    """Round to the nearest integer, ties away from zero (8.5 -> 9, -8.5 -> -9).

    Python's round() uses banker's rounding (8.5 -> 8), so go through Decimal.
    """
    return int(Decimal(str(value)).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def derive_rating(raw_rating: Optional[float],
                  categories: Sequence[CategoryRating]) -> Optional[float]:
    """Overall rating: upstream value if present, else rounded mean of sub-ratings."""
    if raw_rating is not None:
        return raw_rating
    if not categories:
        return None
    mean = sum(c.rating or 0 for c in categories) / len(categories)
    if not math.isfinite(mean):
        return None
    return round_half_away_from_zero(mean)


def canonicalize(raw: Union[RawReview, Dict[str, Any]],
                 default_channel: str = DEFAULT_CHANNEL,
                 clock: Callable = utc_now,
                 id_factory: Callable[[], str] = generate_id) -> CanonicalReview:
    """Map one upstream record to a CanonicalReview. Never raises for bad data."""
    if not isinstance(raw, RawReview):
        raw = RawReview.from_dict(raw if isinstance(raw, dict) else {})

    submitted = parse_timestamp(raw.submitted_at)
    if submitted is None:
        log.debug("Unparseable submittedAt %r for source id %r, using current time",
                  raw.submitted_at, raw.id)
        submitted = clock()

    return CanonicalReview(
        id=id_factory(),
        source_id=raw.id,
        type=raw.type,
        status=raw.status,
        rating=derive_rating(raw.rating, raw.review_category),
        categories=tuple(raw.review_category),
        text=raw.public_review,
        submitted_at=format_timestamp(submitted),
        guest_name=raw.guest_name,
        listing_name=raw.listing_name,
        channel=raw.channel or default_channel,
        approved=False,
    )


def canonicalize_batch(records: Iterable[Any],
                       default_channel: str = DEFAULT_CHANNEL,
                       clock: Callable = utc_now) -> List[CanonicalReview]:
    """Canonicalize a batch, preserving input order."""
    return [canonicalize(r, default_channel=default_channel, clock=clock) for r in records]

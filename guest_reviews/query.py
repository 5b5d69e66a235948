"""
Filtering, sorting, pagination and per-listing aggregation over the
in-memory review collection.

Every call recomputes from the full snapshot it is given; there is no
index or cached aggregate.
"""

import math
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional, Sequence

from guest_reviews.errors import ValidationError
from guest_reviews.models import CanonicalReview
from guest_reviews.timeutil import parse_timestamp

DEFAULT_PAGE_SIZE = 50
MAX_PAGE_SIZE = 200
UNKNOWN_LISTING = "Unknown"

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


class SortOrder(str, Enum):
    """Supported result orderings."""
    DATE_DESC = "date_desc"
    DATE_ASC = "date_asc"
    RATING_DESC = "rating_desc"
    RATING_ASC = "rating_asc"


@dataclass
class FilterSpec:
    """AND-combined filter predicates. None means "no constraint"."""
    listing: Optional[str] = None
    rating_min: Optional[float] = None
    channel: Optional[str] = None
    date_from: Optional[datetime] = None
    date_to: Optional[datetime] = None
    approved: Optional[bool] = None

    @classmethod
    def from_params(cls, listing: Optional[str] = None, rating_min: Any = None,
                    channel: Optional[str] = None, date_from: Optional[str] = None,
                    date_to: Optional[str] = None,
                    approved: Optional[bool] = None) -> "FilterSpec":
        """Build from raw request parameters, raising ValidationError on bad values."""
        if rating_min is not None and rating_min != "":
            try:
                rating_min = float(rating_min)
            except (TypeError, ValueError):
                raise ValidationError(f"ratingMin must be a number, got {rating_min!r}")
            if not math.isfinite(rating_min):
                raise ValidationError(f"ratingMin must be finite, got {rating_min!r}")
        else:
            rating_min = None

        return cls(
            listing=listing or None,
            rating_min=rating_min,
            channel=channel or None,
            date_from=_parse_bound("from", date_from),
            date_to=_parse_bound("to", date_to),
            approved=approved,
        )


@dataclass
class QuerySpec:
    filters: FilterSpec = field(default_factory=FilterSpec)
    sort: Optional[SortOrder] = None
    page: Optional[int] = None
    page_size: Optional[int] = None
    default_page_size: int = DEFAULT_PAGE_SIZE
    max_page_size: int = MAX_PAGE_SIZE


@dataclass
class ListingAggregate:
    listing: str
    avg_rating: float = 0.0
    count: int = 0

    def add(self, rating: Optional[float]) -> None:
        # Online mean; a missing rating counts as 0.
        self.count += 1
        self.avg_rating += ((rating or 0) - self.avg_rating) / self.count

    def to_dict(self) -> Dict[str, Any]:
        return {"listing": self.listing, "avgRating": self.avg_rating, "count": self.count}


@dataclass
class QueryResult:
    items: List[CanonicalReview]
    total: int
    page: int
    page_size: int
    aggregations: List[ListingAggregate]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total": self.total,
            "page": self.page,
            "pageSize": self.page_size,
            "items": [r.to_dict() for r in self.items],
            "aggregations": [a.to_dict() for a in self.aggregations],
        }


def _parse_bound(name: str, value: Optional[str]) -> Optional[datetime]:
    if value is None or value == "":
        return None
    parsed = parse_timestamp(value)
    if parsed is None:
        raise ValidationError(f"'{name}' is not a valid date/time: {value!r}")
    return parsed


def listing_label(review: CanonicalReview) -> str:
    return review.listing_name or UNKNOWN_LISTING


def _submitted(review: CanonicalReview) -> Optional[datetime]:
    return parse_timestamp(review.submitted_at)


def matches(review: CanonicalReview, spec: FilterSpec) -> bool:
    """True if *review* satisfies every predicate set on *spec*."""
    if spec.listing and spec.listing.lower() not in (review.listing_name or "").lower():
        return False
    if spec.rating_min is not None and (review.rating or 0) < spec.rating_min:
        return False
    if spec.channel and (review.channel or "").lower() != spec.channel.lower():
        return False
    if spec.date_from is not None or spec.date_to is not None:
        submitted = _submitted(review)
        if submitted is None:
            return False
        if spec.date_from is not None and submitted < spec.date_from:
            return False
        if spec.date_to is not None and submitted > spec.date_to:
            return False
    if spec.approved is not None and review.approved != spec.approved:
        return False
    return True


def apply_filters(reviews: Iterable[CanonicalReview], spec: FilterSpec) -> List[CanonicalReview]:
    return [r for r in reviews if matches(r, spec)]


def sort_reviews(reviews: Sequence[CanonicalReview],
                 order: Optional[SortOrder]) -> List[CanonicalReview]:
    """Stable sort; None keeps input order."""
    if order is None:
        return list(reviews)
    order = SortOrder(order)
    if order is SortOrder.RATING_DESC:
        # unrated reviews last
        return sorted(reviews, key=lambda r: (r.rating is not None, r.rating or 0), reverse=True)
    if order is SortOrder.RATING_ASC:
        return sorted(reviews, key=lambda r: (r.rating is None, r.rating or 0))
    return sorted(reviews, key=lambda r: _submitted(r) or _EPOCH,
                  reverse=order is SortOrder.DATE_DESC)


def clamp_page(page: Optional[int], page_size: Optional[int],
               default_size: int = DEFAULT_PAGE_SIZE,
               max_size: int = MAX_PAGE_SIZE) -> tuple:
    """Return (page, page_size): page >= 1, page_size in [1, max_size]."""
    page = max(page or 1, 1)
    if page_size is None:
        page_size = default_size
    page_size = min(max(page_size, 1), max_size)
    return page, page_size


def paginate(items: Sequence[Any], page: Optional[int], page_size: Optional[int],
             default_size: int = DEFAULT_PAGE_SIZE,
             max_size: int = MAX_PAGE_SIZE) -> tuple:
    """Slice one page out of *items*. Returns (page_items, page, page_size)."""
    page, page_size = clamp_page(page, page_size, default_size, max_size)
    start = (page - 1) * page_size
    return list(items[start:start + page_size]), page, page_size


def aggregate_by_listing(reviews: Iterable[CanonicalReview]) -> List[ListingAggregate]:
    """Average rating and count per listing, in first-seen order."""
    groups: Dict[str, ListingAggregate] = {}
    for review in reviews:
        key = listing_label(review)
        if key not in groups:
            groups[key] = ListingAggregate(listing=key)
        groups[key].add(review.rating)
    return list(groups.values())


def query(reviews: Iterable[CanonicalReview], spec: QuerySpec) -> QueryResult:
    """Filter, sort, aggregate, then paginate."""
    filtered = apply_filters(reviews, spec.filters)
    ordered = sort_reviews(filtered, spec.sort)
    aggregations = aggregate_by_listing(ordered)
    page_items, page, page_size = paginate(
        ordered, spec.page, spec.page_size, spec.default_page_size, spec.max_page_size,
    )
    return QueryResult(
        items=page_items,
        total=len(ordered),
        page=page,
        page_size=page_size,
        aggregations=aggregations,
    )


def public_view(reviews: Iterable[CanonicalReview], listing: Optional[str] = None,
                page: Optional[int] = None, page_size: Optional[int] = None,
                default_page_size: int = DEFAULT_PAGE_SIZE,
                max_page_size: int = MAX_PAGE_SIZE) -> Dict[str, Any]:
    """Approved reviews only, projected to the public field set."""
    result = query(reviews, QuerySpec(
        filters=FilterSpec(listing=listing or None, approved=True),
        page=page, page_size=page_size,
        default_page_size=default_page_size, max_page_size=max_page_size,
    ))
    return {
        "total": result.total,
        "page": result.page,
        "pageSize": result.page_size,
        "items": [r.to_public_dict() for r in result.items],
    }

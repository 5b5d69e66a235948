"""
Per-listing, per-category average of review sub-ratings.
"""

from typing import Any, Dict, Iterable, List, Optional

from guest_reviews.models import CanonicalReview
from guest_reviews.query import FilterSpec, apply_filters, listing_label


def category_aggregate(reviews: Iterable[CanonicalReview],
                       spec: Optional[FilterSpec] = None) -> List[Dict[str, Any]]:
    """Group filtered reviews by listing then category; average with sum/count.

    Listings appear in first-occurrence order. A listing whose reviews carry
    no sub-ratings is still reported, with an empty category list.
    """
    filtered = apply_filters(reviews, spec or FilterSpec())

    # listing -> category -> [sum, count]
    totals: Dict[str, Dict[str, List[float]]] = {}
    for review in filtered:
        cats = totals.setdefault(listing_label(review), {})
        for entry in review.categories:
            acc = cats.setdefault(entry.category, [0.0, 0])
            acc[0] += entry.rating or 0
            acc[1] += 1

    return [
        {
            "listing": listing,
            "categories": [
                {"category": category, "avgRating": s / n if n else 0, "count": n}
                for category, (s, n) in cats.items()
            ],
        }
        for listing, cats in totals.items()
    ]

"""
Review data models.

RawReview is the untrusted upstream shape (Hostaway review records).
CanonicalReview is the normalized record persisted by the store and served
by the API. Both serialize to the camelCase keys used on the wire.
"""

import math
from dataclasses import dataclass, field
from typing import Dict, Any, List, Optional


def _as_number(value: Any) -> Optional[float]:
    """Return *value* if it is a finite real number (bools excluded), else None."""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    try:
        if not math.isfinite(value):
            return None
    except OverflowError:
        # ints too large for a float
        return None
    return value


def _as_source_id(value: Any) -> Any:
    """Upstream ids are ints or strings; anything else is dropped."""
    if isinstance(value, bool) or not isinstance(value, (int, str)):
        return None
    return value


def _as_text(value: Any) -> Optional[str]:
    return value if isinstance(value, str) else None


@dataclass(frozen=True)
class CategoryRating:
    """A named facet score, e.g. cleanliness or communication."""
    category: str
    rating: Optional[float] = None

    def to_dict(self) -> Dict[str, Any]:
        return {"category": self.category, "rating": self.rating}

    @classmethod
    def from_dict(cls, data: Any) -> Optional["CategoryRating"]:
        if not isinstance(data, dict) or data.get("category") is None:
            return None
        return cls(category=str(data["category"]), rating=_as_number(data.get("rating")))


def _parse_categories(values: Any) -> List[CategoryRating]:
    if not isinstance(values, list):
        return []
    parsed = (CategoryRating.from_dict(v) for v in values)
    return [c for c in parsed if c is not None]


@dataclass
class RawReview:
    """Upstream review record. Every field is optional."""
    id: Any = None
    type: Optional[str] = None
    status: Optional[str] = None
    rating: Optional[float] = None
    public_review: Optional[str] = None
    review_category: List[CategoryRating] = field(default_factory=list)
    submitted_at: Optional[str] = None
    guest_name: Optional[str] = None
    listing_name: Optional[str] = None
    channel: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "RawReview":
        """Build from a Hostaway JSON record, dropping ill-typed values."""
        return cls(
            id=_as_source_id(data.get("id")),
            type=_as_text(data.get("type")),
            status=_as_text(data.get("status")),
            rating=_as_number(data.get("rating")),
            public_review=_as_text(data.get("publicReview")),
            review_category=_parse_categories(data.get("reviewCategory")),
            submitted_at=_as_text(data.get("submittedAt")),
            guest_name=_as_text(data.get("guestName")),
            listing_name=_as_text(data.get("listingName")),
            channel=_as_text(data.get("channel")),
        )


@dataclass(frozen=True)
class CanonicalReview:
    """Normalized review. Frozen: approval changes produce a new instance."""
    id: str
    source_id: Any
    type: Optional[str]
    status: Optional[str]
    rating: Optional[float]
    categories: tuple
    text: Optional[str]
    submitted_at: str
    guest_name: Optional[str] = None
    listing_name: Optional[str] = None
    channel: Optional[str] = None
    approved: bool = False

    def to_dict(self) -> Dict[str, Any]:
        """Convert to the camelCase document used for storage and JSON responses."""
        return {
            "id": self.id,
            "sourceId": self.source_id,
            "type": self.type,
            "status": self.status,
            "rating": self.rating,
            "categories": [c.to_dict() for c in self.categories],
            "text": self.text,
            "submittedAt": self.submitted_at,
            "guestName": self.guest_name,
            "listingName": self.listing_name,
            "channel": self.channel,
            "approved": self.approved,
        }

    def to_public_dict(self) -> Dict[str, Any]:
        """Reduced field set for the public review feed."""
        return {
            "id": self.id,
            "rating": self.rating,
            "text": self.text,
            "submittedAt": self.submitted_at,
            "guestName": self.guest_name,
            "listingName": self.listing_name,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CanonicalReview":
        return cls(
            id=str(data["id"]),
            source_id=_as_source_id(data.get("sourceId")),
            type=data.get("type"),
            status=data.get("status"),
            rating=_as_number(data.get("rating")),
            categories=tuple(_parse_categories(data.get("categories"))),
            text=data.get("text"),
            submitted_at=data.get("submittedAt") or "",
            guest_name=data.get("guestName"),
            listing_name=data.get("listingName"),
            channel=data.get("channel"),
            approved=bool(data.get("approved", False)),
        )


__all__ = ["CategoryRating", "RawReview", "CanonicalReview"]

"""
JSON-document review store.

The whole collection lives in memory as an immutable tuple snapshot and is
mirrored to one JSON document ({"reviews": [...]}) rewritten wholesale on
every mutation. Writes go to a temp file and are moved into place with
os.replace, so the document on disk is always complete.

Mutations are copy-on-write under a lock: a new tuple is built, persisted,
and only then swapped in. Readers grab the current tuple without locking
and see either the old or the new collection, never a half-applied one.
"""

import json
import logging
import os
import shutil
import tempfile
import threading
from dataclasses import dataclass, replace
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Iterable, Optional, Tuple

from guest_reviews.errors import NotFoundError, PersistenceError
from guest_reviews.models import CanonicalReview

log = logging.getLogger("reviews")


@dataclass(frozen=True)
class Resolution:
    """Outcome of an id/sourceId lookup."""
    review: Optional[CanonicalReview] = None
    index: int = -1
    matched_on: Optional[str] = None  # "id" or "sourceId"

    @property
    def found(self) -> bool:
        return self.review is not None


NOT_FOUND = Resolution()


class ReviewStore:
    """Holds the canonical review collection and its durable JSON mirror."""

    def __init__(self, path: str = "reviews_db.json"):
        self.path = Path(path)
        self._reviews: Tuple[CanonicalReview, ...] = ()
        self._lock = threading.Lock()
        self._initialized = False

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def initialize(self) -> "ReviewStore":
        """Load the persisted document, creating an empty one if absent."""
        with self._lock:
            if self._initialized:
                return self
            if self.path.exists():
                self._reviews = self._read_document()
                log.info("Loaded %d reviews from %s", len(self._reviews), self.path)
            else:
                self._write_document(())
                log.info("Created empty review store at %s", self.path)
            self._initialized = True
        return self

    def _ensure_initialized(self) -> None:
        if not self._initialized:
            self.initialize()

    def _read_document(self) -> Tuple[CanonicalReview, ...]:
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
            rows = data.get("reviews", []) if isinstance(data, dict) else []
            return tuple(CanonicalReview.from_dict(r) for r in rows)
        except (json.JSONDecodeError, UnicodeDecodeError, KeyError, TypeError, AttributeError):
            backup = self.path.with_suffix(
                f".corrupt.{datetime.now().strftime('%Y%m%d_%H%M%S')}.json"
            )
            shutil.copy2(self.path, backup)
            log.warning(
                "Corrupt review store backed up to %s, starting with empty data", backup
            )
            return ()

    def _write_document(self, reviews: Tuple[CanonicalReview, ...]) -> None:
        payload = json.dumps(
            {"reviews": [r.to_dict() for r in reviews]},
            ensure_ascii=False, indent=2,
        )
        tmp_name = None
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(
                prefix=f".{self.path.name}.", suffix=".tmp", dir=str(self.path.parent)
            )
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(payload)
            os.replace(tmp_name, self.path)
        except OSError as e:
            if tmp_name and os.path.exists(tmp_name):
                os.unlink(tmp_name)
            log.error("Failed to persist review store to %s: %s", self.path, e)
            raise PersistenceError(f"Could not write {self.path}: {e}") from e

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def load_all(self) -> Tuple[CanonicalReview, ...]:
        """Current snapshot of the full collection."""
        self._ensure_initialized()
        return self._reviews

    def __len__(self) -> int:
        return len(self.load_all())

    def resolve(self, key: Any) -> Resolution:
        """Find a review by internal id, then by sourceId compared as strings."""
        return self._resolve_in(self.load_all(), str(key))

    @staticmethod
    def _resolve_in(reviews: Tuple[CanonicalReview, ...], key: str) -> Resolution:
        for i, review in enumerate(reviews):
            if review.id == key:
                return Resolution(review=review, index=i, matched_on="id")
        for i, review in enumerate(reviews):
            if review.source_id is not None and str(review.source_id) == key:
                return Resolution(review=review, index=i, matched_on="sourceId")
        return NOT_FOUND

    def get_stats(self) -> Dict[str, Any]:
        """Collection counts for the stats endpoint and CLI."""
        reviews = self.load_all()
        listings = {r.listing_name or "Unknown" for r in reviews}
        channels = {r.channel for r in reviews if r.channel}
        size = self.path.stat().st_size if self.path.exists() else 0
        return {
            "total": len(reviews),
            "approved": sum(1 for r in reviews if r.approved),
            "listings": len(listings),
            "channels": sorted(channels),
            "store_path": str(self.path),
            "store_size_bytes": size,
        }

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def merge_insert(self, batch: Iterable[CanonicalReview]) -> int:
        """Insert reviews whose sourceId is not present yet. Returns count added.

        Duplicates within *batch* keep the first occurrence. Nothing is
        written when no review was added.
        """
        self._ensure_initialized()
        with self._lock:
            seen = {r.source_id for r in self._reviews}
            added = []
            for review in batch:
                if review.source_id in seen:
                    continue
                seen.add(review.source_id)
                added.append(review)

            if not added:
                log.debug("merge_insert: no new reviews")
                return 0

            updated = self._reviews + tuple(added)
            self._write_document(updated)
            self._reviews = updated

        log.info("Inserted %d new reviews (collection size %d)", len(added), len(updated),
                 extra={"added": len(added), "total": len(updated), "store_path": str(self.path)})
        return len(added)

    def set_approved(self, key: Any, approved: bool) -> CanonicalReview:
        """Flip the approval flag of the review matching *key* and persist."""
        self._ensure_initialized()
        with self._lock:
            resolution = self._resolve_in(self._reviews, str(key))
            if not resolution.found:
                raise NotFoundError(f"review not found: {key}")

            review = replace(resolution.review, approved=bool(approved))
            updated = list(self._reviews)
            updated[resolution.index] = review
            updated = tuple(updated)
            self._write_document(updated)
            self._reviews = updated

        log.info("Review %s (source %s) approved=%s", review.id, review.source_id, review.approved,
                 extra={"review_id": review.id, "source_id": review.source_id,
                        "approved": review.approved})
        return review

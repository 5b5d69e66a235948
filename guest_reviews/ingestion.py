"""
Ingestion: fetch -> canonicalize -> merge-insert -> persist.

Live Hostaway data is used when the API returns a usable batch; otherwise
the bundled fallback dataset is ingested instead. Re-running ingestion on
the same upstream data adds nothing and writes nothing.
"""

import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional

from guest_reviews.hostaway_client import HostawayClient, extract_records
from guest_reviews.models import CanonicalReview
from guest_reviews.normalize import DEFAULT_CHANNEL, canonicalize_batch
from guest_reviews.review_store import ReviewStore

log = logging.getLogger("reviews")

BUNDLED_FALLBACK_PATH = Path(__file__).parent / "data" / "fallback_reviews.json"

SOURCE_LIVE = "live"
SOURCE_FALLBACK = "fallback"


@dataclass
class IngestResult:
    added: int
    normalized: List[CanonicalReview]
    source: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "added": self.added,
            "source": self.source,
            "total": len(self.normalized),
            "items": [r.to_dict() for r in self.normalized],
        }


def load_fallback_dataset(path: Optional[Path] = None) -> List[Dict[str, Any]]:
    """Raw records of the static dataset (Hostaway envelope on disk)."""
    path = Path(path) if path else BUNDLED_FALLBACK_PATH
    payload = json.loads(path.read_text(encoding="utf-8"))
    records = extract_records(payload)
    if records is None:
        raise ValueError(f"Fallback dataset {path} has no review records")
    return records


class Ingestor:
    """Coordinates one ingestion run against a store."""

    def __init__(self, store: ReviewStore, client: Optional[HostawayClient] = None,
                 fallback_path: Optional[Path] = None,
                 default_channel: str = DEFAULT_CHANNEL):
        self.store = store
        self.client = client
        self.fallback_path = fallback_path
        self.default_channel = default_channel

    @classmethod
    def from_config(cls, store: ReviewStore, config: Dict[str, Any]) -> "Ingestor":
        return cls(
            store,
            client=HostawayClient(config),
            fallback_path=config.get("fallback_path"),
            default_channel=config.get("default_channel") or DEFAULT_CHANNEL,
        )

    def _fetch_live(self) -> Optional[List[Dict[str, Any]]]:
        if self.client is None:
            return None
        try:
            result = self.client.fetch()
        except Exception:
            # Upstream problems must never reach the caller
            log.exception("Unexpected error fetching live reviews")
            return None
        return result.records if result else None

    def ingest(self) -> IngestResult:
        """Run one ingestion. Raises only PersistenceError from the store."""
        records = self._fetch_live()
        source = SOURCE_LIVE
        if records is None:
            records = load_fallback_dataset(self.fallback_path)
            source = SOURCE_FALLBACK
            log.info("Using fallback dataset (%d records)", len(records))

        normalized = canonicalize_batch(records, default_channel=self.default_channel)
        added = self.store.merge_insert(normalized)
        log.info("Ingestion from %s source: %d normalized, %d added",
                 source, len(normalized), added,
                 extra={"source": source, "normalized": len(normalized), "added": added})
        return IngestResult(added=added, normalized=normalized, source=source)

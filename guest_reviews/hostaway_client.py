"""
HTTP client for the Hostaway reviews endpoint.

The sandbox accepts the API key under different header names depending on
the account, so credentials are presented through an ordered list of header
variants. The next variant is tried only when the previous one was answered
with 403 Forbidden; any other status ends the sequence.

fetch() never raises for upstream problems: network errors, timeouts,
non-2xx responses and malformed or empty payloads all yield None.
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

log = logging.getLogger("reviews")

ACCESS_DENIED = 403


@dataclass
class FetchResult:
    """An accepted upstream batch."""
    records: List[Dict[str, Any]]
    status_code: int
    auth_header: str


def build_session(retries: int = 2) -> requests.Session:
    """Session retrying connection errors and transient 5xx/429 (never 403)."""
    session = requests.Session()
    retry = Retry(
        total=retries,
        backoff_factor=0.2,
        status_forcelist=[429, 500, 502, 503, 504],
        allowed_methods=["GET"],
        raise_on_status=False,
    )
    session.mount("https://", HTTPAdapter(max_retries=retry))
    session.mount("http://", HTTPAdapter(max_retries=retry))
    return session


def extract_records(payload: Any) -> Optional[List[Dict[str, Any]]]:
    """Validate a Hostaway envelope and return its review records.

    Accepts {"status": "success", "result": [...]} with at least one record
    object. Returns None for anything else.
    """
    if not isinstance(payload, dict):
        return None
    status = payload.get("status")
    if status is not None and str(status).lower() != "success":
        return None
    result = payload.get("result")
    if not isinstance(result, list):
        return None
    records = [r for r in result if isinstance(r, dict)]
    return records or None


class HostawayClient:
    """Fetches raw review batches for one Hostaway account."""

    def __init__(self, config: Dict[str, Any], session: Optional[requests.Session] = None):
        hostaway = config.get("hostaway", {})
        self.base_url = hostaway.get("base_url", "https://api.hostaway.com/v1").rstrip("/")
        self.account_id = str(hostaway.get("account_id") or "")
        self.api_key = str(hostaway.get("api_key") or "")
        self.timeout = hostaway.get("timeout", 4.0)
        self.auth_headers: Sequence[str] = hostaway.get(
            "auth_headers", ["X-Hostaway-API-Key", "x-api-key"]
        )
        self._session = session or build_session(hostaway.get("retries", 2))

    @property
    def configured(self) -> bool:
        return bool(self.api_key)

    @property
    def reviews_url(self) -> str:
        return f"{self.base_url}/reviews"

    def _get(self, header: str) -> requests.Response:
        return self._session.get(
            self.reviews_url,
            params={"accountId": self.account_id},
            headers={header: self.api_key, "Accept": "application/json"},
            timeout=self.timeout,
        )

    def fetch(self) -> Optional[FetchResult]:
        """Fetch the live review batch, or None if it is unusable."""
        if not self.configured:
            log.info("Hostaway API key not configured, skipping live fetch")
            return None

        response = None
        used_header = None
        try:
            for header in self.auth_headers:
                used_header = header
                response = self._get(header)
                if response.status_code != ACCESS_DENIED:
                    break
                log.info("Hostaway rejected credentials in %s header (403)", header)
        except requests.RequestException as e:
            log.warning("Hostaway request failed: %s", e)
            return None

        if response is None:
            return None
        if not 200 <= response.status_code < 300:
            log.warning("Hostaway responded with HTTP %d", response.status_code)
            return None

        try:
            payload = response.json()
        except ValueError:
            log.warning("Hostaway response is not valid JSON")
            return None

        records = extract_records(payload)
        if records is None:
            log.warning("Hostaway payload unusable (error status, malformed or empty result)")
            return None

        log.info("Fetched %d reviews from Hostaway using %s header", len(records), used_header)
        return FetchResult(records=records, status_code=response.status_code,
                           auth_header=used_header)

    def close(self) -> None:
        self._session.close()

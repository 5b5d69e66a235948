"""
Error taxonomy for the review service.

API handlers map these onto HTTP statuses: ValidationError -> 400,
NotFoundError -> 404, PersistenceError -> 500. Upstream source failures
never surface as errors; ingestion falls back to the bundled dataset.
"""


class ReviewServiceError(Exception):
    """Base class for review service errors."""


class ValidationError(ReviewServiceError):
    """A request parameter is missing or malformed."""


class NotFoundError(ReviewServiceError):
    """No review matches the given id or source id."""


class PersistenceError(ReviewServiceError):
    """Writing the review document to durable storage failed."""

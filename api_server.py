#!/usr/bin/env python3
"""
FastAPI server for the guest review service.
Serves filtered/sorted/paginated review listings, per-listing and
per-category aggregates, the public approved-review feed and keyword
issues, triggers Hostaway ingestion and records moderation decisions.
"""

import logging
from contextlib import asynccontextmanager
from typing import Dict, Any, List, Optional

from fastapi import FastAPI, Depends, HTTPException, Query, Request, APIRouter
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from guest_reviews.categories import category_aggregate
from guest_reviews.config import load_config
from guest_reviews.errors import NotFoundError, PersistenceError, ValidationError
from guest_reviews.ingestion import Ingestor
from guest_reviews.keywords import extract_keywords
from guest_reviews.query import FilterSpec, QuerySpec, SortOrder, public_view, query
from guest_reviews.review_store import ReviewStore

log = logging.getLogger("reviews.api")

API_VERSION = "1.0.0"
API_ROOT = "/api/reviews"


# ---------------------------------------------------------------------------
# Pydantic models
# ---------------------------------------------------------------------------

class CategoryRatingModel(BaseModel):
    category: str
    rating: Optional[float] = None


class ReviewModel(BaseModel):
    id: str
    sourceId: Optional[Any] = None
    type: Optional[str] = None
    status: Optional[str] = None
    rating: Optional[float] = None
    categories: List[CategoryRatingModel] = []
    text: Optional[str] = None
    submittedAt: str
    guestName: Optional[str] = None
    listingName: Optional[str] = None
    channel: Optional[str] = None
    approved: bool = False


class PublicReviewModel(BaseModel):
    id: str
    rating: Optional[float] = None
    text: Optional[str] = None
    submittedAt: str
    guestName: Optional[str] = None
    listingName: Optional[str] = None


class ListingAggregateModel(BaseModel):
    listing: str
    avgRating: float
    count: int


class ReviewListResponse(BaseModel):
    status: str = "ok"
    total: int
    page: int
    pageSize: int
    items: List[ReviewModel]
    aggregations: List[ListingAggregateModel]


class LiveSyncResponse(BaseModel):
    status: str = "ok"
    source: str
    added: int
    total: int
    items: List[ReviewModel]


class CategoryAggregateModel(BaseModel):
    category: str
    avgRating: float
    count: int


class ListingCategoriesModel(BaseModel):
    listing: str
    categories: List[CategoryAggregateModel]


class CategoriesAggregateResponse(BaseModel):
    status: str = "ok"
    totalListings: int
    items: List[ListingCategoriesModel]


class PublicReviewsResponse(BaseModel):
    status: str = "ok"
    total: int
    page: int
    pageSize: int
    items: List[PublicReviewModel]


class KeywordModel(BaseModel):
    word: str
    count: int


class IssuesResponse(BaseModel):
    status: str = "ok"
    total: int
    items: List[KeywordModel]


class StatsResponse(BaseModel):
    status: str = "ok"
    total: int = 0
    approved: int = 0
    listings: int = 0
    channels: List[str] = []
    store_size_bytes: int = 0


class ApproveRequest(BaseModel):
    """Body of the approve endpoint; `approved` is required."""
    approved: Optional[bool] = Field(None, description="Show the review publicly")


class ApproveResponse(BaseModel):
    status: str = "ok"
    item: ReviewModel


# ---------------------------------------------------------------------------
# Dependency helpers
# ---------------------------------------------------------------------------

def get_store(request: Request) -> ReviewStore:
    """Get the ReviewStore from app state."""
    store = getattr(request.app.state, "store", None)
    if store is None:
        raise HTTPException(status_code=500, detail="Review store not initialized")
    return store


def get_ingestor(request: Request) -> Ingestor:
    ingestor = getattr(request.app.state, "ingestor", None)
    if ingestor is None:
        raise HTTPException(status_code=500, detail="Ingestion not initialized")
    return ingestor


def get_config(request: Request) -> Dict[str, Any]:
    return request.app.state.config


def filter_params(
    listing: Optional[str] = Query(None, description="Case-insensitive listing name substring"),
    rating_min: Optional[str] = Query(None, alias="ratingMin", description="Minimum overall rating"),
    channel: Optional[str] = Query(None, description="Channel, case-insensitive exact match"),
    date_from: Optional[str] = Query(None, alias="from", description="Inclusive lower bound on submittedAt"),
    date_to: Optional[str] = Query(None, alias="to", description="Inclusive upper bound on submittedAt"),
    approved: Optional[bool] = Query(None, description="Filter on moderation flag"),
) -> FilterSpec:
    """Filters shared by the listing and category endpoints."""
    return FilterSpec.from_params(
        listing=listing, rating_min=rating_min, channel=channel,
        date_from=date_from, date_to=date_to, approved=approved,
    )


# ===========================================================================
# Routers
# ===========================================================================

# --- System Router ---
system_router = APIRouter(tags=["System"])


@system_router.get("/health", summary="Liveness Probe")
async def health():
    return {"ok": True, "version": API_VERSION}


# --- Reviews Router ---
reviews_router = APIRouter(prefix=API_ROOT, tags=["Reviews"])


@reviews_router.get("", response_model=ReviewListResponse, summary="Query Reviews")
def list_reviews(
    filters: FilterSpec = Depends(filter_params),
    sort: Optional[SortOrder] = Query(None, description="date_desc, date_asc, rating_desc or rating_asc"),
    page: Optional[int] = Query(None, description="1-indexed page number"),
    page_size: Optional[int] = Query(None, alias="pageSize", description="Items per page (max 200)"),
    autoseed: bool = Query(True, description="Ingest once when the collection is empty"),
    store: ReviewStore = Depends(get_store),
    ingestor: Ingestor = Depends(get_ingestor),
    config: Dict[str, Any] = Depends(get_config),
):
    """Filtered, sorted, paginated reviews plus per-listing rating aggregates."""
    if autoseed and config.get("autoseed", True) and len(store) == 0:
        try:
            ingestor.ingest()
        except PersistenceError:
            log.exception("Auto-seed ingestion failed, serving empty collection")

    query_cfg = config.get("query", {})
    result = query(store.load_all(), QuerySpec(
        filters=filters, sort=sort, page=page, page_size=page_size,
        default_page_size=query_cfg.get("default_page_size", 50),
        max_page_size=query_cfg.get("max_page_size", 200),
    ))
    return result.to_dict()


@reviews_router.get("/live-sync", response_model=LiveSyncResponse, summary="Sync From Hostaway")
def live_sync(ingestor: Ingestor = Depends(get_ingestor)):
    """Fetch Hostaway reviews (or the fallback dataset), normalize and persist new ones."""
    result = ingestor.ingest()
    return result.to_dict()


@reviews_router.get("/categories-aggregate", response_model=CategoriesAggregateResponse,
                    summary="Per-Listing Category Averages")
def categories_aggregate(
    filters: FilterSpec = Depends(filter_params),
    store: ReviewStore = Depends(get_store),
):
    items = category_aggregate(store.load_all(), filters)
    return {"totalListings": len(items), "items": items}


@reviews_router.get("/public", response_model=PublicReviewsResponse, summary="Public Review Feed")
def public_reviews(
    listing: Optional[str] = Query(None, description="Case-insensitive listing name substring"),
    page: Optional[int] = Query(None),
    page_size: Optional[int] = Query(None, alias="pageSize"),
    store: ReviewStore = Depends(get_store),
    config: Dict[str, Any] = Depends(get_config),
):
    """Approved reviews only, with a reduced field set for embedding on the website."""
    query_cfg = config.get("query", {})
    return public_view(
        store.load_all(), listing=listing, page=page, page_size=page_size,
        default_page_size=query_cfg.get("default_page_size", 50),
        max_page_size=query_cfg.get("max_page_size", 200),
    )


@reviews_router.get("/issues", response_model=IssuesResponse, summary="Keyword Frequencies")
def issues(store: ReviewStore = Depends(get_store)):
    """Most frequent words across approved review text."""
    items = extract_keywords(store.load_all())
    return {"total": len(items), "items": items}


@reviews_router.get("/stats", response_model=StatsResponse, summary="Collection Statistics")
def stats(store: ReviewStore = Depends(get_store)):
    return store.get_stats()


@reviews_router.patch("/{identity}/approve", response_model=ApproveResponse,
                      summary="Approve Or Unapprove Review")
def approve_review(
    identity: str,
    body: Optional[ApproveRequest] = None,
    store: ReviewStore = Depends(get_store),
):
    """Set the moderation flag. *identity* is the internal id or the Hostaway id."""
    if body is None or body.approved is None:
        raise ValidationError("`approved` boolean required")
    review = store.set_approved(identity, body.approved)
    return {"item": review.to_dict()}


# ===========================================================================
# Error handlers
# ===========================================================================

def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"status": "error", "message": message})


async def _validation_error(request: Request, exc: Exception) -> JSONResponse:
    return _error(400, str(exc))


async def _request_validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
    problems = "; ".join(
        f"{'.'.join(str(p) for p in err.get('loc', ()))}: {err.get('msg')}" for err in exc.errors()
    )
    return _error(400, problems or "invalid request")


async def _not_found(request: Request, exc: NotFoundError) -> JSONResponse:
    return _error(404, str(exc))


async def _persistence_error(request: Request, exc: PersistenceError) -> JSONResponse:
    log.error("Persistence failure on %s %s: %s", request.method, request.url.path, exc)
    return _error(500, "failed to persist reviews")


# ===========================================================================
# App factory
# ===========================================================================

def create_app(config: Optional[Dict[str, Any]] = None) -> FastAPI:
    """Build the FastAPI app. Store and ingestion are created at startup."""
    config = config if config is not None else load_config()
    api_config = config.get("api", {})

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        from guest_reviews.log_manager import setup_logging_from_config
        setup_logging_from_config(config)
        log.info("Starting guest review API server")

        store = ReviewStore(config.get("store_path", "reviews_db.json")).initialize()
        app.state.store = store
        app.state.ingestor = Ingestor.from_config(store, config)
        log.info("Review store initialized with %d reviews", len(store))

        yield

        log.info("Shutting down guest review API server")
        client = app.state.ingestor.client
        if client is not None:
            client.close()

    app = FastAPI(
        title="Guest Reviews API",
        description="Normalized Hostaway guest reviews with filtering, aggregation and moderation",
        version=API_VERSION,
        lifespan=lifespan,
    )
    app.state.config = config

    raw_origins = str(api_config.get("allowed_origins", "*"))
    allowed_origins = [o.strip() for o in raw_origins.split(",") if o.strip()]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=allowed_origins,
        allow_credentials=raw_origins != "*",
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(ValidationError, _validation_error)
    app.add_exception_handler(RequestValidationError, _request_validation_error)
    app.add_exception_handler(NotFoundError, _not_found)
    app.add_exception_handler(PersistenceError, _persistence_error)

    app.include_router(system_router)
    app.include_router(reviews_router)
    return app


if __name__ == "__main__":
    import uvicorn

    _config = load_config()
    _api = _config.get("api", {})
    log.info("Starting FastAPI server...")
    uvicorn.run(
        "api_server:create_app",
        factory=True,
        host=_api.get("host", "0.0.0.0"),
        port=_api.get("port", 4000),
        log_level="info",
    )

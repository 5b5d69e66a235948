"""Tests for the HTTP surface (FastAPI TestClient)."""

import copy
from pathlib import Path
from unittest.mock import patch

import pytest
from fastapi.testclient import TestClient

from api_server import create_app
from guest_reviews.config import DEFAULT_CONFIG
from guest_reviews.errors import PersistenceError
from guest_reviews.ingestion import load_fallback_dataset


@pytest.fixture
def config(tmp_path):
    cfg = copy.deepcopy(DEFAULT_CONFIG)
    cfg["store_path"] = str(tmp_path / "reviews_db.json")
    cfg["log_dir"] = str(tmp_path / "logs")
    cfg["hostaway"]["api_key"] = ""  # never hit the network
    return cfg


@pytest.fixture
def client(config):
    with TestClient(create_app(config)) as c:
        yield c


@pytest.fixture
def seeded(client):
    resp = client.get("/api/reviews/live-sync")
    assert resp.status_code == 200
    return client


FALLBACK_COUNT = len(load_fallback_dataset())


class TestSystem:

    def test_health(self, client):
        assert client.get("/health").json()["ok"] is True

    def test_store_file_created_on_startup(self, client, config):
        assert Path(config["store_path"]).exists()


class TestListReviews:

    def test_autoseed_on_empty(self, client):
        data = client.get("/api/reviews").json()
        assert data["status"] == "ok"
        assert data["total"] == FALLBACK_COUNT
        assert data["page"] == 1
        assert data["pageSize"] == 50
        assert data["aggregations"]

    def test_autoseed_disabled(self, client):
        data = client.get("/api/reviews", params={"autoseed": "false"}).json()
        assert data["total"] == 0
        assert data["items"] == []
        assert data["aggregations"] == []

    def test_autoseed_disabled_in_config(self, config):
        config["autoseed"] = False
        with TestClient(create_app(config)) as c:
            assert c.get("/api/reviews").json()["total"] == 0

    def test_rating_min(self, seeded):
        data = seeded.get("/api/reviews", params={"ratingMin": 7, "pageSize": 200}).json()
        assert data["total"] > 0
        assert all((i["rating"] or 0) >= 7 for i in data["items"])

    def test_listing_and_channel(self, seeded):
        data = seeded.get("/api/reviews", params={"listing": "shoreditch",
                                                  "channel": "AIRBNB"}).json()
        assert data["total"] == 2
        assert {i["listingName"] for i in data["items"]} == {"2B N1 A - 29 Shoreditch Heights"}

    def test_date_range(self, seeded):
        data = seeded.get("/api/reviews", params={"from": "2022-01-01",
                                                  "to": "2022-12-31T23:59:59Z"}).json()
        assert [i["sourceId"] for i in data["items"]] == [7456, 7457, 7458]

    def test_sort_rating_desc_nulls_last(self, seeded):
        items = seeded.get("/api/reviews", params={"sort": "rating_desc"}).json()["items"]
        ratings = [i["rating"] for i in items]
        numeric = [r for r in ratings if r is not None]
        assert ratings[:len(numeric)] == numeric
        assert numeric == sorted(numeric, reverse=True)

    def test_pagination(self, seeded):
        data = seeded.get("/api/reviews", params={"page": 2, "pageSize": 4}).json()
        assert data["page"] == 2
        assert data["pageSize"] == 4
        assert len(data["items"]) == min(4, FALLBACK_COUNT - 4)
        beyond = seeded.get("/api/reviews", params={"page": 99, "pageSize": 4}).json()
        assert beyond["items"] == []
        assert beyond["total"] == FALLBACK_COUNT

    def test_page_size_clamped(self, seeded):
        data = seeded.get("/api/reviews", params={"pageSize": 1000, "page": 0}).json()
        assert data["pageSize"] == 200
        assert data["page"] == 1

    @pytest.mark.parametrize("params", [
        {"ratingMin": "high"},
        {"from": "last tuesday"},
        {"sort": "random"},
        {"approved": "maybe"},
        {"page": "two"},
    ])
    def test_bad_params_are_400(self, client, params):
        resp = client.get("/api/reviews", params=params)
        assert resp.status_code == 400
        assert resp.json()["status"] == "error"


class TestLiveSync:

    def test_fallback_then_idempotent(self, client):
        first = client.get("/api/reviews/live-sync").json()
        assert first["source"] == "fallback"
        assert first["total"] == FALLBACK_COUNT
        assert first["added"] == FALLBACK_COUNT

        second = client.get("/api/reviews/live-sync").json()
        assert second["added"] == 0
        listed = client.get("/api/reviews", params={"pageSize": 200}).json()
        assert listed["total"] == FALLBACK_COUNT

    def test_live_source(self, client):
        from guest_reviews.hostaway_client import FetchResult
        result = FetchResult(records=[{"id": 1, "rating": 10, "listingName": "Live"}],
                             status_code=200, auth_header="x-api-key")
        with patch.object(client.app.state.ingestor.client, "fetch", return_value=result):
            data = client.get("/api/reviews/live-sync").json()
        assert data["source"] == "live"
        assert data["items"][0]["sourceId"] == 1
        assert data["items"][0]["channel"] == "hostaway"


class TestApprove:

    def test_approve_by_source_id_and_public_feed(self, seeded):
        resp = seeded.patch("/api/reviews/7454/approve", json={"approved": True})
        assert resp.status_code == 200
        item = resp.json()["item"]
        assert item["approved"] is True
        assert item["sourceId"] == 7454

        public = seeded.get("/api/reviews/public").json()
        assert public["total"] == 1
        assert set(public["items"][0]) == {"id", "rating", "text", "submittedAt",
                                           "guestName", "listingName"}
        assert public["items"][0]["id"] == item["id"]

    def test_approve_by_internal_id_roundtrip(self, seeded):
        before = seeded.get("/api/reviews").json()["items"][0]
        on = seeded.patch(f"/api/reviews/{before['id']}/approve", json={"approved": True})
        assert on.json()["item"]["approved"] is True
        off = seeded.patch(f"/api/reviews/{before['id']}/approve", json={"approved": False})
        assert off.json()["item"] == before

    def test_missing_approved_is_400(self, seeded):
        resp = seeded.patch("/api/reviews/7454/approve", json={})
        assert resp.status_code == 400
        assert resp.json()["message"] == "`approved` boolean required"

    def test_missing_body_is_400(self, seeded):
        assert seeded.patch("/api/reviews/7454/approve").status_code == 400

    def test_unknown_review_is_404(self, seeded):
        resp = seeded.patch("/api/reviews/nope/approve", json={"approved": True})
        assert resp.status_code == 404

    def test_persistence_failure_is_500(self, seeded):
        store = seeded.app.state.store
        with patch.object(store, "_write_document", side_effect=PersistenceError("disk full")):
            resp = seeded.patch("/api/reviews/7454/approve", json={"approved": True})
        assert resp.status_code == 500
        assert store.resolve("7454").review.approved is False


class TestAggregates:

    def test_categories_aggregate(self, seeded):
        data = seeded.get("/api/reviews/categories-aggregate").json()
        assert data["status"] == "ok"
        assert data["totalListings"] == len(data["items"])
        shoreditch = next(i for i in data["items"]
                          if i["listing"] == "2B N1 A - 29 Shoreditch Heights")
        cleanliness = next(c for c in shoreditch["categories"] if c["category"] == "cleanliness")
        # 10, 10, 9 across the three Shoreditch reviews with sub-ratings
        assert cleanliness["count"] == 3
        assert cleanliness["avgRating"] == pytest.approx(29 / 3)

    def test_categories_aggregate_filters(self, seeded):
        data = seeded.get("/api/reviews/categories-aggregate",
                          params={"channel": "vrbo"}).json()
        assert [i["listing"] for i in data["items"]] == ["Unknown"]

    def test_issues_only_from_approved(self, seeded):
        assert seeded.get("/api/reviews/issues").json() == {"status": "ok", "total": 0, "items": []}
        seeded.patch("/api/reviews/7455/approve", json={"approved": True})
        seeded.patch("/api/reviews/7456/approve", json={"approved": True})
        data = seeded.get("/api/reviews/issues").json()
        assert data["items"][0] == {"word": "wifi", "count": 2}

    def test_stats(self, seeded):
        data = seeded.get("/api/reviews/stats").json()
        assert data["total"] == FALLBACK_COUNT
        assert data["approved"] == 0

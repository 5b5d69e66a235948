"""Tests for ReviewStore JSON document storage."""

import json
from unittest.mock import patch

import pytest

from guest_reviews.errors import NotFoundError, PersistenceError
from guest_reviews.models import CanonicalReview, CategoryRating
from guest_reviews.review_store import ReviewStore


@pytest.fixture
def store(tmp_path):
    """Fresh store backed by a temp file for each test."""
    return ReviewStore(str(tmp_path / "reviews_db.json")).initialize()


def _review(rid="abc123def456", source_id=1, rating=8.0, listing="Loft", approved=False,
            text="Lovely stay"):
    return CanonicalReview(
        id=rid, source_id=source_id, type="guest-to-host", status="published",
        rating=rating, categories=(CategoryRating("cleanliness", 9),), text=text,
        submitted_at="2021-01-01T00:00:00.000Z", guest_name="Guest",
        listing_name=listing, channel="hostaway", approved=approved,
    )


def _batch(n, start=1):
    return [_review(rid=f"id{start + i:010d}", source_id=start + i) for i in range(n)]


class TestInitialize:

    def test_creates_empty_document(self, tmp_path):
        path = tmp_path / "reviews_db.json"
        store = ReviewStore(str(path)).initialize()
        assert store.load_all() == ()
        assert json.loads(path.read_text()) == {"reviews": []}

    def test_creates_parent_directory(self, tmp_path):
        path = tmp_path / "nested" / "dir" / "db.json"
        ReviewStore(str(path)).initialize()
        assert path.exists()

    def test_load_all_initializes_lazily(self, tmp_path):
        path = tmp_path / "lazy.json"
        store = ReviewStore(str(path))
        assert store.load_all() == ()
        assert path.exists()

    def test_reload_from_disk(self, tmp_path, store):
        store.merge_insert(_batch(3))
        reopened = ReviewStore(str(store.path)).initialize()
        assert [r.source_id for r in reopened.load_all()] == [1, 2, 3]
        assert reopened.load_all() == store.load_all()

    def test_corrupt_file_backed_up(self, tmp_path):
        path = tmp_path / "reviews_db.json"
        path.write_text("{not json", encoding="utf-8")
        store = ReviewStore(str(path)).initialize()
        assert store.load_all() == ()
        backups = list(tmp_path.glob("reviews_db.corrupt.*.json"))
        assert len(backups) == 1
        assert backups[0].read_text() == "{not json"

    def test_invalid_utf8_backed_up(self, tmp_path):
        path = tmp_path / "reviews_db.json"
        path.write_bytes(b"\xff\xfe{\"reviews\": []}")
        store = ReviewStore(str(path)).initialize()
        assert store.load_all() == ()
        assert len(list(tmp_path.glob("reviews_db.corrupt.*.json"))) == 1

    def test_unusable_source_id_in_document(self, tmp_path):
        path = tmp_path / "reviews_db.json"
        row = _review().to_dict()
        row["sourceId"] = [1]
        path.write_text(json.dumps({"reviews": [row]}), encoding="utf-8")
        reopened = ReviewStore(str(path)).initialize()
        assert reopened.load_all()[0].source_id is None
        assert reopened.merge_insert(_batch(1)) == 1


class TestMergeInsert:

    def test_insert_then_idempotent(self, store):
        batch = _batch(5)
        assert store.merge_insert(batch) == 5
        assert store.merge_insert(batch) == 0
        assert len(store) == 5

    def test_no_write_when_nothing_added(self, store):
        store.merge_insert(_batch(2))
        with patch.object(store, "_write_document") as write:
            assert store.merge_insert(_batch(2)) == 0
            write.assert_not_called()

    def test_duplicate_in_same_batch_keeps_first(self, store):
        first = _review(rid="first0000000", source_id=10, text="first")
        second = _review(rid="second000000", source_id=10, text="second")
        assert store.merge_insert([first, second]) == 1
        (kept,) = store.load_all()
        assert kept.id == "first0000000"
        assert kept.text == "first"

    def test_existing_record_not_replaced(self, store):
        store.merge_insert([_review(rid="orig00000000", source_id=1, text="old")])
        store.merge_insert([_review(rid="new000000000", source_id=1, text="new")])
        (kept,) = store.load_all()
        assert kept.text == "old"

    def test_partial_overlap(self, store):
        store.merge_insert(_batch(3))
        assert store.merge_insert(_batch(4, start=2)) == 2
        assert [r.source_id for r in store.load_all()] == [1, 2, 3, 4, 5]

    def test_persists_on_change(self, store):
        store.merge_insert(_batch(2))
        data = json.loads(store.path.read_text())
        assert [r["sourceId"] for r in data["reviews"]] == [1, 2]

    def test_failed_write_leaves_memory_unchanged(self, store):
        store.merge_insert(_batch(1))
        with patch("guest_reviews.review_store.os.replace", side_effect=OSError("disk full")):
            with pytest.raises(PersistenceError):
                store.merge_insert(_batch(2, start=5))
        assert len(store) == 1
        assert [r.source_id for r in ReviewStore(str(store.path)).load_all()] == [1]

    def test_snapshot_is_immutable_tuple(self, store):
        store.merge_insert(_batch(1))
        before = store.load_all()
        store.merge_insert(_batch(1, start=2))
        assert len(before) == 1
        assert len(store.load_all()) == 2


class TestResolveAndApprove:

    def test_resolve_by_id(self, store):
        store.merge_insert([_review(rid="internal0001", source_id=99)])
        resolution = store.resolve("internal0001")
        assert resolution.found
        assert resolution.matched_on == "id"

    def test_resolve_by_source_id_string(self, store):
        store.merge_insert([_review(rid="internal0001", source_id=99)])
        resolution = store.resolve("99")
        assert resolution.found
        assert resolution.matched_on == "sourceId"
        assert resolution.review.id == "internal0001"

    def test_id_takes_precedence_over_source_id(self, store):
        store.merge_insert([
            _review(rid="555", source_id=1),
            _review(rid="other0000000", source_id=555),
        ])
        assert store.resolve("555").review.source_id == 1

    def test_resolve_missing(self, store):
        assert not store.resolve("nope").found

    def test_approve_roundtrip(self, store):
        original = _review(rid="internal0001", source_id=7)
        store.merge_insert([original])

        approved = store.set_approved("internal0001", True)
        assert approved.approved is True

        restored = store.set_approved("7", False)
        assert restored == original

    def test_approve_persists(self, store):
        store.merge_insert([_review(rid="internal0001", source_id=7)])
        store.set_approved("internal0001", True)
        reopened = ReviewStore(str(store.path)).initialize()
        assert reopened.load_all()[0].approved is True

    def test_approve_keeps_position(self, store):
        store.merge_insert(_batch(3))
        store.set_approved("2", True)
        assert [r.source_id for r in store.load_all()] == [1, 2, 3]
        assert [r.approved for r in store.load_all()] == [False, True, False]

    def test_approve_not_found(self, store):
        with pytest.raises(NotFoundError):
            store.set_approved("missing", True)


class TestStats:

    def test_stats(self, store):
        store.merge_insert([
            _review(rid="a00000000000", source_id=1, listing="Loft"),
            _review(rid="b00000000000", source_id=2, listing=None, approved=True),
        ])
        stats = store.get_stats()
        assert stats["total"] == 2
        assert stats["approved"] == 1
        assert stats["listings"] == 2
        assert stats["channels"] == ["hostaway"]
        assert stats["store_size_bytes"] > 0

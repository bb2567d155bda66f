"""Tests for the row store read boundary and in-memory store."""

import json
import logging
from datetime import datetime, timezone

import pytest

from conftest import make_row
from leadscout.common.errors import DataIntegrityError, SearchExecutionError
from leadscout.common.row_store import (
    CorpusFilter,
    InMemoryRowStore,
    normalize_rows,
    record_from_row,
)


class TestReadBoundary:
    def test_keyed_vector_normalized_once(self):
        record = record_from_row(make_row("a", {"0": 1, "1": 2}, {"company": "Acme"}))
        assert record.vector.tolist() == [1.0, 2.0]
        assert record.source_fields == {"company": "Acme"}

    def test_legacy_field_names(self):
        record = record_from_row({
            "_id": "x1",
            "fileId": "f9",
            "embedding": [0.5, 0.5],
            "rowData": {"Email": "a@b.c"},
            "createdAt": "2026-02-01T00:00:00Z",
        })
        assert record.id == "x1"
        assert record.source_document_id == "f9"
        assert record.source_fields["Email"] == "a@b.c"
        assert record.created_at.year == 2026

    def test_bad_vector_raises_data_integrity(self):
        with pytest.raises(DataIntegrityError) as exc_info:
            record_from_row(make_row("broken", {"x": 1}))
        assert exc_info.value.record_id == "broken"

    def test_normalize_rows_skips_and_counts(self, caplog):
        rows = [
            make_row("ok1", [1.0, 0.0]),
            make_row("bad1", None),
            make_row("ok2", {"0": 0.0, "1": 1.0}),
            make_row("bad2", ["a", "b"]),
        ]
        with caplog.at_level(logging.WARNING, logger="leadscout.common.row_store"):
            batch = normalize_rows(rows)

        assert [r.id for r in batch.records] == ["ok1", "ok2"]
        assert batch.skipped == ["bad1", "bad2"]
        assert "Skipped 2 of 4" in caplog.text


class TestInMemoryRowStore:
    @pytest.mark.asyncio
    async def test_fetch_newest_first_with_limit(self):
        store = InMemoryRowStore([
            make_row("old", [1.0], created_at="2025-01-01T00:00:00Z"),
            make_row("new", [1.0], created_at="2026-06-01T00:00:00Z"),
            make_row("mid", [1.0], created_at="2025-06-01T00:00:00Z"),
        ])
        batch = await store.fetch(None, 2)
        assert [r.id for r in batch.records] == ["new", "mid"]

    @pytest.mark.asyncio
    async def test_fetch_applies_filter(self):
        store = InMemoryRowStore([
            make_row("a", [1.0], source="f1"),
            make_row("b", [1.0], source="f2"),
        ])
        batch = await store.fetch(CorpusFilter(source_document_ids=["f2"]), 10)
        assert [r.id for r in batch.records] == ["b"]

    @pytest.mark.asyncio
    async def test_fetch_created_after_accepts_naive_datetime(self):
        store = InMemoryRowStore([
            make_row("old", [1.0], created_at="2025-01-01T00:00:00Z"),
            make_row("new", [1.0], created_at="2026-06-01T00:00:00Z"),
        ])
        naive = CorpusFilter(created_after=datetime(2026, 1, 1))
        aware = CorpusFilter(created_after=datetime(2026, 1, 1, tzinfo=timezone.utc))

        assert naive.created_after == aware.created_after
        assert [r.id for r in (await store.fetch(naive, 10)).records] == ["new"]
        assert [r.id for r in (await store.fetch(aware, 10)).records] == ["new"]

    @pytest.mark.asyncio
    async def test_fetch_reports_skipped(self, lead_rows):
        store = InMemoryRowStore(lead_rows)
        batch = await store.fetch(None, 100)
        assert len(batch.records) == 4
        assert batch.skipped == ["bad"]

    @pytest.mark.asyncio
    async def test_from_json_file(self, tmp_path):
        path = tmp_path / "corpus.json"
        path.write_text(json.dumps({"rows": [make_row("a", [0.1, 0.2])]}))

        store = InMemoryRowStore.from_json_file(str(path))

        assert len(store) == 1
        batch = await store.fetch(None, 5)
        assert batch.records[0].id == "a"

    @pytest.mark.asyncio
    async def test_index_search_without_index_raises(self):
        store = InMemoryRowStore([make_row("a", [1.0, 0.0])])
        assert store.supports_index is False
        with pytest.raises(SearchExecutionError):
            await store.index_search([1.0, 0.0], 100, 10)


class TestFaissIndex:
    @pytest.mark.asyncio
    async def test_index_search_scores_in_unit_range(self, lead_rows):
        pytest.importorskip("faiss")
        store = InMemoryRowStore(lead_rows)

        assert store.build_index() == 4
        hits = await store.index_search([1.0, 0.0, 0.0], 100, 2)

        assert [record.id for record, _ in hits] == ["r1", "r2"]
        assert hits[0][1] == pytest.approx(1.0, abs=1e-5)
        assert all(0.0 <= score <= 1.0 for _, score in hits)

    def test_index_name_recorded_and_reset(self, lead_rows):
        pytest.importorskip("faiss")
        store = InMemoryRowStore(lead_rows)

        store.build_index("leads_idx")
        assert store.index_name == "leads_idx"

        store.add_rows([make_row("r5", [0.0, 0.0, 1.0])])
        assert store.index_name is None
        assert store.supports_index is False

    @pytest.mark.asyncio
    async def test_index_dimension_mismatch_raises(self, lead_rows):
        pytest.importorskip("faiss")
        store = InMemoryRowStore(lead_rows)
        store.build_index()
        with pytest.raises(SearchExecutionError, match="dimension"):
            await store.index_search([1.0, 0.0], 100, 2)

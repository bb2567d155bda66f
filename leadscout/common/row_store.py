"""
Row Store

Read-only access to the corpus of embedded business records.

Stored vectors are normalized exactly once, here, at the read boundary:
everything downstream sees a dense float array or does not see the record
at all. Records whose vector cannot be converted are skipped and counted.
"""

from __future__ import annotations

import json
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Tuple

import numpy as np

from .errors import DataIntegrityError, SearchExecutionError
from .vectors import normalize_embedding

logger = logging.getLogger("leadscout.common.row_store")

_EPOCH = datetime.min.replace(tzinfo=timezone.utc)


@dataclass
class EmbeddingRecord:
    """One embedded row of a source document."""
    id: str
    source_document_id: str
    vector: np.ndarray
    source_fields: Dict[str, Any] = field(default_factory=dict)
    content: str = ""
    created_at: datetime = _EPOCH

    @property
    def dimension(self) -> int:
        return int(self.vector.shape[0])


@dataclass
class CorpusFilter:
    """Optional restriction of the searchable corpus."""
    source_document_ids: Optional[List[str]] = None
    created_after: Optional[datetime] = None

    def __post_init__(self):
        # Naive datetimes are UTC, as for stored rows
        if self.created_after is not None and self.created_after.tzinfo is None:
            self.created_after = self.created_after.replace(tzinfo=timezone.utc)

    def matches(self, row: Dict[str, Any]) -> bool:
        if self.source_document_ids is not None:
            if _source_document_id(row) not in self.source_document_ids:
                return False
        if self.created_after is not None and _created_at(row) <= self.created_after:
            return False
        return True


@dataclass
class RecordBatch:
    """Records read from the store plus the ids that failed normalization."""
    records: List[EmbeddingRecord] = field(default_factory=list)
    skipped: List[str] = field(default_factory=list)


def _row_id(row: Dict[str, Any]) -> str:
    return str(row.get("id") or row.get("_id") or "")


def _source_document_id(row: Dict[str, Any]) -> str:
    return str(row.get("source_document_id") or row.get("fileId") or "")


def _created_at(row: Dict[str, Any]) -> datetime:
    value = row.get("created_at", row.get("createdAt"))
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return datetime.fromtimestamp(value, tz=timezone.utc)
    if isinstance(value, str) and value:
        try:
            parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            return _EPOCH
        return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)
    return _EPOCH


def record_from_row(row: Dict[str, Any]) -> EmbeddingRecord:
    """
    Build an EmbeddingRecord from a raw stored row.

    Raises:
        DataIntegrityError: if the stored vector is missing or unconvertible
    """
    record_id = _row_id(row)
    vector = normalize_embedding(row.get("vector", row.get("embedding")))
    if vector is None:
        raise DataIntegrityError(
            f"Record {record_id or '<no id>'} has an unusable embedding",
            record_id=record_id,
        )

    fields = row.get("source_fields", row.get("rowData")) or {}
    if not isinstance(fields, dict):
        fields = {}

    return EmbeddingRecord(
        id=record_id,
        source_document_id=_source_document_id(row),
        vector=vector,
        source_fields=fields,
        content=str(row.get("content") or ""),
        created_at=_created_at(row),
    )


def normalize_rows(rows: Sequence[Dict[str, Any]]) -> RecordBatch:
    """Convert raw rows, skipping (and counting) those with bad vectors."""
    batch = RecordBatch()
    for row in rows:
        try:
            batch.records.append(record_from_row(row))
        except DataIntegrityError as e:
            batch.skipped.append(e.record_id)
            logger.debug("Skipping record: %s", e.message)

    if batch.skipped:
        logger.warning(
            "Skipped %d of %d records with unusable embeddings",
            len(batch.skipped), len(rows),
        )
    return batch


class RowStore(ABC):
    """Persistent row store interface consumed by the search engine."""

    @abstractmethod
    async def fetch(self, corpus_filter: Optional[CorpusFilter], limit: int) -> RecordBatch:
        """Newest-first window of at most ``limit`` records."""

    @property
    def supports_index(self) -> bool:
        return False

    async def index_search(
        self,
        vector: Sequence[float],
        num_candidates: int,
        limit: int,
        corpus_filter: Optional[CorpusFilter] = None,
    ) -> List[Tuple[EmbeddingRecord, float]]:
        """ANN lookup returning (record, score in [0, 1]) pairs."""
        raise SearchExecutionError("Row store has no ANN index", strategy="index")


class InMemoryRowStore(RowStore):
    """
    Row store over raw rows held in memory.

    Rows keep their stored representation until they are fetched, so every
    fetch goes through the same normalization as a remote store would.
    An optional faiss index (IndexFlatIP over unit vectors) backs
    ``index_search``.
    """

    def __init__(self, rows: Optional[Sequence[Dict[str, Any]]] = None):
        self._rows: List[Dict[str, Any]] = []
        self._index = None
        self._index_records: List[EmbeddingRecord] = []
        self.index_name: Optional[str] = None
        if rows:
            self.add_rows(rows)

    @classmethod
    def from_json_file(cls, path: str) -> "InMemoryRowStore":
        """Load rows from a JSON list (or ``{"rows": [...]}``) on disk."""
        with open(Path(path).expanduser()) as f:
            data = json.load(f)
        rows = data.get("rows", []) if isinstance(data, dict) else data
        store = cls(rows)
        logger.info("Loaded %d corpus rows from %s", len(store), path)
        return store

    def __len__(self) -> int:
        return len(self._rows)

    def add_rows(self, rows: Sequence[Dict[str, Any]]) -> None:
        self._rows.extend(rows)
        # Newest first, matching a createdAt-descending store query
        self._rows.sort(key=_created_at, reverse=True)
        self._index = None
        self._index_records = []
        self.index_name = None

    async def fetch(self, corpus_filter: Optional[CorpusFilter], limit: int) -> RecordBatch:
        window = []
        for row in self._rows:
            if corpus_filter is None or corpus_filter.matches(row):
                window.append(row)
                if len(window) >= limit:
                    break
        return normalize_rows(window)

    # ------------------------------------------------------------------
    # ANN index
    # ------------------------------------------------------------------

    def build_index(self, name: str = "vector_search_index") -> int:
        """
        Build the faiss index ``name`` over every row with a usable vector.

        Returns the number of indexed records. Raises SearchExecutionError
        when faiss is not installed or nothing can be indexed.
        """
        try:
            import faiss
        except ImportError as e:
            raise SearchExecutionError(
                "faiss is not installed (pip install 'leadscout[ann]')", strategy="index"
            ) from e

        batch = normalize_rows(self._rows)
        if not batch.records:
            raise SearchExecutionError("No records with usable embeddings to index", strategy="index")

        dimension = batch.records[0].dimension
        records = [r for r in batch.records if r.dimension == dimension]
        if len(records) < len(batch.records):
            logger.warning(
                "Index build skipped %d records with dimension != %d",
                len(batch.records) - len(records), dimension,
            )

        matrix = np.vstack([r.vector for r in records]).astype(np.float32)
        faiss.normalize_L2(matrix)
        index = faiss.IndexFlatIP(dimension)
        index.add(matrix)

        self._index = index
        self._index_records = records
        self.index_name = name
        logger.info(
            "Built ANN index %s over %d records (dim=%d)", name, len(records), dimension
        )
        return len(records)

    @property
    def supports_index(self) -> bool:
        return self._index is not None

    async def index_search(
        self,
        vector: Sequence[float],
        num_candidates: int,
        limit: int,
        corpus_filter: Optional[CorpusFilter] = None,
    ) -> List[Tuple[EmbeddingRecord, float]]:
        if self._index is None:
            raise SearchExecutionError("ANN index has not been built", strategy="index")

        import faiss

        query = np.asarray(vector, dtype=np.float32).reshape(1, -1)
        if query.shape[1] != self._index.d:
            raise SearchExecutionError(
                f"Query dimension {query.shape[1]} does not match index dimension {self._index.d}",
                strategy="index",
            )
        faiss.normalize_L2(query)

        k = min(num_candidates, len(self._index_records))
        scores, positions = self._index.search(query, k)

        allowed = None
        if corpus_filter is not None:
            allowed = {_row_id(row) for row in self._rows if corpus_filter.matches(row)}

        hits = []
        for cos, pos in zip(scores[0], positions[0]):
            if pos < 0:
                continue
            record = self._index_records[pos]
            if allowed is not None and record.id not in allowed:
                continue
            hits.append((record, min(1.0, max(0.0, (float(cos) + 1.0) / 2.0))))
            if len(hits) >= limit:
                break
        return hits

"""
Vector Search Engine

Scores corpus records against a query embedding.

Strategies (tried in this order, starting from the configured one):
- index: ANN lookup delegated to the row store
- optimized: bounded newest-first working set, precomputed query norm,
  early termination once enough high-confidence hits are found
- naive: small window, full scoring, last resort

``batch_search`` loads the optimized working set once and scores every
query against it, stopping early per query under the same rule as
``optimized``. Its results match one ``search`` call per query.
"""

from __future__ import annotations

import logging
import time
from collections import Counter
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence

import numpy as np

from ..common.config import SearchConfig
from ..common.errors import SearchExecutionError
from ..common.fallback import StrategyOutcome, run_fallback_chain
from ..common.row_store import CorpusFilter, EmbeddingRecord, RowStore
from ..common.schemas import CompanyInfo
from ..common.vectors import cosine_similarity, normalize_embedding, vector_norm

logger = logging.getLogger("leadscout.retriever.vector_search")

STRATEGY_ORDER = ("index", "optimized", "naive")


@dataclass
class SearchResult:
    """A scored candidate record"""
    record: EmbeddingRecord
    raw_similarity: float
    relevance_score: float = 0.0
    combined_score: float = 0.0
    match_reasons: List[str] = field(default_factory=list)
    company_info: Optional[CompanyInfo] = None

    @property
    def record_id(self) -> str:
        return self.record.id


@dataclass
class StrategyRun:
    results: List[SearchResult]
    skipped: int = 0
    early_terminated: bool = False
    scanned: int = 0


@dataclass
class SearchOutcome:
    """Results of one search plus how they were obtained"""
    results: List[SearchResult]
    strategy: str
    attempts: List[StrategyOutcome] = field(default_factory=list)
    skipped_records: int = 0
    early_terminated: bool = False
    elapsed_ms: float = 0.0


def _rank(results: List[SearchResult], limit: int) -> List[SearchResult]:
    # Stable: ties keep working-set order
    return sorted(results, key=lambda r: r.raw_similarity, reverse=True)[:limit]


class VectorSearchEngine:
    """Runs vector search over a RowStore with strategy fallback."""

    def __init__(self, row_store: RowStore, config: Optional[SearchConfig] = None):
        self._store = row_store
        self.config = config or SearchConfig()
        self._counters: Counter = Counter()
        self._strategy_wins: Counter = Counter()
        self._strategy_failures: Counter = Counter()

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def strategy_chain(self) -> List[str]:
        """Strategies to try, in order, for the current configuration."""
        start = self.config.strategy if self.config.strategy in STRATEGY_ORDER else "optimized"
        if start == "optimized" and self.config.use_index:
            start = "index"
        return list(STRATEGY_ORDER[STRATEGY_ORDER.index(start):])

    async def search(
        self,
        query_vector: Sequence[float],
        corpus_filter: Optional[CorpusFilter] = None,
        limit: Optional[int] = None,
        min_score: Optional[float] = None,
    ) -> SearchOutcome:
        """
        Search the corpus, falling back index -> optimized -> naive.

        Raises:
            SearchExecutionError: if the query vector is unusable
            PipelineError: if every strategy failed
        """
        query = self._prepare_query(query_vector)
        limit = limit or self.config.default_limit
        min_score = self.config.default_min_score if min_score is None else min_score

        runners = {
            "index": lambda: self._guard("index", self.index_search(query, corpus_filter, limit, min_score)),
            "optimized": lambda: self._guard("optimized", self.optimized_search(query, corpus_filter, limit, min_score)),
            "naive": lambda: self._guard("naive", self.naive_search(query, corpus_filter, limit, min_score)),
        }

        started = time.perf_counter()
        chain = await run_fallback_chain(
            "search", [(name, runners[name]) for name in self.strategy_chain()]
        )
        elapsed = (time.perf_counter() - started) * 1000

        run: StrategyRun = chain.value
        self._counters["searches"] += 1
        self._counters["skippedRecords"] += run.skipped
        if run.early_terminated:
            self._counters["earlyTerminations"] += 1
        self._strategy_wins[chain.strategy] += 1
        for attempt in chain.attempts:
            if not attempt.ok:
                self._strategy_failures[attempt.name] += 1

        self._log_timing("search", chain.strategy, elapsed, len(run.results))
        return SearchOutcome(
            results=run.results,
            strategy=chain.strategy,
            attempts=chain.attempts,
            skipped_records=run.skipped,
            early_terminated=run.early_terminated,
            elapsed_ms=elapsed,
        )

    async def batch_search(
        self,
        query_vectors: Sequence[Sequence[float]],
        corpus_filter: Optional[CorpusFilter] = None,
        limit: Optional[int] = None,
        min_score: Optional[float] = None,
    ) -> List[List[SearchResult]]:
        """
        Score several queries against one shared working set.

        The set is fetched and normalized once. Each query is scored
        independently and read-only against it, with the same early
        termination rule as ``optimized_search``.
        """
        if not query_vectors:
            return []

        queries = [self._prepare_query(v) for v in query_vectors]
        limit = limit or self.config.default_limit
        min_score = self.config.default_min_score if min_score is None else min_score

        started = time.perf_counter()
        batch = await self._store.fetch(corpus_filter, self._working_set_size(limit))
        results = [
            self._scan(
                q, batch.records, limit, min_score,
                early_stop=self.config.early_termination_enabled,
            ).results
            for q in queries
        ]
        elapsed = (time.perf_counter() - started) * 1000

        self._counters["batchSearches"] += 1
        self._counters["skippedRecords"] += len(batch.skipped)
        self._log_timing("batch_search", "optimized", elapsed, sum(len(r) for r in results))
        return results

    def stats(self) -> Dict[str, object]:
        return {
            "searches": self._counters["searches"],
            "batchSearches": self._counters["batchSearches"],
            "skippedRecords": self._counters["skippedRecords"],
            "earlyTerminations": self._counters["earlyTerminations"],
            "strategyWins": dict(self._strategy_wins),
            "strategyFailures": dict(self._strategy_failures),
        }

    # ------------------------------------------------------------------
    # Strategies
    # ------------------------------------------------------------------

    async def naive_search(
        self,
        query: np.ndarray,
        corpus_filter: Optional[CorpusFilter],
        limit: int,
        min_score: float,
    ) -> StrategyRun:
        window = min(limit * self.config.naive_window_multiplier, self.config.naive_window_cap)
        batch = await self._store.fetch(corpus_filter, window)

        results = []
        for record in batch.records:
            similarity = cosine_similarity(query, record.vector)
            if similarity > min_score:
                results.append(SearchResult(record=record, raw_similarity=similarity))

        return StrategyRun(
            results=_rank(results, limit),
            skipped=len(batch.skipped),
            scanned=len(batch.records),
        )

    async def optimized_search(
        self,
        query: np.ndarray,
        corpus_filter: Optional[CorpusFilter],
        limit: int,
        min_score: float,
    ) -> StrategyRun:
        batch = await self._store.fetch(corpus_filter, self._working_set_size(limit))
        run = self._scan(
            query, batch.records, limit, min_score,
            early_stop=self.config.early_termination_enabled,
        )
        run.skipped = len(batch.skipped)
        if run.early_terminated:
            logger.info(
                "Early termination after %d of %d candidates", run.scanned, len(batch.records)
            )
        return run

    async def index_search(
        self,
        query: np.ndarray,
        corpus_filter: Optional[CorpusFilter],
        limit: int,
        min_score: float,
    ) -> StrategyRun:
        if not self._store.supports_index:
            raise SearchExecutionError("ANN index not available", strategy="index")

        num_candidates = max(
            limit * self.config.index_candidate_multiplier, self.config.index_min_candidates
        )
        hits = await self._store.index_search(query, num_candidates, limit * 2, corpus_filter)
        results = [
            SearchResult(record=record, raw_similarity=score)
            for record, score in hits
            if score >= min_score
        ]
        return StrategyRun(results=_rank(results, limit), scanned=len(hits))

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _scan(
        self,
        query: np.ndarray,
        records: Sequence[EmbeddingRecord],
        limit: int,
        min_score: float,
        early_stop: bool,
    ) -> StrategyRun:
        """Single pass over ``records`` with the query norm computed once."""
        query_norm = vector_norm(query)
        threshold = self.config.early_termination_threshold
        enough = self.config.early_termination_multiplier * limit

        results = []
        scanned = 0
        early = False
        for record in records:
            scanned += 1
            similarity = cosine_similarity(query, record.vector, norm_a=query_norm)
            if similarity <= min_score:
                continue
            results.append(SearchResult(record=record, raw_similarity=similarity))
            if early_stop and similarity > threshold and len(results) >= enough:
                early = True
                break

        return StrategyRun(results=_rank(results, limit), early_terminated=early, scanned=scanned)

    def _working_set_size(self, limit: int) -> int:
        return min(self.config.working_set_size, limit * self.config.working_set_multiplier)

    @staticmethod
    def _prepare_query(query_vector: Sequence[float]) -> np.ndarray:
        query = normalize_embedding(query_vector)
        if query is None:
            raise SearchExecutionError("Query vector is empty or not numeric")
        return query

    @staticmethod
    async def _guard(strategy: str, pending) -> StrategyRun:
        """Re-raise any strategy failure as SearchExecutionError."""
        try:
            return await pending
        except SearchExecutionError:
            raise
        except Exception as e:
            raise SearchExecutionError(f"{strategy} search failed: {e}", strategy=strategy) from e

    def _log_timing(self, op: str, strategy: str, elapsed_ms: float, count: int) -> None:
        if elapsed_ms > self.config.slow_query_ms:
            logger.warning(
                "Slow %s (%s): %.0fms for %d results", op, strategy, elapsed_ms, count
            )
        else:
            logger.info("%s (%s): %.1fms, %d results", op, strategy, elapsed_ms, count)

"""
Lead Generation Pipeline

Sequences SessionStore -> CriteriaExtractor -> compose -> embedding ->
VectorSearchEngine -> ResultRanker -> LeadFormatter and exposes the
caller-facing operations:

- append_answer(session_id, question, answer)
- generate_leads(session_id)
- get_session_info(session_id)
- get_health()
- clear_expired()
"""

from __future__ import annotations

import logging
import time
from collections import Counter
from typing import Any, Dict, Optional

from .common.config import LeadScoutConfig
from .common.embedding_service import EmbeddingService
from .common.errors import (
    InsufficientDataError,
    LeadScoutError,
    NotFoundError,
    PipelineError,
    SearchExecutionError,
    is_retryable_message,
)
from .common.llm_client import LLMClient
from .common.row_store import InMemoryRowStore, RowStore
from .common.schemas import (
    AppendAnswerResult,
    ClearExpiredResult,
    GenerateLeadsResult,
    GenerationMetadata,
    HealthReport,
    QuestionAnswerView,
    SessionInfo,
)
from .intake.criteria_extractor import CriteriaExtractor
from .intake.session_store import SessionStore, utc_now
from .intake.validation import validate_question_answer, validate_session_id
from .retriever.query_composer import compose
from .retriever.ranker import LeadFormatter, ResultRanker
from .retriever.vector_search import VectorSearchEngine

logger = logging.getLogger("leadscout.pipeline")

MAX_HEALTHY_SESSIONS = 1000
MIN_HEALTHY_SUCCESS_RATE = 80.0
MIN_CANDIDATES = 100


class LeadPipeline:
    """End-to-end lead generation with rolling success statistics."""

    def __init__(
        self,
        session_store: SessionStore,
        extractor: CriteriaExtractor,
        search_engine: VectorSearchEngine,
        ranker: ResultRanker,
        formatter: LeadFormatter,
        embedding_service: EmbeddingService,
        config: Optional[LeadScoutConfig] = None,
    ):
        self.config = config or LeadScoutConfig()
        self.sessions = session_store
        self.extractor = extractor
        self.search_engine = search_engine
        self.ranker = ranker
        self.formatter = formatter
        self.embedding = embedding_service
        self.reset_stats()

    @classmethod
    def from_config(
        cls, config: LeadScoutConfig, row_store: Optional[RowStore] = None
    ) -> "LeadPipeline":
        """Wire every component from configuration."""
        llm = LLMClient.from_config(config.llm, config.retry)
        embedding = EmbeddingService.from_config(config.embedding, config.retry)

        if row_store is None:
            if config.search.corpus_path:
                row_store = InMemoryRowStore.from_json_file(config.search.corpus_path)
            else:
                logger.warning("No corpus configured; searches will return no leads")
                row_store = InMemoryRowStore()
            if config.search.use_index:
                try:
                    row_store.build_index(config.search.index_name)
                except SearchExecutionError as e:
                    logger.warning("ANN index unavailable, in-memory scan will be used: %s", e.message)

        return cls(
            session_store=SessionStore(config.session),
            extractor=CriteriaExtractor(llm, config.extraction),
            search_engine=VectorSearchEngine(row_store, config.search),
            ranker=ResultRanker(config.ranking),
            formatter=LeadFormatter(llm, config.ranking),
            embedding_service=embedding,
            config=config,
        )

    # ------------------------------------------------------------------
    # Exposed operations
    # ------------------------------------------------------------------

    def append_answer(
        self, session_id: Optional[str], question: Optional[str], answer: Optional[str]
    ) -> AppendAnswerResult:
        session_id, question, answer = validate_question_answer(
            session_id, question, answer, self.config.session
        )
        session = self.sessions.append_answer(session_id, question, answer)
        last_qa = session.question_answers[-1]

        return AppendAnswerResult(
            session_id=session.id,
            message_count=len(session.question_answers),
            status=self.sessions.status_of(session),
            last_activity=session.last_activity,
            metadata={
                "totalQuestions": session.total_questions,
                "questionType": last_qa.classified_type.value,
                "sessionAgeMs": round(
                    (session.last_activity - session.created_at).total_seconds() * 1000
                ),
            },
        )

    async def generate_leads(self, session_id: Optional[str]) -> GenerateLeadsResult:
        """
        Run the full pipeline for one session.

        Raises:
            ValidationError: missing or malformed session id
            NotFoundError: session absent or expired
            InsufficientDataError: session has no Q&A pairs
            PipelineError: a stage failed after its fallbacks
        """
        validate_session_id(session_id)
        session = self.sessions.get(session_id)
        if session is None:
            raise NotFoundError("Chat session not found or expired", code="SESSION_NOT_FOUND")

        qas = session.question_answers
        if not qas:
            raise InsufficientDataError(
                "No question-answer pairs found in this session", code="NO_QA_DATA"
            )
        if len(qas) < 2:
            logger.warning(
                "Session %s has only %d Q&A pair(s); results may be imprecise",
                session_id, len(qas),
            )

        started = time.perf_counter()
        try:
            result = await self._run(qas)
        except Exception as e:
            elapsed = (time.perf_counter() - started) * 1000
            self._record(False, elapsed)
            if isinstance(e, LeadScoutError):
                logger.error("Lead generation failed for %s at %s: %s", session_id, e.stage, e.message)
                raise
            logger.error("Lead generation failed for %s: %s", session_id, e)
            raise PipelineError(
                f"Lead generation failed: {e}",
                stage="generation",
                retryable=is_retryable_message(str(e)),
            ) from e

        elapsed = (time.perf_counter() - started) * 1000
        result.metadata.processing_time_ms = round(elapsed, 1)
        self.sessions.mark_generated(session_id)
        self._record(True, elapsed)
        self._sources["criteria:" + result.metadata.criteria_source.value] += 1
        self._sources["format:" + result.metadata.format_source.value] += 1
        self._sources["search:" + result.metadata.strategy] += 1

        logger.info(
            "Generated %d leads for %s in %.0fms", len(result.leads), session_id, elapsed
        )
        return result

    def get_session_info(self, session_id: Optional[str]) -> SessionInfo:
        validate_session_id(session_id)
        session = self.sessions.get(session_id)
        if session is None:
            raise NotFoundError("Chat session not found or expired", code="SESSION_NOT_FOUND")

        return SessionInfo(
            session_id=session.id,
            created_at=session.created_at,
            last_activity=session.last_activity,
            status=self.sessions.status_of(session),
            question_count=session.total_questions,
            last_generation_at=session.last_generation_at,
            question_answers=[
                QuestionAnswerView(
                    id=qa.id,
                    timestamp=qa.timestamp,
                    question=qa.question,
                    answer=qa.answer,
                    classified_type=qa.classified_type,
                    answer_length=qa.answer_length,
                )
                for qa in session.question_answers
            ],
        )

    def get_health(self) -> HealthReport:
        cache_stats = self.sessions.stats()
        cache_stats["activeSessionIds"] = self.sessions.list_active_ids()
        generation_stats = self.stats()
        generation_stats["search"] = self.search_engine.stats()

        cache_status = "healthy" if cache_stats["totalSessions"] < MAX_HEALTHY_SESSIONS else "warning"
        if generation_stats["totalGenerations"] == 0:
            generation_status = "healthy"
        elif generation_stats["successRatePercent"] > MIN_HEALTHY_SUCCESS_RATE:
            generation_status = "healthy"
        else:
            generation_status = "warning"

        overall = "healthy" if cache_status == generation_status == "healthy" else "warning"
        return HealthReport(
            status=overall,
            timestamp=utc_now(),
            cache_stats=cache_stats,
            generation_stats=generation_stats,
            components={"cache": cache_status, "generation": generation_status},
        )

    def clear_expired(self) -> ClearExpiredResult:
        cleared = self.sessions.sweep()
        return ClearExpiredResult(cleared_count=cleared, remaining_count=len(self.sessions))

    # ------------------------------------------------------------------
    # Stats
    # ------------------------------------------------------------------

    def stats(self) -> Dict[str, Any]:
        total = self._total
        return {
            "totalGenerations": total,
            "successfulGenerations": self._successful,
            "failedGenerations": self._failed,
            "averageProcessingTimeMs": round(self._avg_ms, 1),
            "successRatePercent": round(self._successful / total * 100) if total else 0,
            "lastGenerationAt": self._last_at.isoformat() if self._last_at else None,
            "sources": dict(self._sources),
        }

    def reset_stats(self) -> None:
        self._total = 0
        self._successful = 0
        self._failed = 0
        self._avg_ms = 0.0
        self._last_at = None
        self._sources: Counter = Counter()

    def _record(self, success: bool, elapsed_ms: float) -> None:
        self._total += 1
        if success:
            self._successful += 1
        else:
            self._failed += 1
        # Running mean, no history kept
        self._avg_ms += (elapsed_ms - self._avg_ms) / self._total
        self._last_at = utc_now()

    # ------------------------------------------------------------------
    # Stages
    # ------------------------------------------------------------------

    async def _run(self, qas) -> GenerateLeadsResult:
        extraction = await self.extractor.extract(qas)
        criteria = extraction.criteria
        if criteria.is_empty:
            logger.warning("No search criteria extracted; searching with the generic query")

        query_text = compose(criteria)
        logger.debug("Composed query: %s", query_text)
        query_vector = await self._embed(query_text)

        limit = self.config.search.default_limit
        outcome = await self.search_engine.search(
            query_vector,
            limit=max(limit, MIN_CANDIDATES),
            min_score=self.config.search.default_min_score,
        )
        ranked = self.ranker.rank(outcome.results, criteria)[:limit]
        formatted = await self.formatter.format(ranked, criteria)

        return GenerateLeadsResult(
            message=formatted.message,
            leads=formatted.leads,
            metadata=GenerationMetadata(
                total_found=len(ranked),
                processing_time_ms=0.0,
                question_answer_count=len(qas),
                search_criteria=criteria,
                generated_at=utc_now(),
                strategy=outcome.strategy,
                criteria_source=extraction.source,
                format_source=formatted.source,
                skipped_records=outcome.skipped_records,
            ),
        )

    async def _embed(self, text: str):
        try:
            return await self.embedding.embed_single(text)
        except LeadScoutError as e:
            raise PipelineError(
                f"Query embedding failed: {e.message}",
                stage="embedding",
                retryable=e.retryable or is_retryable_message(e.message),
            ) from e
        except (RuntimeError, ValueError) as e:
            raise PipelineError(
                f"Query embedding failed: {e}", stage="embedding"
            ) from e

"""
End-to-end pipeline scenarios

Session intake through formatted leads, with a fake embedding service.
Most cases run without a language model (heuristic extraction and templated
formatting); one drives both stages through a mocked model.
"""

import asyncio
import json
import logging
from unittest.mock import AsyncMock, Mock, patch

import pytest

from leadscout.common.errors import (
    InsufficientDataError,
    NotFoundError,
    PipelineError,
    UpstreamServiceError,
    ValidationError,
)
from leadscout.common.schemas import CriteriaSource, FormatSource, SessionStatus

SESSION_ID = "3f2b8c1a-9d4e-4a6b-8c7d-1e2f3a4b5c6d"


def _mentions(lead, *needles):
    text = " ".join(str(v) for v in lead.model_dump().values() if v).lower()
    return any(n in text for n in needles)


class TestAppendAnswer:
    def test_generates_session_id(self, make_pipeline):
        pipeline = make_pipeline()
        result = pipeline.append_answer(None, "What industry are you in?", "textile")

        assert result.message_count == 1
        assert result.status == SessionStatus.GATHERING
        assert result.metadata["questionType"] == "industry"
        assert len(result.session_id) == 36

    def test_question_length_limit(self, make_pipeline):
        pipeline = make_pipeline()

        pipeline.append_answer(SESSION_ID, "q" * 500, "answer")
        with pytest.raises(ValidationError) as exc_info:
            pipeline.append_answer(SESSION_ID, "q" * 501, "answer")

        assert exc_info.value.code == "QUESTION_TOO_LONG"
        assert "Question too long" in exc_info.value.message

    def test_answer_length_limit(self, make_pipeline):
        with pytest.raises(ValidationError) as exc_info:
            make_pipeline().append_answer(SESSION_ID, "q", "a" * 2001)
        assert exc_info.value.code == "ANSWER_TOO_LONG"

    @pytest.mark.parametrize("question,answer,code", [
        (None, "a", "MISSING_REQUIRED_FIELDS"),
        ("q", None, "MISSING_REQUIRED_FIELDS"),
        ("   ", "a", "EMPTY_QUESTION"),
        ("q", "\n\t", "EMPTY_ANSWER"),
    ])
    def test_missing_or_empty(self, make_pipeline, question, answer, code):
        with pytest.raises(ValidationError) as exc_info:
            make_pipeline().append_answer(SESSION_ID, question, answer)
        assert exc_info.value.code == code

    def test_malformed_session_id(self, make_pipeline):
        with pytest.raises(ValidationError) as exc_info:
            make_pipeline().append_answer("not-a-uuid", "q", "a")
        assert exc_info.value.code == "INVALID_SESSION_ID"

    @pytest.mark.asyncio
    async def test_concurrent_appends_keep_both(self, make_pipeline):
        pipeline = make_pipeline()

        await asyncio.gather(
            asyncio.to_thread(pipeline.append_answer, SESSION_ID, "What industry?", "textile"),
            asyncio.to_thread(pipeline.append_answer, SESSION_ID, "Which region?", "India"),
        )

        info = pipeline.get_session_info(SESSION_ID)
        assert len(info.question_answers) == 2


class TestGenerateLeads:
    @pytest.mark.asyncio
    async def test_textile_india_scenario(self, make_pipeline):
        pipeline = make_pipeline()
        pipeline.append_answer(SESSION_ID, "What industry are you in?", "textile manufacturing")
        pipeline.append_answer(SESSION_ID, "Which region?", "India")

        result = await pipeline.generate_leads(SESSION_ID)

        assert result.leads
        relevant = [lead for lead in result.leads if _mentions(lead, "manufactur", "india")]
        assert relevant
        for lead in relevant:
            assert any("industry" in r or "region" in r for r in lead.match_reasons)

        meta = result.metadata
        assert meta.question_answer_count == 2
        assert meta.criteria_source == CriteriaSource.HEURISTIC
        assert meta.format_source == FormatSource.TEMPLATE
        assert meta.strategy == "optimized"
        assert meta.skipped_records == 1
        assert meta.search_criteria.region == "india"

    @pytest.mark.asyncio
    async def test_textile_india_scenario_with_llm(self, make_pipeline):
        async def complete(prompt, **kwargs):
            if "Lead data:" not in prompt:
                return json.dumps({
                    "product": None,
                    "industry": "textile manufacturing",
                    "region": "India",
                    "keywords": [],
                })
            lead_data = json.loads(prompt.split("Lead data:\n", 1)[1].split("\n\nReturn", 1)[0])
            return json.dumps({
                "message": "Here are your leads.",
                "leads": [
                    {"index": item["index"], "companyName": item["company"],
                     "industry": item["industry"], "region": item["region"],
                     "score": item["score"], "matchReason": "Relevant supplier"}
                    for item in lead_data
                ],
            })

        llm = Mock()
        llm.is_available = True
        llm.complete = AsyncMock(side_effect=complete)
        pipeline = make_pipeline(llm=llm)
        pipeline.append_answer(SESSION_ID, "What industry are you in?", "textile manufacturing")
        pipeline.append_answer(SESSION_ID, "Which region?", "India")

        result = await pipeline.generate_leads(SESSION_ID)

        assert result.metadata.criteria_source == CriteriaSource.LLM
        assert result.metadata.format_source == FormatSource.LLM
        relevant = [lead for lead in result.leads if _mentions(lead, "manufactur", "india")]
        assert relevant
        for lead in result.leads:
            assert lead.match_reasons
        for lead in relevant:
            assert any("industry" in r or "region" in r for r in lead.match_reasons)

    @pytest.mark.asyncio
    async def test_marks_session_generated(self, make_pipeline, clock):
        pipeline = make_pipeline()
        pipeline.append_answer(SESSION_ID, "Which region?", "India")

        await pipeline.generate_leads(SESSION_ID)

        info = pipeline.get_session_info(SESSION_ID)
        assert info.last_generation_at == clock.now

    @pytest.mark.asyncio
    async def test_zero_qa_is_insufficient_data(self, make_pipeline):
        pipeline = make_pipeline()
        pipeline.sessions.create(SESSION_ID)

        with pytest.raises(InsufficientDataError) as exc_info:
            await pipeline.generate_leads(SESSION_ID)

        assert exc_info.value.code == "NO_QA_DATA"
        assert pipeline.stats()["totalGenerations"] == 0
        pipeline.embedding.embed_single.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_unknown_session(self, make_pipeline):
        with pytest.raises(NotFoundError):
            await make_pipeline().generate_leads(SESSION_ID)

    @pytest.mark.asyncio
    async def test_expired_session(self, make_pipeline, clock):
        pipeline = make_pipeline()
        pipeline.append_answer(SESSION_ID, "What industry?", "textile")
        pipeline.append_answer(SESSION_ID, "Which region?", "India")
        clock.advance(seconds=3600, milliseconds=1)

        with pytest.raises(NotFoundError):
            await pipeline.generate_leads(SESSION_ID)

    @pytest.mark.asyncio
    async def test_missing_session_id(self, make_pipeline):
        with pytest.raises(ValidationError) as exc_info:
            await make_pipeline().generate_leads(None)
        assert exc_info.value.code == "MISSING_SESSION_ID"

    @pytest.mark.asyncio
    async def test_single_answer_logs_warning(self, make_pipeline, caplog):
        pipeline = make_pipeline()
        pipeline.append_answer(SESSION_ID, "Which region?", "India")

        with caplog.at_level(logging.WARNING, logger="leadscout.pipeline"):
            await pipeline.generate_leads(SESSION_ID)

        assert "only 1 Q&A pair" in caplog.text

    @pytest.mark.asyncio
    async def test_empty_criteria_logs_warning(self, make_pipeline, caplog):
        pipeline = make_pipeline()
        pipeline.append_answer(SESSION_ID, "Anything else?", "we buy bulk")

        with caplog.at_level(logging.WARNING, logger="leadscout.pipeline"):
            result = await pipeline.generate_leads(SESSION_ID)

        assert result.metadata.search_criteria.is_empty
        assert "No search criteria extracted" in caplog.text

    @pytest.mark.asyncio
    async def test_empty_corpus_returns_no_leads_message(self, make_pipeline):
        pipeline = make_pipeline(rows=[])
        pipeline.append_answer(SESSION_ID, "Which region?", "India")

        result = await pipeline.generate_leads(SESSION_ID)

        assert result.leads == []
        assert result.message.startswith("No leads found")

    @pytest.mark.asyncio
    async def test_embedding_failure_surfaces_tagged_error(self, make_pipeline, fake_embedding):
        fake_embedding.embed_single = AsyncMock(
            side_effect=UpstreamServiceError("embedding failed after retries", rate_limited=True)
        )
        pipeline = make_pipeline(embedding=fake_embedding)
        pipeline.append_answer(SESSION_ID, "Which region?", "India")

        with pytest.raises(PipelineError) as exc_info:
            await pipeline.generate_leads(SESSION_ID)

        assert exc_info.value.stage == "embedding"
        assert exc_info.value.retryable is True
        stats = pipeline.stats()
        assert stats["failedGenerations"] == 1
        assert stats["successRatePercent"] == 0


class TestStatsAndHealth:
    @pytest.mark.asyncio
    async def test_rolling_stats_and_reset(self, make_pipeline):
        pipeline = make_pipeline()
        pipeline.append_answer(SESSION_ID, "Which region?", "India")

        await pipeline.generate_leads(SESSION_ID)
        await pipeline.generate_leads(SESSION_ID)

        stats = pipeline.stats()
        assert stats["totalGenerations"] == 2
        assert stats["successfulGenerations"] == 2
        assert stats["successRatePercent"] == 100
        assert stats["averageProcessingTimeMs"] >= 0
        assert stats["sources"]["criteria:heuristic"] == 2

        pipeline.reset_stats()
        assert pipeline.stats()["totalGenerations"] == 0

    def test_health_healthy_when_idle(self, make_pipeline):
        report = make_pipeline().get_health()
        assert report.status == "healthy"
        assert report.components == {"cache": "healthy", "generation": "healthy"}
        assert "search" in report.generation_stats

    def test_health_lists_active_sessions(self, make_pipeline, clock):
        pipeline = make_pipeline()
        pipeline.append_answer(SESSION_ID, "q", "a")
        clock.advance(minutes=61)
        fresh = pipeline.append_answer(None, "q", "a").session_id

        report = pipeline.get_health()

        assert report.cache_stats["activeSessionIds"] == [fresh]
        assert report.cache_stats["expiredSessions"] == 1
        dumped = report.model_dump(mode="json", by_alias=True)
        assert dumped["cacheStats"]["activeSessionIds"] == [fresh]

    @pytest.mark.asyncio
    async def test_health_warns_on_failures(self, make_pipeline, fake_embedding):
        fake_embedding.embed_single = AsyncMock(side_effect=RuntimeError("Embedding service is not available"))
        pipeline = make_pipeline(embedding=fake_embedding)
        pipeline.append_answer(SESSION_ID, "Which region?", "India")

        with pytest.raises(PipelineError):
            await pipeline.generate_leads(SESSION_ID)

        report = pipeline.get_health()
        assert report.status == "warning"
        assert report.components["generation"] == "warning"


class TestSessionInfoAndCleanup:
    def test_session_info(self, make_pipeline):
        pipeline = make_pipeline()
        pipeline.append_answer(SESSION_ID, "What product do you need?", "cotton yarn")

        info = pipeline.get_session_info(SESSION_ID)

        assert info.session_id == SESSION_ID
        assert info.status == SessionStatus.GATHERING
        assert info.question_count == 1
        assert info.question_answers[0].classified_type.value == "product"
        dumped = info.model_dump(by_alias=True)
        assert "questionAnswers" in dumped and "lastActivity" in dumped

    def test_session_info_not_found(self, make_pipeline):
        with pytest.raises(NotFoundError):
            make_pipeline().get_session_info(SESSION_ID)

    def test_clear_expired(self, make_pipeline, clock):
        pipeline = make_pipeline()
        pipeline.append_answer(SESSION_ID, "q", "a")
        clock.advance(minutes=61)
        pipeline.append_answer(None, "q", "a")

        result = pipeline.clear_expired()

        assert result.cleared_count == 1
        assert result.remaining_count == 1


class TestFromConfig:
    def test_builds_named_index_over_corpus_file(self, tmp_path, lead_rows):
        from leadscout.common.config import LeadScoutConfig
        from leadscout.common.row_store import InMemoryRowStore
        from leadscout.pipeline import LeadPipeline

        corpus = tmp_path / "corpus.json"
        corpus.write_text(json.dumps(lead_rows))
        config = LeadScoutConfig()
        config.search.corpus_path = str(corpus)
        config.search.use_index = True
        config.search.index_name = "leads_idx"

        with patch("leadscout.pipeline.LLMClient.from_config"), \
                patch("leadscout.pipeline.EmbeddingService.from_config"), \
                patch.object(InMemoryRowStore, "build_index", autospec=True, return_value=4) as build:
            pipeline = LeadPipeline.from_config(config)

        store = build.call_args.args[0]
        assert build.call_args.args[1:] == ("leads_idx",)
        assert len(store) == len(lead_rows)
        assert pipeline.search_engine.strategy_chain() == ["index", "optimized", "naive"]

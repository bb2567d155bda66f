"""Shared fixtures for LeadScout tests."""

from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, Mock

import pytest


class FakeClock:
    """Manually advanced UTC clock."""

    def __init__(self, start=None):
        self.now = start or datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now += timedelta(**kwargs)


def make_row(row_id, vector, fields=None, created_at=None, content="", source="file_1"):
    return {
        "id": row_id,
        "source_document_id": source,
        "vector": vector,
        "source_fields": fields or {},
        "content": content,
        "created_at": created_at or "2026-01-01T00:00:00Z",
    }


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def lead_rows():
    """Small directory-style corpus. Query vector [1, 0, 0] favors the first rows."""
    return [
        make_row("r1", [1.0, 0.0, 0.0], {
            "Company Name": "Shree Textiles",
            "Contact Person": "Anil Mehta",
            "Email": "anil@shreetextiles.in",
            "Industry": "Textile Manufacturing",
            "Country": "India",
        }, created_at="2026-01-05T00:00:00Z"),
        make_row("r2", [0.9, 0.1, 0.0], {
            "company": "Gujarat Yarn Manufacturers",
            "email": "sales@gujyarn.in",
            "city": "Surat",
        }, created_at="2026-01-04T00:00:00Z"),
        make_row("r3", {"0": 0.8, "1": 0.2, "2": 0.1}, {
            "business_name": "Delhi Exports Ltd",
            "sector": "Trading",
            "location": "New Delhi, India",
        }, created_at="2026-01-03T00:00:00Z"),
        make_row("r4", [0.0, 1.0, 0.0], {
            "company": "Bavaria Software GmbH",
            "industry": "Software",
            "country": "Germany",
        }, created_at="2026-01-02T00:00:00Z"),
        make_row("bad", "not-a-vector", {"company": "Broken Row"},
                 created_at="2026-01-01T00:00:00Z"),
    ]


@pytest.fixture
def fake_embedding():
    embedding = Mock()
    embedding.is_available = True
    embedding.embed_single = AsyncMock(return_value=[1.0, 0.0, 0.0])
    return embedding


@pytest.fixture
def make_pipeline(lead_rows, fake_embedding, clock):
    """Factory for a pipeline over ``lead_rows`` with no LLM configured."""
    from leadscout.common.config import LeadScoutConfig
    from leadscout.common.row_store import InMemoryRowStore
    from leadscout.intake.criteria_extractor import CriteriaExtractor
    from leadscout.intake.session_store import SessionStore
    from leadscout.pipeline import LeadPipeline
    from leadscout.retriever.ranker import LeadFormatter, ResultRanker
    from leadscout.retriever.vector_search import VectorSearchEngine

    def factory(rows=None, llm=None, embedding=None, config=None):
        config = config or LeadScoutConfig()
        store = InMemoryRowStore(lead_rows if rows is None else rows)
        return LeadPipeline(
            session_store=SessionStore(config.session, clock=clock),
            extractor=CriteriaExtractor(llm, config.extraction),
            search_engine=VectorSearchEngine(store, config.search),
            ranker=ResultRanker(config.ranking),
            formatter=LeadFormatter(llm, config.ranking),
            embedding_service=embedding or fake_embedding,
            config=config,
        )

    return factory

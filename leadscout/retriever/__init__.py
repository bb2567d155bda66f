"""
Retriever - Corpus Search and Ranking

Key Components:
- compose: SearchCriteria -> embedding query text
- VectorSearchEngine: index / optimized / naive strategies with fallback, plus batch
- ResultRanker: similarity + criteria overlap, match reasons
- LeadFormatter: LLM or templated lead list

Pipeline:
1. Compose a query from the criteria
2. Embed it and search the corpus
3. Rank candidates and explain matches
4. Format the leads for the caller
"""

from .query_composer import compose
from .vector_search import VectorSearchEngine, SearchResult, SearchOutcome
from .ranker import ResultRanker, LeadFormatter, FormattedLeads, extract_company_info

__all__ = [
    "compose",
    "VectorSearchEngine",
    "SearchResult",
    "SearchOutcome",
    "ResultRanker",
    "LeadFormatter",
    "FormattedLeads",
    "extract_company_info",
]

"""
LeadScout

Turns a short conversational intake (question/answer pairs) into a ranked
list of business records drawn from a corpus of precomputed embeddings.

Pipeline:
    SessionStore -> CriteriaExtractor -> QueryComposer -> embedding
    -> VectorSearchEngine -> ResultRanker

Usage:
    from leadscout.common import load_config
    from leadscout.pipeline import LeadPipeline
    from leadscout.retriever import VectorSearchEngine, ResultRanker
"""

__version__ = "0.1.0"

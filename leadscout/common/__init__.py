"""
LeadScout Common Components

Shared modules used by the intake and retriever stages.
"""

from .config import load_config, save_config, ensure_directories, LeadScoutConfig
from .embedding_service import EmbeddingService
from .llm_client import LLMClient
from .row_store import RowStore, InMemoryRowStore, EmbeddingRecord, CorpusFilter

__all__ = [
    "load_config",
    "save_config",
    "ensure_directories",
    "LeadScoutConfig",
    "EmbeddingService",
    "LLMClient",
    "RowStore",
    "InMemoryRowStore",
    "EmbeddingRecord",
    "CorpusFilter",
]

"""
Intake - Conversational Session Handling

Key Components:
- SessionStore: TTL-bound conversation state
- CriteriaExtractor: Q&A pairs -> SearchCriteria (LLM, then heuristic)
"""

from .session_store import SessionStore, Session, QuestionAnswer, classify_question, session_status
from .criteria_extractor import CriteriaExtractor, ExtractionResult

__all__ = [
    "SessionStore",
    "Session",
    "QuestionAnswer",
    "classify_question",
    "session_status",
    "CriteriaExtractor",
    "ExtractionResult",
]

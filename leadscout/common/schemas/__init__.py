"""
LeadScout Schemas

Pydantic models for criteria, leads, and the responses of the exposed
operations.
"""

from .leads import (
    QuestionType,
    SessionStatus,
    CriteriaSource,
    FormatSource,
    SearchCriteria,
    CompanyInfo,
    Lead,
    QuestionAnswerView,
    AppendAnswerResult,
    GenerationMetadata,
    GenerateLeadsResult,
    SessionInfo,
    HealthReport,
    ClearExpiredResult,
)

__all__ = [
    "QuestionType",
    "SessionStatus",
    "CriteriaSource",
    "FormatSource",
    "SearchCriteria",
    "CompanyInfo",
    "Lead",
    "QuestionAnswerView",
    "AppendAnswerResult",
    "GenerationMetadata",
    "GenerateLeadsResult",
    "SessionInfo",
    "HealthReport",
    "ClearExpiredResult",
]

"""
Lead Generation Schemas

Shapes shared between pipeline stages and returned to callers. Fields are
snake_case in Python and serialize as camelCase (``model_dump(by_alias=True)``).
"""

from datetime import datetime
from typing import Any, Dict, List, Optional
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


# ============================================================================
# Enums
# ============================================================================

class QuestionType(str, Enum):
    """What a Q&A pair is about, derived from the question text"""
    PRODUCT = "product"
    INDUSTRY = "industry"
    REGION = "region"
    KEYWORDS = "keywords"
    GENERAL = "general"


class SessionStatus(str, Enum):
    """Derived conversation state, recomputed on every read"""
    NEW = "new"
    GATHERING = "gathering"
    IDLE = "idle"
    ACTIVE = "active"


class CriteriaSource(str, Enum):
    LLM = "llm"
    HEURISTIC = "heuristic"


class FormatSource(str, Enum):
    LLM = "llm"
    TEMPLATE = "template"


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ============================================================================
# Pipeline models
# ============================================================================

class SearchCriteria(_CamelModel):
    """Structured search criteria extracted from a conversation"""
    product: Optional[str] = None
    industry: Optional[str] = None
    region: Optional[str] = None
    keywords: List[str] = Field(default_factory=list)

    @field_validator("product", "industry", "region", mode="before")
    @classmethod
    def _blank_to_none(cls, v):
        if v is None:
            return None
        if not isinstance(v, str):
            v = str(v)
        v = v.strip()
        return v or None

    @field_validator("keywords", mode="before")
    @classmethod
    def _clean_keywords(cls, v):
        if v is None:
            return []
        if isinstance(v, str):
            v = [v]
        return [str(k).strip() for k in v if k is not None and str(k).strip()]

    @property
    def is_empty(self) -> bool:
        return not (self.product or self.industry or self.region or self.keywords)


class CompanyInfo(_CamelModel):
    """Company projection of a record's free-form source fields"""
    company_name: Optional[str] = None
    contact_person: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    website: Optional[str] = None
    industry: Optional[str] = None
    region: Optional[str] = None


class Lead(_CamelModel):
    """One formatted lead returned to the caller"""
    company_name: Optional[str] = None
    contact_person: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    website: Optional[str] = None
    industry: Optional[str] = None
    region: Optional[str] = None
    score: float = Field(default=0.0, ge=0.0, le=100.0)
    match_reason: str = ""
    match_reasons: List[str] = Field(default_factory=list)


# ============================================================================
# Exposed operation responses
# ============================================================================

class QuestionAnswerView(_CamelModel):
    id: str
    timestamp: datetime
    question: str
    answer: str
    classified_type: QuestionType
    answer_length: int


class AppendAnswerResult(_CamelModel):
    session_id: str
    message_count: int
    status: SessionStatus
    last_activity: datetime
    metadata: Dict[str, Any] = Field(default_factory=dict)


class GenerationMetadata(_CamelModel):
    total_found: int
    processing_time_ms: float
    question_answer_count: int
    search_criteria: Optional[SearchCriteria] = None
    generated_at: datetime
    strategy: Optional[str] = None
    criteria_source: Optional[CriteriaSource] = None
    format_source: Optional[FormatSource] = None
    skipped_records: int = 0


class GenerateLeadsResult(_CamelModel):
    message: str
    leads: List[Lead] = Field(default_factory=list)
    metadata: GenerationMetadata


class SessionInfo(_CamelModel):
    session_id: str
    created_at: datetime
    last_activity: datetime
    status: SessionStatus
    question_count: int
    last_generation_at: Optional[datetime] = None
    question_answers: List[QuestionAnswerView] = Field(default_factory=list)


class HealthReport(_CamelModel):
    status: str
    timestamp: datetime
    cache_stats: Dict[str, Any]
    generation_stats: Dict[str, Any]
    components: Dict[str, str] = Field(default_factory=dict)


class ClearExpiredResult(_CamelModel):
    cleared_count: int
    remaining_count: int

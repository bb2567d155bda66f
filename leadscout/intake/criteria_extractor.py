"""
Criteria Extractor

Turns a conversation's Q&A pairs into SearchCriteria.

Strategies, in order:
1. llm: the language model fills a fixed JSON shape
2. heuristic: dictionary scan of the answers, no external dependency

Both return the same shape; only ``ExtractionResult.source`` tells them apart.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import List, Optional, Sequence

from pydantic import ValidationError as PydanticValidationError

from ..common.config import ExtractionConfig
from ..common.errors import InsufficientDataError
from ..common.fallback import StrategyOutcome, run_fallback_chain
from ..common.llm_client import LLMClient
from ..common.llm_utils import parse_llm_json_strict
from ..common.schemas import CriteriaSource, SearchCriteria
from .session_store import QuestionAnswer

logger = logging.getLogger("leadscout.intake.criteria_extractor")


EXTRACTION_SYSTEM_PROMPT = """You are a lead generation analyst. Read the question-answer pairs from a buyer intake conversation and extract the criteria for finding matching businesses.

Extract:
1. product: the product or service the user is looking for or offering
2. industry: the industry or business sector
3. region: the geographic region, country, or location
4. keywords: any other specific terms or requirements (array of short strings)

Return a JSON object with exactly these keys: product, industry, region, keywords.
Use null for unknown strings and an empty array when there are no keywords."""

EXTRACTION_USER_PROMPT = """Extract lead search criteria from this conversation:

{qa_context}

Return JSON with: product, industry, region, keywords"""

_CRITERIA_KEYS = {"product", "industry", "region", "keywords"}

# Capitalized words that carry no search signal
_STOP_WORDS = {
    "i", "we", "our", "us", "my", "the", "a", "an", "and", "or", "in", "of",
    "for", "to", "we're", "i'm", "it", "is", "are", "yes", "no", "not",
    "any", "some", "looking", "need", "want",
}

# Apostrophes inside words (we're, don't) are not quote marks
_QUOTED = re.compile(r'"([^"]+)"|(?<!\w)\'([^\']+)\'(?!\w)')
_WORD = re.compile(r"[A-Za-z][\w&'-]*")


@dataclass
class ExtractionResult:
    criteria: SearchCriteria
    source: CriteriaSource
    attempts: List[StrategyOutcome] = field(default_factory=list)


def format_qa_context(qas: Sequence[QuestionAnswer]) -> str:
    return "\n\n".join(f"Q: {qa.question}\nA: {qa.answer}" for qa in qas)


class CriteriaExtractor:
    """Extracts search criteria with an LLM, falling back to a keyword scan."""

    def __init__(
        self,
        llm_client: Optional[LLMClient] = None,
        config: Optional[ExtractionConfig] = None,
    ):
        self._llm = llm_client
        self.config = config or ExtractionConfig()

    @property
    def has_llm(self) -> bool:
        return self._llm is not None and self._llm.is_available

    async def extract(self, qas: Sequence[QuestionAnswer]) -> ExtractionResult:
        """
        Extract criteria from a non-empty Q&A sequence.

        Raises:
            InsufficientDataError: if ``qas`` is empty
            PipelineError: only if the heuristic itself fails
        """
        if not qas:
            raise InsufficientDataError(
                "No question-answer pairs to extract criteria from",
                stage="criteria_extraction",
            )

        strategies = []
        if self.has_llm:
            strategies.append(("llm", lambda: self._extract_with_llm(qas)))
        strategies.append(("heuristic", lambda: self._extract_heuristic(qas)))

        chain = await run_fallback_chain("criteria_extraction", strategies)
        source = CriteriaSource(chain.strategy)
        logger.info("Extracted criteria via %s: %s", source.value, chain.value.model_dump())
        return ExtractionResult(criteria=chain.value, source=source, attempts=chain.attempts)

    async def _extract_with_llm(self, qas: Sequence[QuestionAnswer]) -> SearchCriteria:
        prompt = EXTRACTION_USER_PROMPT.format(qa_context=format_qa_context(qas))
        raw = await self._llm.complete(
            prompt,
            system=EXTRACTION_SYSTEM_PROMPT,
            max_tokens=500,
            temperature=0.3,
            json_mode=True,
        )
        data = parse_llm_json_strict(raw)
        if not _CRITERIA_KEYS & data.keys():
            raise ValueError(f"LLM response has none of the criteria keys: {sorted(data)}")
        try:
            return SearchCriteria.model_validate({k: data.get(k) for k in _CRITERIA_KEYS})
        except PydanticValidationError as e:
            raise ValueError(f"LLM criteria failed validation: {e}") from e

    async def _extract_heuristic(self, qas: Sequence[QuestionAnswer]) -> SearchCriteria:
        return self.extract_heuristic(qas)

    def extract_heuristic(self, qas: Sequence[QuestionAnswer]) -> SearchCriteria:
        """
        Deterministic extraction from answer text.

        Industry and region are the first dictionary hit of each category;
        a stem such as "manufactur" resolves to the full answer word
        ("manufacturing"). Product is always left unset.
        """
        text = " ".join(qa.answer for qa in qas)
        lowered = text.lower()

        industry = self._first_match(lowered, self.config.industry_terms)
        region = self._first_match(lowered, self.config.region_terms, stem=False)
        keywords = self._keywords(text, exclude={t for t in (industry, region) if t})

        return SearchCriteria(product=None, industry=industry, region=region, keywords=keywords)

    @staticmethod
    def _first_match(lowered: str, terms: Sequence[str], stem: bool = True) -> Optional[str]:
        for term in terms:
            term = term.lower().strip()
            if not term:
                continue
            tail = r"\w*" if stem else r"\b"
            match = re.search(r"\b" + re.escape(term) + tail, lowered)
            if match:
                return match.group(0)
        return None

    def _keywords(self, text: str, exclude: set) -> List[str]:
        found: List[str] = []
        seen = {e.lower() for e in exclude}

        def add(token: str) -> None:
            key = token.lower()
            if key in seen or key in _STOP_WORDS or len(token) < 2:
                return
            seen.add(key)
            found.append(token)

        for match in _QUOTED.finditer(text):
            add((match.group(1) or match.group(2)).strip())

        unquoted = _QUOTED.sub(" ", text)
        for word in _WORD.findall(unquoted):
            if word[0].isupper():
                add(word)

        return found[: self.config.max_keywords]

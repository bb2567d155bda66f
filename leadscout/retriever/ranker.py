"""
Result Ranker

Blends raw vector similarity with criteria term overlap and formats the
final leads with a reason for every match.

Scoring:
    relevance = sum(w_f * overlap_f) / sum(w_f), over criteria fields present
    combined  = min(1.0, 0.7 * similarity + 0.3 * relevance)

Formatting strategies, in order:
1. llm: the language model rewrites the top candidates and a summary
2. template: threshold filter plus a templated summary message
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

from pydantic import ValidationError as PydanticValidationError

from ..common.config import RankingConfig
from ..common.fallback import StrategyOutcome, run_fallback_chain
from ..common.llm_client import LLMClient
from ..common.llm_utils import parse_llm_json_strict
from ..common.schemas import CompanyInfo, FormatSource, Lead, SearchCriteria
from .vector_search import SearchResult

logger = logging.getLogger("leadscout.retriever.ranker")


# Candidate source-field names per company attribute, matched as substrings
# of the lower-cased key. Contact person goes last: "contact" also appears in
# keys like "contact_email".
COMPANY_FIELD_NAMES = {
    "company_name": ["company", "companyname", "company_name", "business_name", "organization", "firm"],
    "email": ["email", "e_mail", "email_address", "contact_email"],
    "phone": ["phone", "telephone", "mobile", "contact_number", "phone_number"],
    "website": ["website", "web", "url", "site"],
    "industry": ["industry", "business_type", "sector", "category"],
    "region": ["region", "country", "location", "address", "city", "state"],
    "contact_person": ["contact_person", "contact", "person", "representative", "name"],
}

NO_LEADS_MESSAGE = "No leads found matching your criteria. Try broadening your search parameters."
NO_QUALITY_LEADS_MESSAGE = "No high-quality leads found. Consider broadening your search criteria."
FOUND_LEADS_MESSAGE = "Found {count} potential leads matching your criteria."
GENERAL_MATCH_REASON = "General content match"

FORMAT_SYSTEM_PROMPT = """You are a lead generation specialist. Format the provided lead data into a structured JSON response.

Write a short summary message and format each lead with these fields:
- index: the index of the lead in the provided data
- companyName, contactPerson, email, phone, website, industry, region
- score: relevance score from 0 to 100
- matchReason: one sentence on why this lead matches

Return JSON with exactly this structure:
{{"message": "Summary of results", "leads": [lead objects]}}

Prefer the most relevant leads (score above 60) and return at most {max_leads} leads."""

FORMAT_USER_PROMPT = """Format these leads for the search criteria:
Product: {product}
Industry: {industry}
Region: {region}
Keywords: {keywords}

Lead data:
{lead_data}

Return the JSON response with message and leads."""


def _normalize_key(key: str) -> str:
    return str(key).strip().lower().replace(" ", "_").replace("-", "_")


def _terms(value: str) -> List[str]:
    return [t for t in value.lower().split() if t]


_SUFFIXES = ("ings", "ing", "ers", "er", "ed", "es", "s")


def term_root(term: str) -> str:
    """Strip one common English suffix, keeping at least five characters."""
    for suffix in _SUFFIXES:
        if term.endswith(suffix) and len(term) - len(suffix) >= 5:
            return term[: -len(suffix)]
    return term


def term_in(term: str, content: str) -> bool:
    return term in content or term_root(term) in content


def _term_overlap(terms: Sequence[str], content: str) -> float:
    if not terms:
        return 0.0
    return sum(1 for t in terms if term_in(t, content)) / len(terms)


def record_text(result: SearchResult) -> str:
    """Lower-cased text the criteria are matched against."""
    record = result.record
    text = record.content or json.dumps(record.source_fields, default=str)
    return text.lower()


@dataclass
class FormattedLeads:
    message: str
    leads: List[Lead]
    source: FormatSource
    attempts: List[StrategyOutcome] = field(default_factory=list)


class ResultRanker:
    """Final scoring and match explanations for search candidates."""

    def __init__(self, config: Optional[RankingConfig] = None):
        self.config = config or RankingConfig()

    def rank(self, results: Sequence[SearchResult], criteria: SearchCriteria) -> List[SearchResult]:
        """Score every candidate in place and return them best first."""
        for result in results:
            content = record_text(result)
            result.company_info = extract_company_info(result.record.source_fields)
            result.relevance_score = self.relevance(content, criteria)
            result.combined_score = self.combine(result.raw_similarity, result.relevance_score)
            result.match_reasons = self.match_reasons(content, result.raw_similarity, criteria)
        return sorted(results, key=lambda r: r.combined_score, reverse=True)

    def combine(self, similarity: float, relevance: float) -> float:
        combined = (
            self.config.similarity_weight * similarity
            + self.config.relevance_weight * relevance
        )
        return min(1.0, combined)

    def relevance(self, content: str, criteria: SearchCriteria) -> float:
        weights = self.config.field_weights
        score = 0.0
        total = 0.0

        for name in ("product", "industry", "region"):
            value = getattr(criteria, name)
            if value:
                weight = weights.get(name, 0.0)
                score += _term_overlap(_terms(value), content) * weight
                total += weight

        if criteria.keywords:
            weight = weights.get("keywords", 0.0)
            keywords = [k.lower() for k in criteria.keywords]
            score += _term_overlap(keywords, content) * weight
            total += weight

        return score / total if total > 0 else 0.0

    def match_reasons(
        self, content: str, similarity: float, criteria: SearchCriteria
    ) -> List[str]:
        reasons = []

        if criteria.product and _term_overlap(_terms(criteria.product), content) > 0:
            reasons.append(f"Matches product: {criteria.product}")
        if criteria.industry and _term_overlap(_terms(criteria.industry), content) > 0:
            reasons.append(f"Matches industry: {criteria.industry}")
        if criteria.region and _term_overlap(_terms(criteria.region), content) > 0:
            reasons.append(f"Located in region: {criteria.region}")

        matched = [k for k in criteria.keywords if k.lower() in content]
        if matched:
            reasons.append(f"Matches keywords: {', '.join(matched)}")

        if similarity > self.config.high_similarity:
            reasons.append("High content similarity")
        elif similarity > self.config.moderate_similarity:
            reasons.append("Moderate content similarity")

        return reasons or [GENERAL_MATCH_REASON]


def extract_company_info(source_fields: Dict[str, Any]) -> CompanyInfo:
    """
    Project free-form source fields onto company attributes.

    Keys are compared case-insensitively with spaces and hyphens folded to
    underscores. A key claimed by one attribute is not reused by a later
    one, so "Company Name" never doubles as the contact person.
    """
    keys = [(key, _normalize_key(key)) for key in source_fields]
    used = set()
    values = {}

    for attr, names in COMPANY_FIELD_NAMES.items():
        values[attr] = None
        for name in names:
            for key, normalized in keys:
                if key in used or name not in normalized:
                    continue
                value = source_fields[key]
                if value is None or str(value).strip() == "":
                    continue
                values[attr] = str(value).strip()
                used.add(key)
                break
            if values[attr] is not None:
                break

    return CompanyInfo(**values)


class LeadFormatter:
    """Turns ranked results into the caller-facing leads and summary."""

    def __init__(
        self,
        llm_client: Optional[LLMClient] = None,
        config: Optional[RankingConfig] = None,
    ):
        self._llm = llm_client
        self.config = config or RankingConfig()

    @property
    def has_llm(self) -> bool:
        return self._llm is not None and self._llm.is_available

    async def format(
        self, ranked: Sequence[SearchResult], criteria: SearchCriteria
    ) -> FormattedLeads:
        if not ranked:
            return FormattedLeads(message=NO_LEADS_MESSAGE, leads=[], source=FormatSource.TEMPLATE)

        strategies = []
        if self.has_llm:
            strategies.append(("llm", lambda: self._format_with_llm(ranked, criteria)))
        strategies.append(("template", lambda: self._format_template(ranked)))

        chain = await run_fallback_chain("formatting", strategies)
        message, leads = chain.value
        return FormattedLeads(
            message=message,
            leads=leads,
            source=FormatSource(chain.strategy),
            attempts=chain.attempts,
        )

    def lead_summaries(self, ranked: Sequence[SearchResult]) -> List[Dict[str, Any]]:
        summaries = []
        for index, result in enumerate(ranked[: self.config.llm_top_n], 1):
            info = result.company_info or extract_company_info(result.record.source_fields)
            summaries.append({
                "index": index,
                "company": info.company_name or "Unknown Company",
                "contact": info.contact_person or "N/A",
                "email": info.email or "N/A",
                "phone": info.phone or "N/A",
                "website": info.website or "N/A",
                "industry": info.industry or "N/A",
                "region": info.region or "N/A",
                "score": round(result.combined_score * 100),
                "reasons": result.match_reasons or [GENERAL_MATCH_REASON],
            })
        return summaries

    async def _format_with_llm(self, ranked, criteria: SearchCriteria):
        prompt = FORMAT_USER_PROMPT.format(
            product=criteria.product or "Not specified",
            industry=criteria.industry or "Not specified",
            region=criteria.region or "Not specified",
            keywords=", ".join(criteria.keywords) or "None",
            lead_data=json.dumps(self.lead_summaries(ranked), indent=2),
        )
        raw = await self._llm.complete(
            prompt,
            system=FORMAT_SYSTEM_PROMPT.format(max_leads=self.config.max_leads),
            max_tokens=2000,
            temperature=0.3,
            json_mode=True,
        )
        data = parse_llm_json_strict(raw)

        message = data.get("message")
        raw_leads = data.get("leads")
        if not isinstance(message, str) or not isinstance(raw_leads, list):
            raise ValueError("LLM response is missing message or leads")

        leads = []
        for item in raw_leads[: self.config.max_leads]:
            if not isinstance(item, dict):
                raise ValueError("LLM lead is not a JSON object")
            item = dict(item)
            source = self._source_result(ranked, item.pop("index", None))
            try:
                lead = Lead.model_validate(item)
            except PydanticValidationError as e:
                raise ValueError(f"LLM leads failed validation: {e}") from e

            # Reasons always come from the ranker, never from the model
            reasons = list(source.match_reasons) if source else []
            lead.match_reasons = reasons or [GENERAL_MATCH_REASON]
            if not lead.match_reason:
                lead.match_reason = ", ".join(lead.match_reasons)
            leads.append(lead)
        return message, leads

    def _source_result(self, ranked, index) -> Optional[SearchResult]:
        """Map the 1-based ``index`` echoed by the model back to its candidate."""
        if isinstance(index, bool):
            return None
        try:
            position = int(index)
        except (TypeError, ValueError):
            return None
        if 1 <= position <= min(len(ranked), self.config.llm_top_n):
            return ranked[position - 1]
        return None

    async def _format_template(self, ranked):
        kept = [r for r in ranked if r.combined_score > self.config.min_combined_score]
        kept = kept[: self.config.max_leads]

        leads = []
        for result in kept:
            info = result.company_info or extract_company_info(result.record.source_fields)
            leads.append(Lead(
                company_name=info.company_name,
                contact_person=info.contact_person,
                email=info.email,
                phone=info.phone,
                website=info.website,
                industry=info.industry,
                region=info.region,
                score=round(result.combined_score * 100),
                match_reason=", ".join(result.match_reasons),
                match_reasons=list(result.match_reasons),
            ))

        if leads:
            message = FOUND_LEADS_MESSAGE.format(count=len(leads))
        else:
            message = NO_QUALITY_LEADS_MESSAGE
        return message, leads

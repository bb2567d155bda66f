"""
Query Composer

Renders SearchCriteria as one natural-language string for embedding.
The fixed boilerplate biases the embedding toward directory-style
business records; with no criteria at all the query is just the
boilerplate and the search still runs.
"""

from typing import List

from ..common.schemas import SearchCriteria

QUERY_PREFIX = "Business company"
QUERY_SUFFIX = "manufacturer supplier exporter contact information"


def compose_parts(criteria: SearchCriteria) -> List[str]:
    parts = []
    if criteria.product:
        parts.append(criteria.product)
    if criteria.industry:
        parts.append(f"{criteria.industry} industry")
    if criteria.region:
        parts.append(f"located in {criteria.region}")
    if criteria.keywords:
        parts.append(" ".join(criteria.keywords))
    return parts


def compose(criteria: SearchCriteria) -> str:
    """Build the embedding query for ``criteria``."""
    return " ".join([QUERY_PREFIX, *compose_parts(criteria), QUERY_SUFFIX])

"""
Contact Resolution Module

Identity resolution for raw contact records:
- Identity-key matching (email, LinkedIn slug)
- Name + company + domain matching
- Company name matching shared with prospect matching (rapidfuzz for names)

The merge engine itself lives in intelligence.entity_resolution.resolver; it
depends on the registry, which depends on the primitives exported here.
"""

from intelligence.entity_resolution.matchers import (
    MATCH_CONFIDENCE,
    MatchType,
    MergeCandidate,
    companies_match,
    domains_match,
    fuzzy_company_key_match,
    name_similarity,
)

__all__ = [
    "MATCH_CONFIDENCE",
    "MatchType",
    "MergeCandidate",
    "companies_match",
    "domains_match",
    "fuzzy_company_key_match",
    "name_similarity",
]

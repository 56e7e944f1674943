"""
Company and person matching primitives.

Shared by the merge engine (duplicate detection) and the prospect matcher
(who works, or worked, at a target company).
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

from rapidfuzz import fuzz

from intelligence.normalizers import (
    normalize_company_name,
    normalize_domain,
    normalize_person_name,
)
from intelligence.records import RawContact

# Containment matching only when both names are at least this long
CONTAINMENT_MIN_LENGTH = 4

# First-token matching only when the token is longer than this
FIRST_TOKEN_MIN_LENGTH = 4


class MatchType(Enum):
    """How a raw record was tied to an existing contact."""
    EMAIL = "email"
    LINKEDIN = "linkedin"
    NAME_COMPANY_DOMAIN = "name_company_domain"
    DIRECT = "direct"  # caller named the contact (enrichment refresh)
    NO_MATCH = "no_match"


MATCH_CONFIDENCE = {
    MatchType.EMAIL: 1.0,
    MatchType.LINKEDIN: 0.95,
    MatchType.NAME_COMPANY_DOMAIN: 0.8,
    MatchType.DIRECT: 1.0,
}


@dataclass
class MergeCandidate:
    """Result of a duplicate search. Lives only for one merge operation."""
    existing_id: str
    raw: RawContact
    match_type: MatchType
    confidence: float
    details: dict = field(default_factory=dict)

    def __repr__(self) -> str:
        return f"<MergeCandidate({self.existing_id}, {self.match_type.value}, conf={self.confidence:.2f})>"


def companies_match(a: Optional[str], b: Optional[str]) -> bool:
    """
    Check if two company names refer to the same company.

    Exact match on normalized names wins. Otherwise one name may contain the
    other, but only when both are long enough that containment means
    something ("Go" must not match "Google").
    """
    norm_a = normalize_company_name(a)
    norm_b = normalize_company_name(b)
    if not norm_a or not norm_b:
        return False

    if norm_a == norm_b:
        return True

    if len(norm_a) >= CONTAINMENT_MIN_LENGTH and len(norm_b) >= CONTAINMENT_MIN_LENGTH:
        return norm_a in norm_b or norm_b in norm_a

    return False


def fuzzy_company_key_match(a: Optional[str], b: Optional[str]) -> bool:
    """
    Match on the first word of two company names.

    Handles "Alterra" vs "Alterra Mountain Company" while ignoring short,
    generic first words.
    """
    norm_a = normalize_company_name(a)
    norm_b = normalize_company_name(b)
    if not norm_a or not norm_b:
        return False

    first_a = norm_a.split()[0]
    first_b = norm_b.split()[0]
    return len(first_a) > FIRST_TOKEN_MIN_LENGTH and first_a == first_b


def domains_match(a: Optional[str], b: Optional[str]) -> bool:
    """Equality of normalized domains. Empty never matches."""
    norm_a = normalize_domain(a)
    norm_b = normalize_domain(b)
    return bool(norm_a) and norm_a == norm_b


def name_similarity(a: Optional[str], b: Optional[str]) -> float:
    """
    Similarity (0-100) of two person names, insensitive to word order.

    Used to sanity-check identity-key matches, not to find them.
    """
    norm_a = normalize_person_name(a)
    norm_b = normalize_person_name(b)
    if not norm_a or not norm_b:
        return 0.0
    return fuzz.token_sort_ratio(norm_a, norm_b)

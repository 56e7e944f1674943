"""
Prospect Matching

Finds the contacts who could introduce us to a target company and ranks
them. A contact matches a prospect when:
    - their current employer's domain is the prospect's domain
    - their current employer's name matches the prospect's name
    - any work-history entry matches the prospect (alumni when not current)

Matches are a derived cache: every run regenerates them from the registry
and only prospect/match rows are written.
"""

import math
import re
from dataclasses import dataclass, field
from typing import Iterable, Optional

from config.logging import log_banner, logger
from config.settings import settings
from intelligence.batch import BatchResult, CancellationToken
from intelligence.entity_resolution.matchers import (
    companies_match,
    domains_match,
    fuzzy_company_key_match,
)
from intelligence.errors import RegistryUnavailableError
from intelligence.models import Contact, MatchReason, Prospect, WorkHistoryEntry
from intelligence.repository import ContactRegistry

# Checked in order; first group with a keyword in the title sets the weight
TITLE_RELEVANCE_TABLE = (
    (("trust", "safety", "fraud", "risk", "abuse", "compliance"), 1.0),
    (("identity", "authentication", "auth", "security", "verification"), 1.0),
    (("vp product", "head of product", "cpo", "chief product"), 0.9),
    (("vp engineering", "head of engineering", "cto", "chief technology"), 0.8),
    (("ceo", "coo", "founder", "co-founder"), 0.7),
    (("product manager", "pm", "product lead"), 0.6),
    (("engineer", "developer", "software"), 0.4),
)
TITLE_RELEVANCE_FLOOR = 0.1

_TITLE_RELEVANCE_PATTERNS = [
    (re.compile(r"\b(" + "|".join(re.escape(k) for k in keywords) + r")\b"), weight)
    for keywords, weight in TITLE_RELEVANCE_TABLE
]


def title_relevance(title: Optional[str]) -> float:
    """How relevant a title is to the product we sell (0.1-1.0)."""
    if not title:
        return TITLE_RELEVANCE_FLOOR
    lowered = " ".join(title.lower().split())
    for pattern, weight in _TITLE_RELEVANCE_PATTERNS:
        if pattern.search(lowered):
            return weight
    return TITLE_RELEVANCE_FLOOR


def strength_to_unit(value: Optional[float]) -> float:
    """Stored 0-100 connection strength on the 0-1 scale used for matching."""
    if value is None:
        return 0.0
    value = float(value)
    if not math.isfinite(value):
        return 0.0
    return max(0.0, min(1.0, value / 100.0))


def combined_score(connection_strength: float, relevance: float) -> float:
    return connection_strength * 0.6 + relevance * 0.4


def aggregate_connection_score(matches: list["IntroMatch"]) -> int:
    """Prospect-level 0-100 score from all matches."""
    if not matches:
        return 0
    count = len(matches)
    avg_strength = sum(m.connection_strength for m in matches) / count
    avg_relevance = sum(m.title_relevance for m in matches) / count
    score = avg_strength * 50 + avg_relevance * 20 + min(count * 5, 30)
    return max(0, min(100, int(math.floor(score + 0.5))))


def has_warm_intro(
    matches: list["IntroMatch"],
    connection_score: int,
    strength_threshold: float,
    score_threshold: int,
) -> bool:
    """A warm intro exists if one contact is close enough, or the network as a whole is."""
    if any(m.connection_strength >= strength_threshold for m in matches):
        return True
    return bool(matches) and connection_score >= score_threshold


@dataclass(frozen=True)
class NetworkJob:
    company_name: str
    company_domain: Optional[str] = None
    is_current: bool = False


@dataclass(frozen=True)
class NetworkContact:
    """Detached view of a contact for matching."""
    id: str
    full_name: str
    title: Optional[str] = None
    company: Optional[str] = None
    company_domain: Optional[str] = None
    connection_strength: float = 0.0  # 0-1
    jobs: tuple[NetworkJob, ...] = ()

    @classmethod
    def from_contact(cls, contact: Contact, history: Iterable[WorkHistoryEntry] = ()) -> "NetworkContact":
        return cls(
            id=contact.id,
            full_name=contact.full_name,
            title=contact.current_title,
            company=contact.current_company,
            company_domain=contact.company_domain,
            connection_strength=strength_to_unit(contact.connection_strength),
            jobs=tuple(
                NetworkJob(
                    company_name=entry.company_name,
                    company_domain=entry.company_domain,
                    is_current=entry.is_current,
                )
                for entry in history
            ),
        )


@dataclass(frozen=True)
class IntroMatch:
    contact_id: str
    contact_name: str
    contact_title: Optional[str]
    match_reason: MatchReason
    is_current_employee: bool
    matched_company: Optional[str]
    title_relevance: float
    connection_strength: float
    combined_score: float

    def to_row(self, rank: int) -> dict:
        return {
            "contact_id": self.contact_id,
            "match_reason": self.match_reason,
            "is_current_employee": self.is_current_employee,
            "matched_company": self.matched_company,
            "title_relevance": self.title_relevance,
            "connection_strength": self.connection_strength,
            "combined_score": round(self.combined_score, 4),
            "rank": rank,
        }


@dataclass
class ProspectMatchResult:
    prospect_id: Optional[str]
    prospect_name: str
    matches: list[IntroMatch] = field(default_factory=list)
    connection_score: int = 0
    has_warm_intro: bool = False

    @property
    def best_match(self) -> Optional[IntroMatch]:
        return self.matches[0] if self.matches else None


def _match_reason(
    contact: NetworkContact, prospect_name: Optional[str], prospect_domain: Optional[str]
) -> Optional[tuple[MatchReason, bool, Optional[str]]]:
    """(reason, is_current_employee, matched_company) or None."""
    if prospect_domain and domains_match(contact.company_domain, prospect_domain):
        return MatchReason.DOMAIN, True, contact.company
    if prospect_name and contact.company:
        if companies_match(contact.company, prospect_name):
            return MatchReason.NAME, True, contact.company
        if fuzzy_company_key_match(contact.company, prospect_name):
            return MatchReason.FUZZY, True, contact.company

    history_hit = None
    for job in contact.jobs:
        hit = (prospect_name and companies_match(job.company_name, prospect_name)) or (
            prospect_domain and domains_match(job.company_domain, prospect_domain)
        )
        if not hit:
            continue
        if job.is_current:
            return MatchReason.WORK_HISTORY, True, job.company_name
        history_hit = history_hit or (MatchReason.WORK_HISTORY, False, job.company_name)
    return history_hit


def match_prospect(
    prospect_name: Optional[str],
    prospect_domain: Optional[str],
    network: Iterable[NetworkContact],
    strength_threshold: float = 0.7,
    score_threshold: int = 50,
    prospect_id: Optional[str] = None,
) -> ProspectMatchResult:
    """
    Match one prospect against a network snapshot. Pure.

    Matches are sorted by combined score, then current employees before
    alumni, then name.
    """
    matches: list[IntroMatch] = []
    seen: set[str] = set()

    for contact in network:
        if contact.id in seen:
            continue
        found = _match_reason(contact, prospect_name, prospect_domain)
        if not found:
            continue
        seen.add(contact.id)

        reason, is_current, matched_company = found
        relevance = title_relevance(contact.title)
        matches.append(IntroMatch(
            contact_id=contact.id,
            contact_name=contact.full_name,
            contact_title=contact.title,
            match_reason=reason,
            is_current_employee=is_current,
            matched_company=matched_company,
            title_relevance=relevance,
            connection_strength=contact.connection_strength,
            combined_score=combined_score(contact.connection_strength, relevance),
        ))

    matches.sort(key=lambda m: (-m.combined_score, not m.is_current_employee, m.contact_name.lower(), m.contact_id))

    score = aggregate_connection_score(matches)
    return ProspectMatchResult(
        prospect_id=prospect_id,
        prospect_name=prospect_name or "",
        matches=matches,
        connection_score=score,
        has_warm_intro=has_warm_intro(matches, score, strength_threshold, score_threshold),
    )


@dataclass
class MatchingConfig:
    strength_threshold: float = field(default_factory=lambda: settings.WARM_INTRO_STRENGTH_THRESHOLD)
    score_threshold: int = field(default_factory=lambda: settings.WARM_INTRO_SCORE_THRESHOLD)
    max_matches: int = field(default_factory=lambda: settings.MAX_MATCHES_PER_PROSPECT)


@dataclass
class MatchingRunResult(BatchResult):
    matched: int = 0
    warm_intros: int = 0

    def log_summary(self, title: str = "PROSPECT MATCHING SUMMARY"):
        super().log_summary(title)
        logger.info(f"Prospects with matches: {self.matched}")
        logger.info(f"Prospects with warm intros: {self.warm_intros}")


class ProspectMatcher:
    """
    Regenerates connection matches for a tenant's prospects.

    Usage:
        matcher = ProspectMatcher(ContactRegistry(db))
        result = matcher.match_all_prospects("team-1")
    """

    def __init__(self, registry: ContactRegistry, config: Optional[MatchingConfig] = None):
        self.registry = registry
        self.config = config or MatchingConfig()

    def load_network(self, tenant_id: str) -> list[NetworkContact]:
        contacts = self.registry.list_contacts(tenant_id)
        history = self.registry.work_history_for(tenant_id, [c.id for c in contacts])
        return [NetworkContact.from_contact(c, history.get(c.id, [])) for c in contacts]

    def match(self, prospect: Prospect, network: list[NetworkContact]) -> ProspectMatchResult:
        return match_prospect(
            prospect.company_name,
            prospect.company_domain,
            network,
            strength_threshold=self.config.strength_threshold,
            score_threshold=self.config.score_threshold,
            prospect_id=prospect.id,
        )

    def match_and_record(
        self,
        tenant_id: str,
        prospect: Prospect,
        network: Optional[list[NetworkContact]] = None,
    ) -> ProspectMatchResult:
        """Match one prospect and replace its stored matches. Does not commit."""
        if network is None:
            network = self.load_network(tenant_id)
        result = self.match(prospect, network)
        top = result.matches[: self.config.max_matches]
        self.registry.record_connection_matches(
            tenant_id,
            prospect.id,
            [m.to_row(rank) for rank, m in enumerate(top, 1)],
            connection_score=result.connection_score,
            has_warm_intro=result.has_warm_intro,
            match_count=len(result.matches),
        )
        return result

    def match_all_prospects(
        self,
        tenant_id: str,
        prospect_ids: Optional[Iterable[str]] = None,
        cancel_token: Optional[CancellationToken] = None,
    ) -> MatchingRunResult:
        log_banner(f"PROSPECT MATCHING ({tenant_id})")
        prospects = self.registry.list_prospects(tenant_id, prospect_ids=prospect_ids)
        network = self.load_network(tenant_id)
        logger.info(f"Prospects: {len(prospects)} | Contacts in network: {len(network)}")

        run = MatchingRunResult()
        targets = [(p.id, p.company_name) for p in prospects]

        for prospect_id, name in targets:
            if cancel_token and cancel_token.cancelled:
                run.cancelled = True
                break

            label = f"{name} ({prospect_id})"
            try:
                prospect = self.registry.get_prospect(tenant_id, prospect_id)
                result = self.match_and_record(tenant_id, prospect, network)
                self.registry.commit()
            except RegistryUnavailableError:
                raise
            except Exception as e:
                self.registry.rollback()
                logger.error(f"Matching failed for {label}: {e}")
                run.record_failure(label, e)
                continue

            run.record_success()
            if result.matches:
                run.matched += 1
                logger.info(
                    f"  -> {name}: {len(result.matches)} matches, score {result.connection_score}"
                    f"{' (warm intro)' if result.has_warm_intro else ''}"
                )
            if result.has_warm_intro:
                run.warm_intros += 1

        run.log_summary()
        return run

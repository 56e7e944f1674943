"""
Two-Pass Proximity Scoring

Estimates how close a relationship is, on a 0-100 scale.

Pass 1 (after ingestion) uses connection strength and interaction data:
    - Connection strength: up to 50 points
    - Email interactions: 5 per email, up to 25
    - Meetings: 5 per meeting, up to 15
    - Recency bonus: up to 10

Pass 2 (after enrichment) starts from the Pass 1 score and adds work-history
overlap with the operating team:
    - Shared companies: 5 per company, up to 15
    - Current employer shared with the team: +10
    - Shared employer within the last 3 years: +10

Re-running Pass 1 alone resets the score to the Pass 1 value, dropping any
Pass 2 bonuses until Pass 2 runs again.
"""

import math
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from typing import Iterable, Optional

from config.logging import log_banner, logger
from intelligence.batch import BatchResult, CancellationToken
from intelligence.errors import RegistryUnavailableError, ScoringOrderError
from intelligence.models import Contact, WorkHistoryEntry
from intelligence.normalizers import normalize_company_name, utcnow
from intelligence.repository import ContactRegistry

# (max days since last interaction, bonus points)
RECENCY_BANDS = (
    (7, 10),
    (30, 7),
    (90, 4),
    (365, 2),
)

RECENT_OVERLAP_DAYS = 3 * 365


def _signal(value) -> float:
    """Coerce a raw signal to a finite, non-negative float."""
    try:
        value = float(value)
    except (TypeError, ValueError):
        return 0.0
    if not math.isfinite(value) or value < 0:
        return 0.0
    return value


def clamp_score(value: float) -> int:
    """Round half-up and clamp to [0, 100]."""
    if not math.isfinite(value):
        value = 100.0 if value > 0 else 0.0
    return max(0, min(100, int(math.floor(value + 0.5))))


def recency_bonus(days_since_last_interaction: Optional[float]) -> int:
    """Bonus points for a recent interaction. Future timestamps count as today."""
    if days_since_last_interaction is None:
        return 0
    try:
        days = float(days_since_last_interaction)
    except (TypeError, ValueError):
        return 0
    if math.isnan(days):
        return 0
    days = max(0.0, days)

    for max_days, bonus in RECENCY_BANDS:
        if days <= max_days:
            return bonus
    return 0


def pass1_score(
    connection_strength: float,
    email_count: float,
    meeting_count: float,
    days_since_last_interaction: Optional[float],
) -> int:
    """
    Pass 1 proximity score.

    Args:
        connection_strength: 0-100 strength from the social graph
        email_count: inbound + outbound emails
        meeting_count: meetings held
        days_since_last_interaction: None if never interacted
    """
    score = (
        min(_signal(connection_strength) * 0.5, 50)
        + min(_signal(email_count) * 5, 25)
        + min(_signal(meeting_count) * 5, 15)
        + recency_bonus(days_since_last_interaction)
    )
    return clamp_score(score)


def pass2_score(
    pass1: float,
    shared_company_count: float,
    current_company_shared: bool,
    worked_together_recently: bool,
) -> int:
    """Pass 2 proximity score, using the Pass 1 score as its floor."""
    score = (
        _signal(pass1)
        + min(_signal(shared_company_count) * 5, 15)
        + (10 if current_company_shared else 0)
        + (10 if worked_together_recently else 0)
    )
    return clamp_score(score)


@dataclass
class Pass1Signals:
    connection_strength: float = 0.0
    email_count: int = 0
    meeting_count: int = 0
    days_since_last_interaction: Optional[int] = None

    def score(self) -> int:
        return pass1_score(
            self.connection_strength,
            self.email_count,
            self.meeting_count,
            self.days_since_last_interaction,
        )


@dataclass
class Pass2Signals:
    shared_companies: list[str] = field(default_factory=list)
    current_company_shared: bool = False
    worked_together_recently: bool = False

    def score(self, pass1: int) -> int:
        return pass2_score(
            pass1,
            len(self.shared_companies),
            self.current_company_shared,
            self.worked_together_recently,
        )


def pass1_signals(contact: Contact, now: Optional[datetime] = None) -> Pass1Signals:
    """Read Pass 1 inputs off a contact."""
    now = now or utcnow()
    days = None
    if contact.last_interaction_at is not None:
        days = (now - contact.last_interaction_at).days

    return Pass1Signals(
        connection_strength=contact.connection_strength or 0.0,
        email_count=contact.email_count,
        meeting_count=contact.meeting_count or 0,
        days_since_last_interaction=days,
    )


def team_company_keys(team_companies: Iterable[str]) -> frozenset[str]:
    """Normalize the externally supplied list of team employers."""
    return frozenset(
        key for key in (normalize_company_name(name) for name in team_companies) if key
    )


def pass2_signals(
    contact: Contact,
    work_history: Iterable[WorkHistoryEntry],
    team_companies: frozenset[str],
    today: Optional[date] = None,
) -> Pass2Signals:
    """
    Derive Pass 2 inputs from work history overlap with the team.

    Args:
        team_companies: normalized company keys (see team_company_keys)
    """
    today = today or utcnow().date()
    cutoff = today - timedelta(days=RECENT_OVERLAP_DAYS)

    shared: list[str] = []
    recent = False
    for entry in work_history:
        key = entry.company_normalized or normalize_company_name(entry.company_name)
        if key not in team_companies:
            continue
        if key not in shared:
            shared.append(key)
        if entry.is_current or (entry.end_date is not None and entry.end_date >= cutoff):
            recent = True

    current_key = normalize_company_name(contact.current_company)
    return Pass2Signals(
        shared_companies=shared,
        current_company_shared=bool(current_key) and current_key in team_companies,
        worked_together_recently=recent,
    )


class ProximityScorer:
    """
    Batch proximity scoring over a tenant's registry.

    Each contact is scored and committed on its own; failures are recorded
    and the batch moves on.

    Usage:
        scorer = ProximityScorer(ContactRegistry(db))
        result = scorer.rescore_pass1("team-1")
        result = scorer.rescore_pass2("team-1", ["Stripe", "Google"])
    """

    def __init__(self, registry: ContactRegistry):
        self.registry = registry

    def score_pass1(self, tenant_id: str, contact: Contact, now: Optional[datetime] = None) -> int:
        """Compute and store the Pass 1 score for one contact. Does not commit."""
        now = now or utcnow()
        score = pass1_signals(contact, now).score()
        self.registry.upsert_contact(
            tenant_id,
            {
                "proximity_pass1_score": score,
                "proximity_score": score,
                "proximity_pass": 1,
                "scored_at": now,
            },
            contact_id=contact.id,
        )
        return score

    def score_pass2(
        self,
        tenant_id: str,
        contact: Contact,
        work_history: Iterable[WorkHistoryEntry],
        team_companies: frozenset[str],
        now: Optional[datetime] = None,
    ) -> int:
        """
        Compute and store the Pass 2 score for one contact. Does not commit.

        Raises:
            ScoringOrderError: contact has no Pass 1 score yet
        """
        if contact.proximity_pass1_score is None:
            raise ScoringOrderError(f"Pass 1 has not been run for contact {contact.id}")

        now = now or utcnow()
        signals = pass2_signals(contact, work_history, team_companies, now.date())
        score = signals.score(contact.proximity_pass1_score)
        self.registry.upsert_contact(
            tenant_id,
            {"proximity_score": score, "proximity_pass": 2, "scored_at": now},
            contact_id=contact.id,
        )
        logger.debug(
            f"Pass 2 {contact.full_name}: {contact.proximity_pass1_score} -> {score} "
            f"(shared={signals.shared_companies})"
        )
        return score

    def rescore_pass1(
        self,
        tenant_id: str,
        contact_ids: Optional[Iterable[str]] = None,
        cancel_token: Optional[CancellationToken] = None,
    ) -> BatchResult:
        """Re-derive Pass 1 scores from raw signals."""
        log_banner(f"PROXIMITY PASS 1 ({tenant_id})")
        contacts = self.registry.list_contacts(tenant_id, contact_ids=contact_ids)
        now = utcnow()
        result = BatchResult()

        for contact in contacts:
            if cancel_token and cancel_token.cancelled:
                result.cancelled = True
                break
            self._run_item(result, contact, lambda c=contact: self.score_pass1(tenant_id, c, now))

        result.log_summary("PASS 1 SUMMARY")
        return result

    def rescore_pass2(
        self,
        tenant_id: str,
        team_companies: Iterable[str],
        contact_ids: Optional[Iterable[str]] = None,
        cancel_token: Optional[CancellationToken] = None,
    ) -> BatchResult:
        """Apply work-history bonuses on top of stored Pass 1 scores."""
        log_banner(f"PROXIMITY PASS 2 ({tenant_id})")
        team_keys = team_company_keys(team_companies)
        logger.info(f"Team companies: {len(team_keys)}")

        contacts = self.registry.list_contacts(tenant_id, contact_ids=contact_ids)
        history = self.registry.work_history_for(tenant_id, [c.id for c in contacts])
        now = utcnow()
        result = BatchResult()

        for contact in contacts:
            if cancel_token and cancel_token.cancelled:
                result.cancelled = True
                break
            self._run_item(
                result,
                contact,
                lambda c=contact: self.score_pass2(tenant_id, c, history.get(c.id, []), team_keys, now),
            )

        result.log_summary("PASS 2 SUMMARY")
        return result

    def _run_item(self, result: BatchResult, contact: Contact, work):
        label = f"{contact.full_name} ({contact.id})"
        try:
            work()
            self.registry.commit()
        except RegistryUnavailableError:
            raise
        except Exception as e:
            self.registry.rollback()
            logger.warning(f"Scoring failed for {label}: {e}")
            result.record_failure(label, e)
            return
        result.record_success()

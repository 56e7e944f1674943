"""
Contact Merge Engine

Decides whether a raw record describes a contact already in the registry and
produces the field-level diff to apply, following a fill-if-empty policy with
overwrite for authoritative sources.
"""

import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Iterable, Optional

from config.logging import logger
from intelligence.batch import BatchResult, CancellationToken
from intelligence.entity_resolution.matchers import (
    MATCH_CONFIDENCE,
    MatchType,
    MergeCandidate,
    name_similarity,
)
from intelligence.errors import (
    DuplicateContactError,
    MalformedRecordError,
    RegistryUnavailableError,
    RelationshipIntelError,
)
from intelligence.models import Contact, SourceTag
from intelligence.normalizers import (
    normalize_domain,
    normalize_email,
    normalize_linkedin_slug,
    normalize_timestamp,
)
from intelligence.records import RawContact, WorkHistoryData, to_percent_scale
from intelligence.repository import UNIQUE_IDENTITY_FIELDS, ContactRegistry

# Identity keys are only ever filled, never overwritten
IDENTITY_FIELDS = ("email", "linkedin_slug", "external_id")

TEXT_FIELDS = ("full_name", "current_title", "current_company", "company_domain", "industry")

# Numeric signals take the max of existing and incoming, whatever the source
MAX_FIELDS = (
    "connection_strength",
    "email_inbound_count",
    "email_outbound_count",
    "meeting_count",
)

AUTHORITATIVE_FIELDS: dict[SourceTag, frozenset[str]] = {
    SourceTag.ENRICHMENT: frozenset({"current_title", "current_company", "company_domain", "industry"}),
    SourceTag.MANUAL: frozenset(TEXT_FIELDS),
    SourceTag.SOCIAL_GRAPH: frozenset({"connection_strength"}),
    SourceTag.SPREADSHEET: frozenset(),
}


@dataclass
class ResolverConfig:
    """Configuration for contact resolution."""
    # Identity-key matches whose names score below this (0-100) are flagged
    name_mismatch_threshold: int = 50

    # How many times a uniqueness conflict is retried as a merge
    max_conflict_retries: int = 2


class MergeAction(Enum):
    INSERT = "insert"
    MERGE = "merge"
    NO_CHANGE = "no_change"


@dataclass
class MergeDecision:
    """What the merge engine decided for one raw record."""
    action: MergeAction
    match_type: MatchType = MatchType.NO_MATCH
    contact_id: Optional[str] = None
    confidence: float = 0.0
    changes: dict = field(default_factory=dict)
    details: dict = field(default_factory=dict)

    @property
    def is_match(self) -> bool:
        return self.match_type != MatchType.NO_MATCH

    def __repr__(self) -> str:
        return (
            f"<MergeDecision({self.action.value}, {self.match_type.value}, "
            f"contact={self.contact_id}, fields={sorted(self.changes)})>"
        )


@dataclass
class IngestionResult(BatchResult):
    """Batch outcome for an ingestion run."""
    inserted: int = 0
    merged: int = 0
    unchanged: int = 0
    conflicts_resolved: int = 0

    def record_decision(self, decision: MergeDecision):
        self.record_success()
        if decision.action == MergeAction.INSERT:
            self.inserted += 1
        elif decision.action == MergeAction.MERGE:
            self.merged += 1
        else:
            self.unchanged += 1
        if decision.details.get("conflict_retries"):
            self.conflicts_resolved += 1

    def log_summary(self, title: str = "INGESTION SUMMARY"):
        logger.info(
            f"Inserted: {self.inserted} | Merged: {self.merged} | "
            f"Unchanged: {self.unchanged} | Conflicts resolved: {self.conflicts_resolved}"
        )
        super().log_summary(title)


def _clean_text(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    value = " ".join(str(value).split())
    return value or None


def _clean_count(value) -> Optional[int]:
    if value is None:
        return None
    try:
        value = float(value)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(value) or value < 0:
        return 0
    return int(value)


class ContactResolver:
    """
    Merge engine for raw contact records.

    Resolution strategy:
    1. Look up a candidate (email, then LinkedIn slug, then name+company+domain)
    2. Identity-key matches are cross-checked against the name
    3. Diff the incoming record against the candidate under the merge policy
    4. Insert optimistically when there is no candidate; a uniqueness
       conflict means another ingestion got there first, so retry as a merge

    Usage:
        resolver = ContactResolver(ContactRegistry(db))
        decision = resolver.apply("team-1", raw_contact)
        registry.commit()
    """

    def __init__(self, registry: ContactRegistry, config: Optional[ResolverConfig] = None):
        self.registry = registry
        self.config = config or ResolverConfig()

    def resolve(self, tenant_id: str, raw: RawContact) -> MergeDecision:
        """
        Work out what applying a raw record would do, without writing.

        Raises:
            MalformedRecordError: no candidate and nothing to build a contact from
        """
        incoming = self._incoming_values(raw)
        candidates = self.registry.find_candidates(tenant_id, raw)

        if not candidates:
            data = self._insert_data(raw, incoming)
            logger.debug(f"No candidate for {raw.label}, will insert")
            return MergeDecision(action=MergeAction.INSERT, changes=data)

        candidate = candidates[0]
        existing = self.registry.get_contact(tenant_id, candidate.existing_id)
        if existing is None:
            raise RelationshipIntelError(f"Candidate vanished: {candidate.existing_id}")

        details = dict(candidate.details)
        if candidate.match_type in (MatchType.EMAIL, MatchType.LINKEDIN):
            self._cross_check_name(raw, existing, details)

        return self._diff(tenant_id, existing, raw, incoming, candidate, details)

    def apply(self, tenant_id: str, raw: RawContact) -> MergeDecision:
        """
        Resolve a raw record and write the result. Does not commit.

        A uniqueness conflict on write is retried (re-resolving sees the
        winning row) and reported as a normal merge.
        """
        attempts = 0
        while True:
            decision = self.resolve(tenant_id, raw)
            if decision.action == MergeAction.NO_CHANGE:
                break
            try:
                decision.contact_id = self.registry.upsert_contact(
                    tenant_id, decision.changes, contact_id=decision.contact_id
                )
                break
            except DuplicateContactError as e:
                attempts += 1
                if attempts > self.config.max_conflict_retries:
                    raise
                logger.info(f"Uniqueness conflict for {raw.label}, retrying as merge: {e}")

        if attempts:
            decision.details["conflict_retries"] = attempts
        logger.debug(f"Applied {decision}")
        return decision

    def apply_enrichment(
        self,
        tenant_id: str,
        contact_id: str,
        raw: RawContact,
        work_history: Iterable[WorkHistoryData],
    ) -> MergeDecision:
        """
        Merge an enrichment payload into a known contact and replace its
        work history wholesale. Does not commit.
        """
        existing = self.registry.get_contact(tenant_id, contact_id)
        if existing is None:
            raise RelationshipIntelError(f"Contact not found: {contact_id}")

        candidate = MergeCandidate(
            existing_id=existing.id,
            raw=raw,
            match_type=MatchType.DIRECT,
            confidence=MATCH_CONFIDENCE[MatchType.DIRECT],
        )
        decision = self._diff(tenant_id, existing, raw, self._incoming_values(raw), candidate, {})
        if decision.action == MergeAction.MERGE:
            self.registry.upsert_contact(tenant_id, decision.changes, contact_id=existing.id)

        entries = self.registry.replace_work_history(tenant_id, existing.id, work_history)
        decision.details["work_history_entries"] = entries
        return decision

    def ingest_records(
        self,
        tenant_id: str,
        records: Iterable[RawContact],
        cancel_token: Optional[CancellationToken] = None,
    ) -> IngestionResult:
        """
        Apply a stream of raw records, committing per record.

        Bad records are recorded and skipped. Only RegistryUnavailableError
        escapes.
        """
        result = IngestionResult()

        for raw in records:
            if cancel_token and cancel_token.cancelled:
                result.cancelled = True
                break

            try:
                decision = self.apply(tenant_id, raw)
                self.registry.commit()
            except RegistryUnavailableError:
                raise
            except MalformedRecordError as e:
                self.registry.rollback()
                logger.warning(f"Skipping malformed record {raw.label}: {e}")
                result.record_skip(raw.label, e)
                continue
            except Exception as e:
                self.registry.rollback()
                logger.error(f"Failed to ingest {raw.label}: {e}")
                result.record_failure(raw.label, e)
                continue

            result.record_decision(decision)

        return result

    def _incoming_values(self, raw: RawContact) -> dict:
        """Normalize a raw record into contact column values (None = absent)."""
        slug = normalize_linkedin_slug(raw.linkedin_url)
        return {
            "email": normalize_email(raw.email),
            "linkedin_slug": slug,
            "linkedin_url": _clean_text(raw.linkedin_url) if slug else None,
            "external_id": _clean_text(raw.external_id),
            "full_name": _clean_text(raw.full_name),
            "current_title": _clean_text(raw.title),
            "current_company": _clean_text(raw.company),
            "company_domain": normalize_domain(raw.company_domain),
            "industry": _clean_text(raw.industry),
            "connection_strength": to_percent_scale(raw.connection_strength),
            "email_inbound_count": _clean_count(raw.email_inbound_count),
            "email_outbound_count": _clean_count(raw.email_outbound_count),
            "meeting_count": _clean_count(raw.meeting_count),
            "last_interaction_at": normalize_timestamp(raw.last_interaction_at),
        }

    def _insert_data(self, raw: RawContact, incoming: dict) -> dict:
        data = {key: value for key, value in incoming.items() if value is not None}

        if not data.get("full_name"):
            fallback = None
            if data.get("email"):
                fallback = data["email"].split("@", 1)[0]
            elif data.get("linkedin_slug"):
                fallback = data["linkedin_slug"]
            if not fallback:
                raise MalformedRecordError("record has no name, email or LinkedIn profile")
            data["full_name"] = fallback

        data["source"] = raw.source
        data["field_sources"] = {
            key: raw.source.value for key in data if key not in ("source", "linkedin_url")
        }
        return data

    def _cross_check_name(self, raw: RawContact, existing: Contact, details: dict):
        if not raw.full_name or not existing.full_name:
            return
        score = name_similarity(raw.full_name, existing.full_name)
        if score < self.config.name_mismatch_threshold:
            logger.warning(
                f"Identity key matched but name mismatch: "
                f"'{raw.full_name}' vs '{existing.full_name}' (score: {score:.0f})"
            )
            details["name_mismatch"] = True
            details["name_score"] = score

    def _diff(
        self,
        tenant_id: str,
        existing: Contact,
        raw: RawContact,
        incoming: dict,
        candidate: MergeCandidate,
        details: dict,
    ) -> MergeDecision:
        changes: dict = {}
        authoritative = AUTHORITATIVE_FIELDS.get(raw.source, frozenset())

        for key in IDENTITY_FIELDS:
            value = incoming[key]
            if not value or getattr(existing, key):
                continue
            if key in UNIQUE_IDENTITY_FIELDS:
                owner = self.registry.identity_key_owner(tenant_id, key, value)
                if owner and owner != existing.id:
                    logger.warning(
                        f"Not copying {key}={value} onto {existing.id}: already owned by {owner}"
                    )
                    details.setdefault("skipped_identity_keys", []).append(key)
                    continue
            changes[key] = value
            if key == "linkedin_slug":
                changes["linkedin_url"] = incoming["linkedin_url"]

        for key in TEXT_FIELDS:
            value = incoming[key]
            if not value:
                continue
            current = getattr(existing, key)
            if not current or (key in authoritative and current != value):
                changes[key] = value

        for key in MAX_FIELDS:
            value = incoming[key]
            if value is not None and value > (getattr(existing, key) or 0):
                changes[key] = value

        last_seen = incoming["last_interaction_at"]
        if last_seen and (existing.last_interaction_at is None or last_seen > existing.last_interaction_at):
            changes["last_interaction_at"] = last_seen

        if not changes:
            return MergeDecision(
                action=MergeAction.NO_CHANGE,
                match_type=candidate.match_type,
                contact_id=existing.id,
                confidence=candidate.confidence,
                details=details,
            )

        provenance = dict(existing.field_sources or {})
        for key in changes:
            if key != "linkedin_url":
                provenance[key] = raw.source.value
        changes["field_sources"] = provenance

        return MergeDecision(
            action=MergeAction.MERGE,
            match_type=candidate.match_type,
            contact_id=existing.id,
            confidence=candidate.confidence,
            changes=changes,
            details=details,
        )

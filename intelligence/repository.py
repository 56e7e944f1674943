"""
Contact registry repository.

The only module that talks to the database for the core. Every query is
scoped by tenant; a row belonging to another tenant is treated as absent.
Connectivity failures surface as RegistryUnavailableError, which batch
runners let propagate.
"""

import functools
from typing import Iterable, Optional

from sqlalchemy.exc import IntegrityError, InterfaceError, OperationalError
from sqlalchemy.orm import Session

from config.logging import logger
from intelligence.entity_resolution.matchers import MATCH_CONFIDENCE, MatchType, MergeCandidate
from intelligence.errors import (
    DuplicateContactError,
    RegistryUnavailableError,
    RelationshipIntelError,
)
from intelligence.models import (
    Category,
    ConnectionMatch,
    Contact,
    FirmType,
    KnownFirm,
    Prospect,
    WorkHistoryEntry,
)
from intelligence.normalizers import (
    normalize_company_name,
    normalize_domain,
    normalize_email,
    normalize_linkedin_slug,
    normalize_person_name,
    utcnow,
)
from intelligence.records import RawContact, WorkHistoryData

# Identity columns protected by unique constraints per tenant
UNIQUE_IDENTITY_FIELDS = ("email", "linkedin_slug")


def _registry_call(method):
    """Translate connectivity errors into RegistryUnavailableError."""

    @functools.wraps(method)
    def wrapper(self, *args, **kwargs):
        try:
            return method(self, *args, **kwargs)
        except (OperationalError, InterfaceError) as e:
            logger.error(f"Registry unavailable during {method.__name__}: {e}")
            raise RegistryUnavailableError(str(e)) from e

    return wrapper


class ContactRegistry:
    """
    Tenant-scoped CRUD and query access to contacts, prospects and matches.

    Usage:
        registry = ContactRegistry(db)
        candidates = registry.find_candidates("team-1", raw_contact)
    """

    def __init__(self, db: Session):
        self.db = db

    # ------------------------------------------------------------------
    # Contacts
    # ------------------------------------------------------------------

    @_registry_call
    def find_candidates(self, tenant_id: str, incoming: RawContact) -> list[MergeCandidate]:
        """
        Find the existing contact a raw record most likely describes.

        Search order, first hit wins:
        1. Normalized email
        2. LinkedIn slug
        3. Person name + company name + company domain, all normalized
        """
        email = normalize_email(incoming.email)
        if email:
            contact = self._contacts(tenant_id).filter(Contact.email == email).first()
            if contact:
                return [self._candidate(contact, incoming, MatchType.EMAIL, email=email)]

        slug = normalize_linkedin_slug(incoming.linkedin_url)
        if slug:
            contact = self._contacts(tenant_id).filter(Contact.linkedin_slug == slug).first()
            if contact:
                return [self._candidate(contact, incoming, MatchType.LINKEDIN, linkedin_slug=slug)]

        name_key = normalize_person_name(incoming.full_name)
        company_key = normalize_company_name(incoming.company)
        domain = normalize_domain(incoming.company_domain)
        if name_key and company_key and domain:
            same_domain = (
                self._contacts(tenant_id)
                .filter(Contact.company_domain == domain)
                .order_by(Contact.created_at, Contact.id)
                .all()
            )
            for contact in same_domain:
                if (
                    normalize_person_name(contact.full_name) == name_key
                    and normalize_company_name(contact.current_company) == company_key
                ):
                    return [self._candidate(
                        contact, incoming, MatchType.NAME_COMPANY_DOMAIN,
                        company=company_key, domain=domain,
                    )]

        return []

    def _candidate(self, contact: Contact, incoming: RawContact, match_type: MatchType, **details) -> MergeCandidate:
        return MergeCandidate(
            existing_id=contact.id,
            raw=incoming,
            match_type=match_type,
            confidence=MATCH_CONFIDENCE[match_type],
            details=details,
        )

    def _contacts(self, tenant_id: str):
        return self.db.query(Contact).filter(Contact.tenant_id == tenant_id)

    @_registry_call
    def get_contact(self, tenant_id: str, contact_id: str) -> Optional[Contact]:
        return self._contacts(tenant_id).filter(Contact.id == contact_id).first()

    @_registry_call
    def list_contacts(
        self,
        tenant_id: str,
        category: Optional[Category] = None,
        contact_ids: Optional[Iterable[str]] = None,
        limit: Optional[int] = None,
    ) -> list[Contact]:
        query = self._contacts(tenant_id)
        if category is not None:
            query = query.filter(Contact.category == category)
        if contact_ids is not None:
            query = query.filter(Contact.id.in_(list(contact_ids)))
        query = query.order_by(Contact.created_at, Contact.id)
        if limit:
            query = query.limit(limit)
        return query.all()

    @_registry_call
    def identity_key_owner(self, tenant_id: str, field: str, value: str) -> Optional[str]:
        """Id of the contact holding a unique identity value, if any."""
        if field not in UNIQUE_IDENTITY_FIELDS:
            raise ValueError(f"Not a unique identity field: {field}")
        row = (
            self.db.query(Contact.id)
            .filter(Contact.tenant_id == tenant_id, getattr(Contact, field) == value)
            .first()
        )
        return row[0] if row else None

    @_registry_call
    def upsert_contact(self, tenant_id: str, data: dict, contact_id: Optional[str] = None) -> str:
        """
        Insert a new contact, or apply field changes to an existing one.

        Writes happen inside a SAVEPOINT so a uniqueness collision only undoes
        this write. Collisions raise DuplicateContactError for the caller to
        resolve as a merge.
        """
        try:
            with self.db.begin_nested():
                if contact_id is None:
                    contact = Contact(tenant_id=tenant_id, **data)
                    self.db.add(contact)
                else:
                    contact = self.get_contact(tenant_id, contact_id)
                    if contact is None:
                        raise RelationshipIntelError(f"Contact not found: {contact_id}")
                    for field_name, value in data.items():
                        setattr(contact, field_name, value)
                self.db.flush()
        except IntegrityError as e:
            raise DuplicateContactError(str(e.orig)) from e

        return contact.id

    @_registry_call
    def delete_contacts(self, tenant_id: str, contact_ids: Iterable[str]) -> int:
        """Hard delete (operator purge only). Work history and matches cascade."""
        deleted = 0
        for contact in self.list_contacts(tenant_id, contact_ids=contact_ids):
            self.db.delete(contact)
            deleted += 1
        self.db.flush()
        return deleted

    # ------------------------------------------------------------------
    # Work history
    # ------------------------------------------------------------------

    @_registry_call
    def replace_work_history(
        self, tenant_id: str, contact_id: str, entries: Iterable[WorkHistoryData]
    ) -> int:
        """Replace a contact's work history wholesale. Returns the new entry count."""
        contact = self.get_contact(tenant_id, contact_id)
        if contact is None:
            raise RelationshipIntelError(f"Contact not found: {contact_id}")

        contact.work_history = [
            WorkHistoryEntry(
                company_name=entry.company_name,
                company_normalized=normalize_company_name(entry.company_name),
                company_domain=normalize_domain(entry.company_domain),
                company_industry=entry.company_industry,
                title=entry.title,
                start_date=entry.start_date,
                end_date=entry.end_date,
                is_current=entry.is_current,
            )
            for entry in entries
            if entry.company_name
        ]
        contact.enriched_at = contact.enrichment_attempted_at = utcnow()
        self.db.flush()
        return len(contact.work_history)

    @_registry_call
    def mark_enrichment_attempted(self, tenant_id: str, contact_id: str):
        contact = self.get_contact(tenant_id, contact_id)
        if contact is None:
            raise RelationshipIntelError(f"Contact not found: {contact_id}")
        contact.enrichment_attempted_at = utcnow()
        self.db.flush()

    @_registry_call
    def work_history_for(
        self, tenant_id: str, contact_ids: Iterable[str]
    ) -> dict[str, list[WorkHistoryEntry]]:
        """Work history grouped by contact id, most recent first."""
        ids = list(contact_ids)
        history: dict[str, list[WorkHistoryEntry]] = {contact_id: [] for contact_id in ids}
        if not ids:
            return history

        rows = (
            self.db.query(WorkHistoryEntry)
            .join(Contact, WorkHistoryEntry.contact_id == Contact.id)
            .filter(Contact.tenant_id == tenant_id, WorkHistoryEntry.contact_id.in_(ids))
            .order_by(
                WorkHistoryEntry.contact_id,
                WorkHistoryEntry.is_current.desc(),
                WorkHistoryEntry.start_date.desc(),
            )
            .all()
        )
        for row in rows:
            history[row.contact_id].append(row)
        return history

    # ------------------------------------------------------------------
    # Prospects and matches
    # ------------------------------------------------------------------

    @_registry_call
    def list_prospects(
        self, tenant_id: str, prospect_ids: Optional[Iterable[str]] = None
    ) -> list[Prospect]:
        query = self.db.query(Prospect).filter(Prospect.tenant_id == tenant_id)
        if prospect_ids is not None:
            query = query.filter(Prospect.id.in_(list(prospect_ids)))
        return query.order_by(Prospect.created_at, Prospect.id).all()

    @_registry_call
    def get_prospect(self, tenant_id: str, prospect_id: str) -> Optional[Prospect]:
        return (
            self.db.query(Prospect)
            .filter(Prospect.tenant_id == tenant_id, Prospect.id == prospect_id)
            .first()
        )

    @_registry_call
    def record_connection_matches(
        self,
        tenant_id: str,
        prospect_id: str,
        matches: list[dict],
        connection_score: int,
        has_warm_intro: bool,
        match_count: int,
    ) -> int:
        """
        Replace the stored matches for a prospect and update its summary.

        Only prospect and match rows are written; contacts are untouched.
        """
        prospect = self.get_prospect(tenant_id, prospect_id)
        if prospect is None:
            raise RelationshipIntelError(f"Prospect not found: {prospect_id}")

        (
            self.db.query(ConnectionMatch)
            .filter(ConnectionMatch.prospect_id == prospect.id)
            .delete(synchronize_session="fetch")
        )
        for row in matches:
            self.db.add(ConnectionMatch(tenant_id=tenant_id, prospect_id=prospect.id, **row))

        prospect.connection_score = connection_score
        prospect.has_warm_intro = has_warm_intro
        prospect.match_count = match_count
        prospect.best_contact_id = matches[0]["contact_id"] if matches else None
        prospect.matched_at = utcnow()
        self.db.flush()
        return len(matches)

    # ------------------------------------------------------------------
    # Reference data
    # ------------------------------------------------------------------

    @_registry_call
    def list_known_firms(self) -> list[KnownFirm]:
        return self.db.query(KnownFirm).order_by(KnownFirm.name).all()

    @_registry_call
    def seed_known_firms(self, firms: Iterable[tuple[str, FirmType, list[str]]]) -> int:
        """Insert reference firms that are not present yet. Returns how many were added."""
        existing = {name for (name,) in self.db.query(KnownFirm.name).all()}
        added = 0
        for name, firm_type, aliases in firms:
            if name in existing:
                continue
            self.db.add(KnownFirm(name=name, firm_type=firm_type, aliases=list(aliases)))
            existing.add(name)
            added += 1
        self.db.flush()
        return added

    # ------------------------------------------------------------------
    # Transactions
    # ------------------------------------------------------------------

    @_registry_call
    def commit(self):
        self.db.commit()

    @_registry_call
    def rollback(self):
        self.db.rollback()

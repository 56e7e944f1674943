"""
Tests for the contact merge engine.
"""

from datetime import datetime

import pytest
from sqlalchemy.orm import sessionmaker

from conftest import OTHER_TENANT, TENANT
from intelligence.database import make_engine
from intelligence.entity_resolution import MatchType
from intelligence.entity_resolution.resolver import ContactResolver, MergeAction
from intelligence.errors import MalformedRecordError, RegistryUnavailableError
from intelligence.models import Contact, SourceTag
from intelligence.records import RawContact, WorkHistoryData
from intelligence.repository import ContactRegistry


def _raw(source=SourceTag.SPREADSHEET, **fields) -> RawContact:
    return RawContact(source=source, **fields)


class FlakyRegistry(ContactRegistry):
    """Misses the first duplicate search, as if another writer raced us."""

    def __init__(self, db):
        super().__init__(db)
        self.misses_left = 1

    def find_candidates(self, tenant_id, incoming):
        if self.misses_left:
            self.misses_left -= 1
            return []
        return super().find_candidates(tenant_id, incoming)


# ---------------------------------------------------------------------------
# Resolution
# ---------------------------------------------------------------------------

def test_insert_then_merge_by_email(resolver, registry):
    """Second record with the same email merges instead of inserting."""
    first = resolver.apply(TENANT, _raw(full_name="Jane Doe", email="Jane@Acme.com"))
    registry.commit()
    assert first.action == MergeAction.INSERT
    assert first.match_type == MatchType.NO_MATCH

    second = resolver.apply(TENANT, _raw(full_name="Jane Doe", email="jane@acme.com", title="VP Sales"))
    registry.commit()
    assert second.action == MergeAction.MERGE
    assert second.match_type == MatchType.EMAIL
    assert second.confidence == 1.0
    assert second.contact_id == first.contact_id

    contact = registry.get_contact(TENANT, first.contact_id)
    assert contact.email == "jane@acme.com"
    assert contact.current_title == "VP Sales"
    assert len(registry.list_contacts(TENANT)) == 1


def test_merge_by_linkedin_slug(resolver, registry):
    first = resolver.apply(TENANT, _raw(full_name="Jane Doe", linkedin_url="https://www.linkedin.com/in/JaneDoe/"))
    registry.commit()
    second = resolver.apply(TENANT, _raw(full_name="Jane Doe", linkedin_url="linkedin.com/in/janedoe"))
    registry.commit()

    assert second.match_type == MatchType.LINKEDIN
    assert second.confidence == 0.95
    assert second.contact_id == first.contact_id


def test_merge_by_name_company_domain(resolver, registry):
    first = resolver.apply(TENANT, _raw(full_name="Jane Doe", company="Acme Inc", company_domain="acme.com"))
    registry.commit()
    second = resolver.apply(
        TENANT,
        _raw(full_name="jane  doe", company="ACME, Inc.", company_domain="https://www.acme.com", title="CTO"),
    )
    registry.commit()

    assert second.match_type == MatchType.NAME_COMPANY_DOMAIN
    assert second.contact_id == first.contact_id


def test_name_and_company_without_domain_does_not_merge(resolver, registry):
    resolver.apply(TENANT, _raw(full_name="Jane Doe", company="Acme"))
    registry.commit()
    second = resolver.apply(TENANT, _raw(full_name="Jane Doe", company="Acme"))
    registry.commit()

    assert second.action == MergeAction.INSERT
    assert len(registry.list_contacts(TENANT)) == 2


def test_merge_is_idempotent(resolver, registry):
    """Applying the same record twice changes nothing the second time."""
    raw = _raw(
        full_name="Jane Doe",
        email="jane@acme.com",
        title="Head of Risk",
        company="Acme",
        connection_strength=40,
        meeting_count=2,
    )
    first = resolver.apply(TENANT, raw)
    registry.commit()
    before = registry.get_contact(TENANT, first.contact_id)
    snapshot = {c.name: getattr(before, c.name) for c in Contact.__table__.columns if c.name != "updated_at"}

    second = resolver.apply(TENANT, raw)
    registry.commit()
    after = registry.get_contact(TENANT, first.contact_id)

    assert second.action == MergeAction.NO_CHANGE
    assert second.changes == {}
    assert {name: getattr(after, name) for name in snapshot} == snapshot


def test_tenants_are_isolated(resolver, registry):
    a = resolver.apply(TENANT, _raw(full_name="Jane Doe", email="jane@acme.com"))
    b = resolver.apply(OTHER_TENANT, _raw(full_name="Jane Doe", email="jane@acme.com"))
    registry.commit()

    assert a.action == MergeAction.INSERT
    assert b.action == MergeAction.INSERT
    assert a.contact_id != b.contact_id
    assert registry.get_contact(OTHER_TENANT, a.contact_id) is None


# ---------------------------------------------------------------------------
# Merge policy
# ---------------------------------------------------------------------------

def test_fill_if_empty_for_non_authoritative_sources(resolver, registry, add_contact):
    contact = add_contact(full_name="Jane Doe", email="jane@acme.com", title="Engineer")
    decision = resolver.apply(
        TENANT, _raw(full_name="Janet Doe", email="jane@acme.com", title="Manager", company="Acme")
    )
    registry.commit()

    contact = registry.get_contact(TENANT, contact.id)
    assert contact.current_title == "Engineer"
    assert contact.full_name == "Jane Doe"
    assert contact.current_company == "Acme"
    assert set(decision.changes) == {"current_company", "field_sources"}


def test_enrichment_overwrites_profile_fields(resolver, registry, add_contact):
    contact = add_contact(full_name="Jane Doe", email="jane@acme.com", title="Engineer", company="Acme")
    history = [
        WorkHistoryData(company_name="Initech", title="Staff Engineer", is_current=True),
        WorkHistoryData(company_name="Acme", title="Engineer", end_date=datetime(2023, 5, 1).date()),
    ]
    decision = resolver.apply_enrichment(
        TENANT,
        contact.id,
        _raw(source=SourceTag.ENRICHMENT, full_name="J. Doe", title="Staff Engineer", company="Initech"),
        history,
    )
    registry.commit()

    contact = registry.get_contact(TENANT, contact.id)
    assert decision.match_type == MatchType.DIRECT
    assert decision.details["work_history_entries"] == 2
    assert contact.current_title == "Staff Engineer"
    assert contact.current_company == "Initech"
    # Names are not authoritative for enrichment
    assert contact.full_name == "Jane Doe"
    assert contact.enriched_at is not None
    assert contact.field_sources["current_title"] == "enrichment"
    assert contact.field_sources["email"] == "spreadsheet"
    assert len(registry.work_history_for(TENANT, [contact.id])[contact.id]) == 2


def test_manual_source_overwrites_everything_textual(resolver, registry, add_contact):
    contact = add_contact(full_name="Jane Doe", email="jane@acme.com", title="Engineer")
    resolver.apply(TENANT, _raw(source=SourceTag.MANUAL, full_name="Jane Q. Doe", email="jane@acme.com"))
    registry.commit()

    assert registry.get_contact(TENANT, contact.id).full_name == "Jane Q. Doe"


def test_numeric_signals_take_the_max(resolver, registry, add_contact):
    contact = add_contact(
        full_name="Jane Doe", email="jane@acme.com", meeting_count=5, email_inbound_count=2,
        connection_strength=60,
    )
    resolver.apply(
        TENANT,
        _raw(full_name="Jane Doe", email="jane@acme.com", meeting_count=3, email_inbound_count=9,
             connection_strength=20),
    )
    registry.commit()

    contact = registry.get_contact(TENANT, contact.id)
    assert contact.meeting_count == 5
    assert contact.email_inbound_count == 9
    assert contact.connection_strength == 60


def test_last_interaction_keeps_latest(resolver, registry, add_contact):
    contact = add_contact(full_name="Jane Doe", email="jane@acme.com", last_interaction_at=datetime(2024, 6, 1))
    resolver.apply(TENANT, _raw(full_name="Jane Doe", email="jane@acme.com", last_interaction_at=datetime(2023, 1, 1)))
    registry.commit()
    assert registry.get_contact(TENANT, contact.id).last_interaction_at == datetime(2024, 6, 1)

    resolver.apply(TENANT, _raw(full_name="Jane Doe", email="jane@acme.com", last_interaction_at=datetime(2025, 1, 1)))
    registry.commit()
    assert registry.get_contact(TENANT, contact.id).last_interaction_at == datetime(2025, 1, 1)


def test_identity_key_owned_elsewhere_is_not_copied(resolver, registry, add_contact):
    jane = add_contact(full_name="Jane Doe", email="jane@acme.com")
    other = add_contact(full_name="Jane Doe", linkedin_url="https://linkedin.com/in/janedoe")

    decision = resolver.apply(
        TENANT,
        _raw(full_name="Jane Doe", email="jane@acme.com", linkedin_url="https://linkedin.com/in/janedoe"),
    )
    registry.commit()

    assert decision.contact_id == jane.id
    assert decision.details["skipped_identity_keys"] == ["linkedin_slug"]
    assert registry.get_contact(TENANT, jane.id).linkedin_slug is None
    assert registry.get_contact(TENANT, other.id).linkedin_slug == "janedoe"


def test_identity_key_match_with_different_name_is_flagged(resolver, registry, add_contact):
    add_contact(full_name="Jane Doe", email="shared@acme.com")
    decision = resolver.apply(TENANT, _raw(full_name="Bob Smith", email="shared@acme.com"))

    assert decision.match_type == MatchType.EMAIL
    assert decision.details["name_mismatch"] is True


# ---------------------------------------------------------------------------
# Edge cases
# ---------------------------------------------------------------------------

def test_name_falls_back_to_email_then_slug(resolver, registry):
    by_email = resolver.apply(TENANT, _raw(email="jdoe@acme.com"))
    by_slug = resolver.apply(TENANT, _raw(linkedin_url="https://linkedin.com/in/bob-smith"))
    registry.commit()

    assert registry.get_contact(TENANT, by_email.contact_id).full_name == "jdoe"
    assert registry.get_contact(TENANT, by_slug.contact_id).full_name == "bob-smith"


def test_non_linkedin_urls_are_not_identity_keys(resolver, registry):
    john = resolver.apply(TENANT, _raw(full_name="John Smith", linkedin_url="https://blog-a.com/in/about"))
    maria = resolver.apply(TENANT, _raw(full_name="Maria Garcia", linkedin_url="https://blog-b.com/in/about"))
    registry.commit()

    assert john.action == MergeAction.INSERT
    assert maria.action == MergeAction.INSERT
    assert john.contact_id != maria.contact_id
    assert len(registry.list_contacts(TENANT)) == 2
    assert registry.get_contact(TENANT, john.contact_id).linkedin_slug is None


def test_record_without_identity_or_name_is_malformed(resolver):
    with pytest.raises(MalformedRecordError):
        resolver.resolve(TENANT, _raw(title="CEO", company="Acme", external_id="swarm-1"))


def test_ingest_records_skips_bad_records(resolver, registry):
    records = [
        _raw(full_name="Jane Doe", email="jane@acme.com"),
        _raw(title="No identity at all"),
        _raw(full_name="Jane Doe", email="JANE@acme.com", company="Acme"),
        _raw(full_name="Bob Smith", email="bob@initech.com"),
    ]
    result = resolver.ingest_records(TENANT, records)

    assert result.inserted == 2
    assert result.merged == 1
    assert result.skipped == 1
    assert result.failed == 0
    assert len(registry.list_contacts(TENANT)) == 2


def test_uniqueness_conflict_is_retried_as_merge(db, add_contact):
    """A concurrent insert of the same email ends up as one merged contact."""
    existing = add_contact(full_name="Jane Doe", email="jane@acme.com")

    registry = FlakyRegistry(db)
    resolver = ContactResolver(registry)
    decision = resolver.apply(TENANT, _raw(full_name="Jane Doe", email="jane@acme.com", company="Acme"))
    registry.commit()

    assert decision.contact_id == existing.id
    assert decision.action == MergeAction.MERGE
    assert decision.details["conflict_retries"] == 1
    assert len(registry.list_contacts(TENANT)) == 1
    assert registry.get_contact(TENANT, existing.id).current_company == "Acme"


def test_registry_outage_stops_ingestion():
    engine = make_engine("sqlite:////nonexistent-dir/registry.db")
    registry = ContactRegistry(sessionmaker(bind=engine)())

    with pytest.raises(RegistryUnavailableError):
        ContactResolver(registry).ingest_records(TENANT, [_raw(full_name="Jane Doe", email="jane@acme.com")])

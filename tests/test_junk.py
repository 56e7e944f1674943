"""
Tests for junk contact detection and purge.
"""

from conftest import TENANT
from intelligence.junk import is_junk_email, purge_junk_contacts


def test_junk_patterns():
    for email in (
        "info@acme.com",
        "No-Reply@acme.com",
        "notifications@github.com",
        "invoice-123@billing.io",
        "messages+abc@acme.com",
        "jane+test@acme.com",
        "jane.doe@state.gov",
        "staff@senate.gov",
        "someone@mailinator.com",
    ):
        assert is_junk_email(email), email


def test_real_people_are_kept():
    for email in ("jane.doe@acme.com", "info.graphics@acme.com", "bob+work@gmail.com", None, "not-an-email"):
        assert not is_junk_email(email), email


def test_purge(registry, add_contact):
    add_contact(full_name="Jane Doe", email="jane@acme.com")
    add_contact(full_name="Support", email="support@acme.com")
    add_contact(full_name="Bot", email="noreply@acme.com")

    dry = purge_junk_contacts(registry, TENANT, dry_run=True)
    assert dry.junk_count == 2
    assert dry.deleted == 0
    assert len(registry.list_contacts(TENANT)) == 3

    live = purge_junk_contacts(registry, TENANT, dry_run=False)
    assert live.deleted == 2
    assert [c.email for c in registry.list_contacts(TENANT)] == ["jane@acme.com"]

"""
Tests for the rule chain, title cache and batch categorization.
"""

import asyncio

from conftest import TENANT
from intelligence.categorizer import (
    Categorization,
    Categorizer,
    CategorizerConfig,
    ClassifierOutcome,
    ContactSnapshot,
    TitleProfileCache,
    WorkSnapshot,
    categorize_by_rules,
    profile_title,
)
from intelligence.known_firms import DEFAULT_KNOWN_FIRMS, KnownFirmIndex
from intelligence.models import Category, CategorySource

FIRMS = KnownFirmIndex.default()


class FakeClassifier:
    """Records calls; fails for the names in fail_for."""

    def __init__(self, fail_for=()):
        self.fail_for = set(fail_for)
        self.calls = []

    async def classify(self, contact):
        self.calls.append(contact.full_name)
        await asyncio.sleep(0)
        if contact.full_name in self.fail_for:
            return ClassifierOutcome.failure("api_error", "upstream unavailable")
        return ClassifierOutcome(
            categorization=Categorization(
                Category.IRRELEVANT, 0.8, "Individual contributor", CategorySource.EXTERNAL_CLASSIFIER
            )
        )


def _snapshot(**fields) -> ContactSnapshot:
    fields.setdefault("id", "c-1")
    fields.setdefault("full_name", "Jane Doe")
    return ContactSnapshot(**fields)


def _categorizer(registry, classifier=None, **config) -> Categorizer:
    return Categorizer(
        registry,
        classifier=classifier,
        config=CategorizerConfig(classifier_delay_ms=0, **config),
        firms=FIRMS,
    )


# ---------------------------------------------------------------------------
# Rules
# ---------------------------------------------------------------------------

def test_partner_at_known_vc_firm():
    result = categorize_by_rules(_snapshot(title="Partner", company="Sequoia Capital"), FIRMS)
    assert result.category == Category.VC
    assert result.confidence == 0.95
    assert result.source == CategorySource.RULE


def test_known_firm_alias():
    result = categorize_by_rules(_snapshot(title="Principal", company="a16z"), FIRMS)
    assert result.category == Category.VC
    assert result.confidence == 0.95


def test_vc_work_history():
    contact = _snapshot(
        title="Founder",
        company="Stealth Startup",
        work_history=(WorkSnapshot(company_name="Greylock", title="Partner"),),
    )
    result = categorize_by_rules(contact, FIRMS)
    assert result.category == Category.VC
    assert result.confidence == 0.85


def test_firm_names_match_on_whole_tokens():
    assert FIRMS.match("Sequoia Capital China").name == "Sequoia Capital"
    assert FIRMS.match("Index Ventures Growth").name == "Index Ventures"
    assert FIRMS.match("Accel").name == "Accel"
    assert FIRMS.match("Accelerate Diagnostics") is None
    assert FIRMS.match("Benchmark Electronics") is None
    assert FIRMS.match("Indexing Inc") is None


def test_company_containing_firm_name_is_not_vc():
    for company in ("Accelerate Diagnostics", "Benchmark Electronics"):
        result = categorize_by_rules(_snapshot(title="Software Engineer", company=company), FIRMS)
        assert result.category != Category.VC

    contact = _snapshot(
        title="Software Engineer",
        company="Initech",
        work_history=(WorkSnapshot(company_name="Accelerated Networks", title="Engineer"),),
    )
    assert categorize_by_rules(contact, FIRMS).category != Category.VC


def test_vc_title_needs_vc_industry():
    in_vc = categorize_by_rules(
        _snapshot(title="Investment Associate", company="Small Fund", industry="Venture Capital & Private Equity"),
        FIRMS,
    )
    assert in_vc.category == Category.VC
    assert in_vc.confidence == 0.85

    # "Associate" at a software company is not a VC signal
    elsewhere = categorize_by_rules(_snapshot(title="Associate", company="Initech", industry="Software"), FIRMS)
    assert elsewhere.category != Category.VC


def test_angel_signals():
    accelerator = categorize_by_rules(_snapshot(title="Group Partner", company="Y Combinator"), FIRMS)
    assert accelerator.category == Category.ANGEL
    assert accelerator.confidence == 0.9

    advisor = categorize_by_rules(_snapshot(title="Angel Investor & Advisor", company="Self"), FIRMS)
    assert advisor.category == Category.ANGEL
    assert advisor.confidence == 0.9


def test_startup_executive_is_potential_angel():
    founder = categorize_by_rules(
        _snapshot(title="Co-Founder & CEO", company="Initech", industry="Computer Software"), FIRMS
    )
    assert founder.category == Category.ANGEL
    assert founder.confidence == 0.65

    executive = categorize_by_rules(_snapshot(title="CFO", company="Initech", industry="Internet"), FIRMS)
    assert executive.confidence == 0.6

    # Executives outside tech are not
    retail = categorize_by_rules(_snapshot(title="CFO", company="Corner Shop", industry="Retail"), FIRMS)
    assert retail.category == Category.UNCATEGORIZED


def test_sales_targets():
    trust = categorize_by_rules(_snapshot(title="Head of Trust & Safety", company="Acme"), FIRMS)
    assert trust.category == Category.SALES_PROSPECT
    assert trust.confidence == 0.85

    security = categorize_by_rules(_snapshot(title="VP Security", company="Acme"), FIRMS)
    assert security.category == Category.SALES_PROSPECT
    assert security.confidence == 0.85

    # Security needs leadership
    engineer = categorize_by_rules(_snapshot(title="Security Engineer", company="Acme"), FIRMS)
    assert engineer.category == Category.UNCATEGORIZED

    product = categorize_by_rules(_snapshot(title="Director of Product", company="Acme"), FIRMS)
    assert product.confidence == 0.7


def test_no_signal_is_uncategorized():
    result = categorize_by_rules(_snapshot(title="Barista", company="Cafe"), FIRMS)
    assert result.category == Category.UNCATEGORIZED
    assert result.confidence == 0.0


def test_title_profile():
    profile = profile_title("  SVP, Trust and Safety ")
    assert profile.seniority == "vp"
    assert profile.is_leadership
    assert profile.sales_target == ("trust & safety", 0.85)
    assert profile_title(None).seniority is None


# ---------------------------------------------------------------------------
# Title cache
# ---------------------------------------------------------------------------

def test_title_cache_hits_and_eviction():
    cache = TitleProfileCache(max_size=2, ttl_seconds=60)
    cache.profile("CEO")
    cache.profile("ceo ")
    assert cache.hits == 1
    assert cache.misses == 1

    cache.profile("CTO")
    cache.profile("CFO")
    assert len(cache) == 2
    assert cache.get("ceo") is None


def test_title_cache_expiry():
    now = [0.0]
    cache = TitleProfileCache(max_size=10, ttl_seconds=60, clock=lambda: now[0])
    cache.profile("CEO")
    now[0] = 61.0
    assert cache.get("ceo") is None
    cache.profile("CEO")
    assert cache.misses == 2


# ---------------------------------------------------------------------------
# Categorizer
# ---------------------------------------------------------------------------

def test_confident_rule_skips_classifier(registry, add_contact):
    add_contact(full_name="Pat Partner", email="pat@sequoiacap.com", title="Partner", company="Sequoia Capital")
    classifier = FakeClassifier()

    result = asyncio.run(_categorizer(registry, classifier).categorize_batch(TENANT))

    assert classifier.calls == []
    assert result.succeeded == 1
    contact = registry.list_contacts(TENANT)[0]
    assert contact.category == Category.VC
    assert contact.category_confidence == 0.95
    assert contact.category_source == CategorySource.RULE
    assert contact.categorized_at is not None


def test_classifier_failure_is_isolated(registry, add_contact):
    for i in range(1, 11):
        add_contact(full_name=f"Contact {i}", email=f"contact{i}@example.com", title="Barista")
    classifier = FakeClassifier(fail_for={"Contact 5"})

    result = asyncio.run(_categorizer(registry, classifier, concurrency=3).categorize_batch(TENANT))

    assert result.succeeded == 9
    assert result.failed == 1
    assert len(result.errors) == 1
    assert "Contact 5" in result.errors[0]
    assert result.classifier_calls == 10

    by_name = {c.full_name: c for c in registry.list_contacts(TENANT)}
    assert by_name["Contact 5"].category == Category.UNCATEGORIZED
    assert by_name["Contact 5"].category_source is None
    assert by_name["Contact 4"].category == Category.IRRELEVANT
    assert by_name["Contact 4"].category_source == CategorySource.EXTERNAL_CLASSIFIER


def test_low_confidence_without_classifier_keeps_rule_result(registry, add_contact):
    add_contact(full_name="Dana Director", email="dana@acme.com", title="Director of Product", company="Acme")
    categorizer = _categorizer(registry, classifier=None, confidence_threshold=0.9)

    result = asyncio.run(categorizer.categorize_batch(TENANT))

    assert result.succeeded == 1
    contact = registry.list_contacts(TENANT)[0]
    assert contact.category == Category.SALES_PROSPECT
    assert contact.category_confidence == 0.7


def test_dry_run_and_manual_categories(registry, add_contact):
    pat = add_contact(full_name="Pat Partner", email="pat@accel.com", title="Partner", company="Accel")
    manual = add_contact(full_name="Manny Manual", email="manny@acme.com", title="Partner", company="Sequoia")
    registry.upsert_contact(
        TENANT,
        {"category": Category.SALES_PROSPECT, "category_source": CategorySource.MANUAL, "category_confidence": 1.0},
        contact_id=manual.id,
    )
    registry.commit()
    categorizer = _categorizer(registry)

    dry = asyncio.run(categorizer.categorize_batch(TENANT, include_categorized=True, dry_run=True))
    assert dry.succeeded == 1
    assert registry.get_contact(TENANT, pat.id).category == Category.UNCATEGORIZED

    asyncio.run(categorizer.categorize_batch(TENANT, include_categorized=True))
    assert registry.get_contact(TENANT, pat.id).category == Category.VC
    assert registry.get_contact(TENANT, manual.id).category == Category.SALES_PROSPECT


def test_firms_fall_back_to_defaults(registry):
    categorizer = Categorizer(registry)
    assert len(categorizer.firms) == len(DEFAULT_KNOWN_FIRMS)


def test_seeded_firms_are_used(registry):
    assert registry.seed_known_firms(DEFAULT_KNOWN_FIRMS) == len(DEFAULT_KNOWN_FIRMS)
    assert registry.seed_known_firms(DEFAULT_KNOWN_FIRMS) == 0
    registry.commit()

    categorizer = Categorizer(registry)
    assert categorizer.firms.match("Founders Fund").name == "Founders Fund"

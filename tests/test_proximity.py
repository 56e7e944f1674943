"""
Tests for two-pass proximity scoring.
"""

from datetime import date, datetime, timedelta

import pytest

from conftest import TENANT
from intelligence.errors import ScoringOrderError
from intelligence.proximity import (
    ProximityScorer,
    clamp_score,
    pass1_score,
    pass2_score,
    pass2_signals,
    recency_bonus,
    team_company_keys,
)
from intelligence.records import WorkHistoryData


def test_recency_bands():
    assert recency_bonus(None) == 0
    assert recency_bonus(float("nan")) == 0
    assert recency_bonus(-3) == 10  # future timestamps count as today
    assert recency_bonus(0) == 10
    assert recency_bonus(7) == 10
    assert recency_bonus(8) == 7
    assert recency_bonus(30) == 7
    assert recency_bonus(90) == 4
    assert recency_bonus(365) == 2
    assert recency_bonus(366) == 0


def test_pass1_components():
    # Strength 80 -> 40, 3 emails -> 15, 2 meetings -> 10, 20 days -> 7
    assert pass1_score(80, 3, 2, 20) == 72
    # Each component is capped
    assert pass1_score(100, 50, 50, 1) == 100
    assert pass1_score(0, 0, 0, None) == 0


def test_scores_stay_in_bounds():
    assert pass1_score(1000, 1000, 1000, 0) == 100
    assert pass1_score(-50, -3, float("nan"), None) == 0
    assert pass2_score(100, 10, True, True) == 100
    assert pass2_score(float("inf"), 0, False, False) == 0


def test_clamp_rounds_half_up():
    assert clamp_score(42.5) == 43
    assert clamp_score(42.49) == 42
    assert clamp_score(-1) == 0
    assert clamp_score(250) == 100


def test_pass2_uses_pass1_as_floor():
    assert pass2_score(40, 0, False, False) == 40
    # 2 shared companies -> 10, current shared -> 10, recent -> 10
    assert pass2_score(40, 2, True, True) == 70
    # Shared companies cap at 15
    assert pass2_score(40, 5, False, False) == 55


def test_pass2_signals(registry, add_contact):
    contact = add_contact(full_name="Jane Doe", email="jane@initech.com", company="Initech, Inc.")
    registry.replace_work_history(TENANT, contact.id, [
        WorkHistoryData(company_name="Initech Inc", is_current=True),
        WorkHistoryData(company_name="Acme Corp", end_date=date(2015, 1, 1)),
        WorkHistoryData(company_name="Globex", end_date=date(2023, 1, 1)),
    ])
    registry.commit()
    history = registry.work_history_for(TENANT, [contact.id])[contact.id]

    signals = pass2_signals(
        contact, history, team_company_keys(["Acme", "Initech", ""]), today=date(2024, 6, 1)
    )
    assert sorted(signals.shared_companies) == ["acme", "initech"]
    assert signals.current_company_shared is True
    assert signals.worked_together_recently is True

    old_only = pass2_signals(contact, history, team_company_keys(["Acme"]), today=date(2024, 6, 1))
    assert old_only.shared_companies == ["acme"]
    assert old_only.current_company_shared is False
    assert old_only.worked_together_recently is False


def test_scorer_pass1_then_pass2(registry, add_contact):
    now = datetime(2024, 6, 1, 12, 0)
    contact = add_contact(
        full_name="Jane Doe",
        email="jane@initech.com",
        company="Initech",
        connection_strength=80,
        email_inbound_count=2,
        email_outbound_count=1,
        meeting_count=2,
        last_interaction_at=now - timedelta(days=20),
    )
    scorer = ProximityScorer(registry)

    assert scorer.score_pass1(TENANT, contact, now) == 72
    registry.commit()
    contact = registry.get_contact(TENANT, contact.id)
    assert contact.proximity_pass1_score == 72
    assert contact.proximity_pass == 1

    score = scorer.score_pass2(TENANT, contact, [], team_company_keys(["Initech"]), now)
    registry.commit()
    assert score == 82
    contact = registry.get_contact(TENANT, contact.id)
    assert contact.proximity_score == 82
    assert contact.proximity_pass1_score == 72
    assert contact.proximity_pass == 2


def test_pass2_before_pass1_is_rejected(registry, add_contact):
    contact = add_contact(full_name="Jane Doe", email="jane@acme.com")
    with pytest.raises(ScoringOrderError):
        ProximityScorer(registry).score_pass2(TENANT, contact, [], frozenset())


def test_rescore_batches(registry, add_contact):
    add_contact(full_name="Jane Doe", email="jane@acme.com", connection_strength=100)
    add_contact(full_name="Bob Smith", email="bob@acme.com", meeting_count=1)
    scorer = ProximityScorer(registry)

    # Pass 2 without Pass 1 fails per contact, not for the batch
    early = scorer.rescore_pass2(TENANT, ["Acme"])
    assert early.failed == 2
    assert early.succeeded == 0

    first = scorer.rescore_pass1(TENANT)
    assert first.succeeded == 2
    second = scorer.rescore_pass2(TENANT, ["Acme"])
    assert second.succeeded == 2

    scores = {c.full_name: c.proximity_score for c in registry.list_contacts(TENANT)}
    assert scores == {"Jane Doe": 50, "Bob Smith": 5}

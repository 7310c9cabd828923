import logging
from datetime import timedelta

import pytest

from governance.adjuster import PolicyAdjuster
from donors.models import normalize_organ
from governance.models import GovernancePolicy, PolicyStatus, is_eligible_for_matching
from governance.rules import (
    MalformedPolicyError,
    OrganWeightOverride,
    PediatricBonus,
    SameLocationBonus,
    UrgentBonus,
    build_rules,
    mentioned_organ,
)
from matching.policy import ENHANCED_WEIGHTS
from matching.proximity import ProximityTier

BLOOD_ONLY = {
    "blood_compatibility": 1.0,
    "urgency_level": 0,
    "geographical_distance": 0,
    "waiting_time": 0,
    "medical_risk": 0,
}


@pytest.fixture
def policy(now):
    def _make(policy_id, title, created_days_ago=0, **kwargs):
        kwargs.setdefault("status", PolicyStatus.ACTIVE)
        return GovernancePolicy(
            id=policy_id,
            title=title,
            created_at=now - timedelta(days=created_days_ago),
            **kwargs,
        )

    return _make


@pytest.mark.parametrize(
    "status, votes_for, votes_against, paused, eligible",
    [
        (PolicyStatus.ACTIVE, 0, 0, False, True),
        (PolicyStatus.ACTIVE, 0, 0, True, False),
        (PolicyStatus.VOTING, 3, 2, False, True),
        (PolicyStatus.VOTING, 1, 1, False, False),  # a tie is not a majority
        (PolicyStatus.VOTING, 0, 0, False, False),
        (PolicyStatus.WITHDRAWN, 9, 0, False, False),
        (PolicyStatus.SUSPENDED, 9, 0, False, False),
    ],
)
def test_policy_eligibility(policy, status, votes_for, votes_against, paused, eligible):
    p = policy(
        "p1", "Anything", status=status, votes_for=votes_for,
        votes_against=votes_against, paused_for_matching=paused,
    )
    assert is_eligible_for_matching(p) is eligible


def test_rules_are_inferred_from_policy_text(policy):
    rules = build_rules(policy("p1", "Kidney Transport Priority"), ENHANCED_WEIGHTS)
    assert [type(r) for r in rules] == [OrganWeightOverride, SameLocationBonus]
    assert rules[0].organ == "kidney"
    assert rules[0].weights == ENHANCED_WEIGHTS

    assert [type(r) for r in build_rules(policy("p2", "Pediatric Priority"), ENHANCED_WEIGHTS)] == [PediatricBonus]
    assert [type(r) for r in build_rules(policy("p3", "Emergency Cases First"), ENHANCED_WEIGHTS)] == [UrgentBonus]


def test_structured_rules_win_over_text(policy):
    p = policy(
        "p1", "Kidney Allocation",
        rules=[{"type": "same_location", "organ": "Kidneys", "city_bonus": 20, "region_bonus": 0}],
    )
    rules = build_rules(p, ENHANCED_WEIGHTS)
    assert rules == [SameLocationBonus("p1", "Kidney Allocation", organ="kidney", city_bonus=20, region_bonus=0)]


@pytest.mark.parametrize(
    "rules",
    [
        [{"type": "teleport"}],
        ["same_location"],
        [{"type": "urgent", "bonus": "lots"}],
        [{"type": "pediatric", "bonus": -5}],
    ],
)
def test_malformed_rule_entries_raise(policy, rules):
    with pytest.raises(MalformedPolicyError):
        build_rules(policy("p1", "Broken", rules=rules), ENHANCED_WEIGHTS)


def test_first_organ_policy_reweights_and_others_are_counted(make_recipient, make_match, policy):
    recipient = make_recipient(organ="kidney")
    matches = [make_match("a", blood=95), make_match("b", blood=100)]
    newest = policy("new", "Kidney Allocation Reform", created_days_ago=1, criteria_weights=BLOOD_ONLY)
    older = policy("old", "Kidney Fairness Review", created_days_ago=30)

    result = PolicyAdjuster().adjust(recipient, matches, [older, newest])

    assert result.weight_policy == "Kidney Allocation Reform"
    assert result.weight_policy_count == 2
    assert [(m.donor_id, m.match_score) for m in result.matches] == [("b", 100.0), ("a", 95.0)]
    assert all("Policy: Kidney Allocation Reform (+1 more)" in m.rationale for m in result.matches)
    assert result.applied_policies == ("Kidney Allocation Reform",)


def test_policy_for_another_organ_changes_nothing(make_recipient, make_match, policy):
    recipient = make_recipient(organ="liver")
    matches = [make_match("a")]

    result = PolicyAdjuster().adjust(recipient, matches, [policy("p1", "Kidney Allocation", criteria_weights=BLOOD_ONLY)])

    assert result.matches == matches
    assert not result.policy_applied


def test_malformed_weights_fall_back_to_defaults(make_recipient, make_match, policy, caplog):
    recipient = make_recipient(organ="kidney")
    matches = [make_match("a")]
    broken = policy("p1", "Kidney Allocation", criteria_weights="{not json")

    with caplog.at_level(logging.WARNING, logger="governance"):
        result = PolicyAdjuster().adjust(recipient, matches, [broken])

    assert result.matches[0].match_score == matches[0].match_score
    assert result.weight_policy == "Kidney Allocation"
    assert "unusable weights" in caplog.text


def test_malformed_policy_is_skipped_and_others_still_apply(make_recipient, make_match, policy, caplog):
    recipient = make_recipient(organ="kidney", urgency="Critical")
    matches = [make_match("a", score=70.0)]
    broken = policy("bad", "Broken Rule", rules=[{"type": "teleport"}])
    urgent = policy("urgent", "Critical Patients First", rules=[{"type": "urgent"}])

    with caplog.at_level(logging.WARNING, logger="governance"):
        result = PolicyAdjuster().adjust(recipient, matches, [broken, urgent])

    assert result.matches[0].match_score == 78.0
    assert result.applied_policies == ("Critical Patients First",)
    assert "Skipping malformed policy bad" in caplog.text


def test_ineligible_policies_are_ignored(make_recipient, make_match, policy):
    recipient = make_recipient(urgency="Critical")
    matches = [make_match("a", score=70.0)]
    paused = policy("p1", "Critical Patients First", rules=[{"type": "urgent"}], paused_for_matching=True)
    withdrawn = policy("p2", "Critical Care", rules=[{"type": "urgent"}], status=PolicyStatus.WITHDRAWN)

    result = PolicyAdjuster().adjust(recipient, matches, [paused, withdrawn])
    assert result.matches[0].match_score == 70.0


def test_same_location_bonus_by_tier(make_recipient, make_match, policy):
    recipient = make_recipient(organ="kidney")
    matches = [
        make_match("local", tier=ProximityTier.LOCAL, score=60.0, city="Mumbai"),
        make_match("regional", tier=ProximityTier.REGIONAL, score=60.0, region="Maharashtra"),
        make_match("national", tier=ProximityTier.NATIONAL, score=60.0),
    ]
    rule = policy("p1", "Closer Kidneys", rules=[{"type": "same_location", "organ": "kidney"}])

    result = PolicyAdjuster().adjust(recipient, matches, [rule])
    scores = {m.donor_id: m.match_score for m in result.matches}

    assert scores == {"local": 75.0, "regional": 68.0, "national": 60.0}
    local = result.matches[0]
    assert "Same city priority (Mumbai) - Closer Kidneys (+15 pts)" in local.rationale
    assert result.matches[2].applied_policies == ()


def test_bonuses_are_capped_at_100(make_recipient, make_match, policy):
    recipient = make_recipient(age=8, urgency="Critical")
    matches = [make_match("a", score=95.0)]
    rules = [
        policy("p1", "Pediatric Priority", rules=[{"type": "pediatric"}]),
        policy("p2", "Critical Patients First", rules=[{"type": "urgent"}]),
    ]

    result = PolicyAdjuster().adjust(recipient, matches, rules)
    assert result.matches[0].match_score == 100.0
    assert set(result.applied_policies) == {"Pediatric Priority", "Critical Patients First"}


def test_pediatric_bonus_only_for_children(make_recipient, make_match, policy):
    rule = policy("p1", "Pediatric Priority", rules=[{"type": "pediatric"}])

    child = PolicyAdjuster().adjust(make_recipient(age=12), [make_match("a", score=50.0)], [rule])
    adult = PolicyAdjuster().adjust(make_recipient(age=18), [make_match("a", score=50.0)], [rule])

    assert child.matches[0].match_score == 55.0
    assert adult.matches[0].match_score == 50.0


@pytest.mark.parametrize("local_score, local_wins", [(80.0, True), (74.0, False)])
def test_same_city_bonus_can_overtake_a_farther_candidate(make_recipient, make_match, policy, local_score, local_wins):
    recipient = make_recipient(organ="kidney")
    matches = [
        make_match("farther", tier=ProximityTier.NATIONAL, score=90.0),
        make_match("same_city", tier=ProximityTier.LOCAL, score=local_score, city="Mumbai"),
    ]
    rule = policy("p1", "Same City Kidneys", rules=[{"type": "same_location", "organ": "kidney"}])

    result = PolicyAdjuster().adjust(recipient, matches, [rule])

    leader = result.matches[0].donor_id
    assert leader == ("same_city" if local_wins else "farther")


@pytest.mark.parametrize(
    "name, expected",
    [
        ("Kidneys", "kidney"),
        (" Liver ", "liver"),
        ("Pancreas", "pancreas"),
        ("pancreases", "pancreas"),
        ("LUNGS", "lung"),
    ],
)
def test_organ_names_normalise_to_the_singular(name, expected):
    assert normalize_organ(name) == expected


def test_mentioned_organ_is_normalised():
    assert mentioned_organ("Pancreas Transport Priority") == "pancreas"
    assert mentioned_organ("Faster kidneys for children") == "kidney"


def test_pancreas_transport_policy_applies(make_recipient, make_match, policy):
    recipient = make_recipient(organ="pancreas")
    matches = [make_match("local", tier=ProximityTier.LOCAL, blood=50, city="Mumbai")]
    rule = policy("p1", "Pancreas Transport Priority", content="Prefer geographically closer donors")

    result = PolicyAdjuster().adjust(recipient, matches, [rule])

    assert matches[0].match_score == 73.25
    assert result.matches[0].match_score == 88.25
    assert result.weight_policy == "Pancreas Transport Priority"
    assert result.applied_policies == ("Pancreas Transport Priority",)


def test_infinite_policy_weights_fall_back_to_defaults(make_recipient, make_match, policy, caplog):
    recipient = make_recipient(organ="kidney")
    matches = [make_match("a", blood=50, tier=ProximityTier.INTERNATIONAL)]
    overflowing = policy("p1", "Kidney Allocation", criteria_weights='{"blood": 1e400}')

    with caplog.at_level(logging.WARNING, logger="governance"):
        result = PolicyAdjuster().adjust(recipient, matches, [overflowing])

    assert result.matches[0].match_score == matches[0].match_score < 100
    assert "unusable weights" in caplog.text

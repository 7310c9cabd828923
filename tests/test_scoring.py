import pytest

from matching.candidate_filter import Candidate
from matching.policy import (
    BASIC_WEIGHTS,
    ENHANCED_WEIGHTS,
    MatchingPolicy,
    ScoreWeights,
    matching_policy_from_env,
)
from matching.proximity import ProximityTier
from matching.scoring import ScoreBreakdown, rank_candidates, score_candidate


def _breakdown(blood=100, urgency=80, proximity=50, wait=70, medical=85):
    return ScoreBreakdown(
        blood_compatibility=blood,
        urgency=urgency,
        proximity=proximity,
        wait_time=wait,
        medical_risk=medical,
        proximity_tier=ProximityTier.NATIONAL,
    )


def test_composite_is_the_weighted_mean():
    assert _breakdown().composite(ENHANCED_WEIGHTS) == pytest.approx(82.25)


def test_composite_is_normalised_by_total_weight():
    doubled = ScoreWeights(0.7, 0.5, 0.3, 0.2, 0.3)
    assert _breakdown().composite(doubled) == pytest.approx(_breakdown().composite(ENHANCED_WEIGHTS))


def test_perfect_sub_scores_give_100():
    perfect = _breakdown(100, 100, 100, 100, 100)
    assert perfect.composite(ENHANCED_WEIGHTS) == 100
    assert perfect.composite(BASIC_WEIGHTS) == 100


def test_basic_weights_ignore_medical_risk():
    assert _breakdown(medical=0).composite(BASIC_WEIGHTS) == _breakdown(medical=100).composite(BASIC_WEIGHTS)


def test_score_candidate_builds_breakdown_and_rationale(make_recipient, make_donor, hospitals, now):
    recipient = make_recipient(blood="O+", urgency="Critical", days_waiting=400)
    donor = make_donor(blood="O+", hospital_id="h_mumbai_west")

    match = score_candidate(
        recipient, hospitals["h_mumbai"], Candidate(donor, hospitals["h_mumbai_west"]), ENHANCED_WEIGHTS, now=now
    )

    assert match.breakdown.blood_compatibility == 100
    assert match.breakdown.proximity_tier == ProximityTier.LOCAL
    assert match.breakdown.urgency == 100
    assert match.breakdown.wait_time == 100
    assert match.hospital_name == "Mumbai West"
    assert "Blood: 100%" in match.explanation
    assert "Distance: Local (100%)" in match.explanation
    assert "High urgency (Critical)" in match.rationale
    assert "Extended wait time" in match.rationale
    assert match.applied_policies == ()


def test_rank_candidates_sorts_and_drops_non_viable(make_recipient, make_donor, hospitals, now):
    recipient = make_recipient()
    candidates = [
        Candidate(make_donor("far", hospital_id="h_kathmandu"), hospitals["h_kathmandu"]),
        Candidate(make_donor("near", hospital_id="h_mumbai_west"), hospitals["h_mumbai_west"]),
        Candidate(make_donor("mid", hospital_id="h_pune"), hospitals["h_pune"]),
    ]

    ranked = rank_candidates(recipient, hospitals["h_mumbai"], candidates, MatchingPolicy(), now=now)
    assert [m.donor_id for m in ranked] == ["near", "mid", "far"]

    strict = MatchingPolicy(min_viable_score=85.0)
    ranked = rank_candidates(recipient, hospitals["h_mumbai"], candidates, strict, now=now)
    assert [m.donor_id for m in ranked] == ["near", "mid"]
    assert all(m.match_score > 85.0 for m in ranked)


def test_ties_break_on_donor_id(make_recipient, make_donor, hospitals, now):
    recipient = make_recipient()
    candidates = [
        Candidate(make_donor(donor_id, hospital_id="h_pune"), hospitals["h_pune"])
        for donor_id in ("d3", "d1", "d2")
    ]

    ranked = rank_candidates(recipient, hospitals["h_mumbai"], candidates, MatchingPolicy(), now=now)
    assert [m.donor_id for m in ranked] == ["d1", "d2", "d3"]


def test_weights_from_mapping_fall_back_per_key():
    weights = ScoreWeights.from_mapping({"blood": 0.5, "urgency_level": "0.2"}, ENHANCED_WEIGHTS)
    assert weights.blood_compatibility == 0.5
    assert weights.urgency == 0.2
    assert weights.proximity == ENHANCED_WEIGHTS.proximity


@pytest.mark.parametrize(
    "data",
    [
        ["not", "a", "mapping"],
        {"blood": "heavy"},
        {"blood": -1},
        {"blood": float("inf")},
        {"blood": float("nan")},
        {"blood": 1e308, "urgency": 1e308},
    ],
)
def test_weights_from_mapping_rejects_bad_data(data):
    with pytest.raises(ValueError):
        ScoreWeights.from_mapping(data, ENHANCED_WEIGHTS)


def test_policy_from_env(monkeypatch):
    monkeypatch.setenv("MATCHING_WEIGHT_PROFILE", "basic")
    monkeypatch.setenv("MATCHING_MIN_VIABLE_SCORE", "50")
    monkeypatch.setenv("MATCHING_MAX_RESULTS", "0")

    policy = matching_policy_from_env()
    assert policy.weights == BASIC_WEIGHTS
    assert policy.min_viable_score == 50.0
    assert policy.max_results is None


def test_unknown_profile_is_rejected(monkeypatch):
    monkeypatch.setenv("MATCHING_WEIGHT_PROFILE", "fastest")
    with pytest.raises(ValueError):
        matching_policy_from_env()

"""
Purpose: Ranking Engine (the "who is best" layer).
What it does:

Takes candidates (already eligible) + the recipient and computes per candidate:

blood compatibility, urgency, proximity, wait time, medical risk sub-scores

composite = Σ weight_i * score_i / Σ weight_i   (always within [0, 100])

a human-readable rationale built from the sub-scores

Then drops non-viable matches (composite <= min_viable_score) and sorts
descending, with donor id as the deterministic tie-break.

Rule: Scoring is pure and read-only; it never touches stores or request state.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime
from typing import Iterable, List, Optional, Tuple

from hospitals.models import Hospital
from recipients.models import Recipient

from .candidate_filter import Candidate
from .compatibility import score_compatibility
from .policy import MatchingPolicy, ScoreWeights
from .priority import urgency_score, wait_time_score
from .proximity import ProximityTier, score_proximity


@dataclass(frozen=True)
class ScoreBreakdown:
    """
    Sub-scores for one (recipient, donor) pair, each in [0, 100].
    """
    blood_compatibility: int
    urgency: int
    proximity: int
    wait_time: int
    medical_risk: int

    proximity_tier: ProximityTier
    proximity_explanation: str = ""

    def composite(self, weights: ScoreWeights) -> float:
        weighted = (
            self.blood_compatibility * weights.blood_compatibility
            + self.urgency * weights.urgency
            + self.proximity * weights.proximity
            + self.wait_time * weights.wait_time
            + self.medical_risk * weights.medical_risk
        )
        score = weighted / weights.total
        return round(max(0.0, min(100.0, score)), 2)


@dataclass(frozen=True)
class RankedMatch:
    """
    One ranked donor for a recipient, with its score breakdown and rationale.
    """
    donor_id: str
    donor_name: str
    blood_type: str
    organs: Tuple[str, ...]
    hospital_id: str
    hospital_name: str
    city: Optional[str]
    region: Optional[str]

    breakdown: ScoreBreakdown
    match_score: float
    rationale: Tuple[str, ...]

    # titles of governance policies that changed this match
    applied_policies: Tuple[str, ...] = ()

    @property
    def explanation(self) -> str:
        return " | ".join(self.rationale)

    @property
    def policy_applied(self) -> bool:
        return bool(self.applied_policies)

    def with_score(self, score: float) -> RankedMatch:
        return replace(self, match_score=round(max(0.0, min(100.0, score)), 2))

    def with_note(self, note: str, policy_title: Optional[str] = None) -> RankedMatch:
        policies = self.applied_policies
        if policy_title and policy_title not in policies:
            policies = policies + (policy_title,)
        return replace(self, rationale=self.rationale + (note,), applied_policies=policies)


def build_rationale(recipient: Recipient, breakdown: ScoreBreakdown) -> Tuple[str, ...]:
    parts = [
        f"Blood: {breakdown.blood_compatibility}%",
        f"Distance: {breakdown.proximity_tier.value} ({breakdown.proximity}%)",
    ]
    if breakdown.urgency > 80:
        parts.append(f"High urgency ({recipient.urgency.value})")
    if breakdown.wait_time > 70:
        parts.append("Extended wait time")
    if breakdown.medical_risk > 85:
        parts.append("Excellent medical compatibility")
    if breakdown.proximity_explanation:
        parts.append(breakdown.proximity_explanation)
    return tuple(parts)


def score_candidate(
    recipient: Recipient,
    recipient_hospital: Hospital,
    candidate: Candidate,
    weights: ScoreWeights,
    *,
    now: Optional[datetime] = None,
) -> RankedMatch:
    donor = candidate.donor
    compatibility = score_compatibility(recipient, donor)
    proximity = score_proximity(recipient_hospital.location, candidate.hospital.location)

    breakdown = ScoreBreakdown(
        blood_compatibility=compatibility.blood,
        urgency=urgency_score(recipient.urgency, recipient.age, recipient.organ_needed),
        proximity=proximity.score,
        wait_time=wait_time_score(recipient.registered_at, now),
        medical_risk=compatibility.medical_risk,
        proximity_tier=proximity.tier,
        proximity_explanation=proximity.explanation,
    )

    return RankedMatch(
        donor_id=donor.id,
        donor_name=donor.full_name,
        blood_type=donor.blood_type.value,
        organs=tuple(sorted(donor.organs)),
        hospital_id=candidate.hospital.id,
        hospital_name=candidate.hospital.name,
        city=candidate.hospital.city,
        region=candidate.hospital.region,
        breakdown=breakdown,
        match_score=breakdown.composite(weights),
        rationale=build_rationale(recipient, breakdown),
    )


def sort_matches(matches: Iterable[RankedMatch]) -> List[RankedMatch]:
    return sorted(matches, key=lambda m: (-m.match_score, m.donor_id))


def viable_matches(matches: Iterable[RankedMatch], min_viable_score: float) -> List[RankedMatch]:
    return [m for m in matches if m.match_score > min_viable_score]


def applied_policy_titles(matches: Iterable[RankedMatch]) -> Tuple[str, ...]:
    """
    Titles of the policies that changed any of the matches, first seen first.
    """
    titles: List[str] = []
    for m in matches:
        for title in m.applied_policies:
            if title not in titles:
                titles.append(title)
    return tuple(titles)


def rank_candidates(
    recipient: Recipient,
    recipient_hospital: Hospital,
    candidates: Iterable[Candidate],
    policy: MatchingPolicy,
    *,
    now: Optional[datetime] = None,
) -> List[RankedMatch]:
    """
    Score every candidate with the policy weights, drop non-viable ones, sort descending.
    """
    scored = [
        score_candidate(recipient, recipient_hospital, candidate, policy.weights, now=now)
        for candidate in candidates
    ]
    return sort_matches(viable_matches(scored, policy.min_viable_score))

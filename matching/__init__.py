#Expose the pure matching pipeline pieces:
#Candidate filtering (hard rules)
#Sub-scorers + ranking
#Weight profiles / thresholds
#The orchestrator lives in matching.matcher (it needs the store and governance layers).

from .candidate_filter import Candidate, CandidateScope, find_candidates, is_eligible_donor
from .compatibility import blood_compatibility_score, is_blood_compatible, score_compatibility
from .policy import (
    BASIC_WEIGHTS,
    ENHANCED_WEIGHTS,
    MatchingPolicy,
    ScoreWeights,
    basic_matching_policy,
    default_matching_policy,
    matching_policy_from_env,
)
from .proximity import ProximityTier, score_proximity
from .scoring import RankedMatch, ScoreBreakdown, rank_candidates

__all__ = [
    "Candidate",
    "CandidateScope",
    "find_candidates",
    "is_eligible_donor",
    "blood_compatibility_score",
    "is_blood_compatible",
    "score_compatibility",
    "BASIC_WEIGHTS",
    "ENHANCED_WEIGHTS",
    "MatchingPolicy",
    "ScoreWeights",
    "basic_matching_policy",
    "default_matching_policy",
    "matching_policy_from_env",
    "ProximityTier",
    "score_proximity",
    "RankedMatch",
    "ScoreBreakdown",
    "rank_candidates",
]

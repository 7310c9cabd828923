"""
Purpose: Central configuration for donor matching (single source of truth).
What it does:

Stores all tunable weights/thresholds for ranking candidates:

ENHANCED_WEIGHTS = blood 0.35, urgency 0.25, proximity 0.15, wait 0.10, medical risk 0.15

BASIC_WEIGHTS = blood 0.40, urgency 0.30, proximity 0.20, wait 0.10 (no medical risk term)

MIN_VIABLE_SCORE = 40

MAX_RESULTS = 10

Rule: No logic here, just parameters so you can tune without rewriting code.
"""

from __future__ import annotations

import math
import os
from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Optional

from dotenv import load_dotenv


@dataclass(frozen=True)
class ScoreWeights:
    """
    Weight tuple for the composite match score.

    The composite is normalised by `total`, so a tuple only has to be
    non-negative with a positive sum; the shipped profiles sum to 1.0.
    """
    blood_compatibility: float
    urgency: float
    proximity: float
    wait_time: float
    medical_risk: float

    # accepted spellings for each component in policy-supplied mappings
    KEY_ALIASES = {
        "blood_compatibility": ("blood_compatibility", "blood"),
        "urgency": ("urgency_level", "urgency"),
        "proximity": ("geographical_distance", "distance", "proximity"),
        "wait_time": ("waiting_time", "wait_time", "time"),
        "medical_risk": ("medical_risk", "risk"),
    }

    @property
    def total(self) -> float:
        return (
            self.blood_compatibility
            + self.urgency
            + self.proximity
            + self.wait_time
            + self.medical_risk
        )

    def as_dict(self) -> Dict[str, float]:
        return {
            "blood_compatibility": self.blood_compatibility,
            "urgency": self.urgency,
            "proximity": self.proximity,
            "wait_time": self.wait_time,
            "medical_risk": self.medical_risk,
        }

    def validate(self) -> None:
        for name, value in self.as_dict().items():
            if not isinstance(value, (int, float)) or not math.isfinite(value) or value < 0:
                raise ValueError(f"weight {name} must be a finite non-negative number, got {value!r}")
        if not math.isfinite(self.total) or self.total <= 0:
            raise ValueError("weights must have a positive sum")

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any], fallback: ScoreWeights) -> ScoreWeights:
        """
        Build weights from a policy-supplied mapping.
        Missing components take the fallback value; unparseable ones raise ValueError.
        """
        if not isinstance(data, Mapping):
            raise ValueError(f"weights must be a mapping, got {type(data).__name__}")

        values: Dict[str, float] = fallback.as_dict()
        for component, aliases in cls.KEY_ALIASES.items():
            for alias in aliases:
                if alias in data and data[alias] is not None:
                    try:
                        values[component] = float(data[alias])
                    except (TypeError, ValueError) as exc:
                        raise ValueError(f"weight {alias} is not numeric: {data[alias]!r}") from exc
                    break

        weights = cls(**values)
        weights.validate()
        return weights


ENHANCED_WEIGHTS = ScoreWeights(
    blood_compatibility=0.35,
    urgency=0.25,
    proximity=0.15,
    wait_time=0.10,
    medical_risk=0.15,
)

BASIC_WEIGHTS = ScoreWeights(
    blood_compatibility=0.40,
    urgency=0.30,
    proximity=0.20,
    wait_time=0.10,
    medical_risk=0.0,
)

WEIGHT_PROFILES: Dict[str, ScoreWeights] = {
    "enhanced": ENHANCED_WEIGHTS,
    "basic": BASIC_WEIGHTS,
}


@dataclass(frozen=True)
class MatchingPolicy:
    """
    Central configuration for candidate ranking.
    """

    # --- Composite score weights ---
    weights: ScoreWeights = field(default_factory=lambda: ENHANCED_WEIGHTS)

    # --- Viability cut-off ---
    # Matches scoring at or below this are dropped from the ranking, both before
    # and after governance policies adjust the scores.
    min_viable_score: float = 40.0

    # --- Result size ---
    # Enhanced matching returns at most this many candidates (None = unbounded).
    max_results: Optional[int] = 10

    def validate(self) -> None:
        """
        Basic sanity checks.
        """
        self.weights.validate()

        if not 0 <= self.min_viable_score < 100:
            raise ValueError("min_viable_score must be in [0, 100)")

        if self.max_results is not None and self.max_results <= 0:
            raise ValueError("max_results must be > 0 when set")


def default_matching_policy() -> MatchingPolicy:
    """
    Convenience factory for the default policy (enhanced weights).
    """
    p = MatchingPolicy()
    p.validate()
    return p


def basic_matching_policy() -> MatchingPolicy:
    """
    The four-factor weighting without a separate medical-risk term.
    """
    p = MatchingPolicy(weights=BASIC_WEIGHTS)
    p.validate()
    return p


def matching_policy_from_env() -> MatchingPolicy:
    """
    Reads overrides from the environment (or a .env file):

    MATCHING_WEIGHT_PROFILE=enhanced|basic
    MATCHING_MIN_VIABLE_SCORE=40
    MATCHING_MAX_RESULTS=10   (0 disables the cap)
    """
    load_dotenv()

    profile = os.getenv("MATCHING_WEIGHT_PROFILE", "enhanced").strip().lower()
    if profile not in WEIGHT_PROFILES:
        raise ValueError(
            f"Unknown MATCHING_WEIGHT_PROFILE {profile!r}; expected one of {sorted(WEIGHT_PROFILES)}"
        )

    min_viable_score = float(os.getenv("MATCHING_MIN_VIABLE_SCORE", "40"))
    max_results = int(os.getenv("MATCHING_MAX_RESULTS", "10"))

    p = MatchingPolicy(
        weights=WEIGHT_PROFILES[profile],
        min_viable_score=min_viable_score,
        max_results=max_results or None,
    )
    p.validate()
    return p

#Purpose: Administrative-hierarchy proximity heuristic.
#Exact coordinates are usually unavailable for hospitals, so instead of routing
#we compare city -> region -> country and bucket the pair into one of four tiers:
#Local (100) > Regional (75) > National (50) > International (30)
#Output: a ProximityResult the ranking engine consumes (score + tier + explanation).

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from hospitals.models import Location


class ProximityTier(str, Enum):
    LOCAL = "Local"
    REGIONAL = "Regional"
    NATIONAL = "National"
    INTERNATIONAL = "International"

    @property
    def score(self) -> int:
        return _TIER_SCORES[self]


_TIER_SCORES = {
    ProximityTier.LOCAL: 100,
    ProximityTier.REGIONAL: 75,
    ProximityTier.NATIONAL: 50,
    ProximityTier.INTERNATIONAL: 30,
}


@dataclass(frozen=True)
class ProximityResult:
    tier: ProximityTier
    explanation: str

    @property
    def score(self) -> int:
        return self.tier.score


def score_proximity(recipient_location: Location, donor_location: Location) -> ProximityResult:
    """
    Tiers are checked from the tightest outwards; a blank name never matches.
    """
    if recipient_location.same_city(donor_location):
        return ProximityResult(
            ProximityTier.LOCAL,
            f"Same city ({donor_location.city}) - Fastest transport",
        )

    if recipient_location.same_region(donor_location):
        return ProximityResult(
            ProximityTier.REGIONAL,
            f"Same state ({donor_location.region}) - Within state",
        )

    if recipient_location.same_country(donor_location):
        return ProximityResult(
            ProximityTier.NATIONAL,
            f"Different state ({donor_location.region or 'Unknown'}) - Interstate transport",
        )

    return ProximityResult(
        ProximityTier.INTERNATIONAL,
        f"Different country ({donor_location.country or 'Unknown'}) - International coordination required",
    )

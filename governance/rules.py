"""
Purpose: Turn an approved governance policy into typed ranking rules.
What it does:
- OrganWeightOverride: replaces the composite weights for one organ and rescores.
- SameLocationBonus: + points for donors in the recipient's city / region.
- PediatricBonus: + points for every candidate of a pediatric recipient.
- UrgentBonus: + points for every candidate of a Critical recipient.

Policies carry either structured rule entries (`policy.rules`) or only free text,
in which case the rules are inferred from the title/content keywords.

Rule: a policy that cannot be understood raises MalformedPolicyError; the
adjuster decides what to do with it.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Any, List, Mapping, Optional, Tuple

from donors.models import normalize_organ
from matching.policy import ScoreWeights
from matching.proximity import ProximityTier
from matching.scoring import RankedMatch
from recipients.models import Recipient, UrgencyLevel

from .models import GovernancePolicy

logger = logging.getLogger(__name__)

KNOWN_ORGANS = ("kidney", "heart", "liver", "lung", "pancreas", "intestine")

DEFAULT_CITY_BONUS = 15
DEFAULT_REGION_BONUS = 8
DEFAULT_PEDIATRIC_BONUS = 5
DEFAULT_URGENT_BONUS = 8
PEDIATRIC_AGE_LIMIT = 18

_URGENT_KEYWORDS = ("urgent", "emergency", "critical")


class MalformedPolicyError(ValueError):
    """Raised when a policy's structured data cannot be turned into rules."""

    def __init__(self, policy_id: str, reason: str):
        super().__init__(f"policy {policy_id}: {reason}")
        self.policy_id = policy_id
        self.reason = reason


@dataclass(frozen=True)
class PolicyRule:
    policy_id: str
    title: str

    def applies_to(self, recipient: Recipient) -> bool:
        raise NotImplementedError

    def adjust(self, match: RankedMatch) -> RankedMatch:
        raise NotImplementedError


def _add_bonus(match: RankedMatch, bonus: int, note: str, title: str) -> RankedMatch:
    return match.with_score(match.match_score + bonus).with_note(note, title)


@dataclass(frozen=True)
class OrganWeightOverride(PolicyRule):
    organ: str = ""
    weights: Optional[ScoreWeights] = None
    # True when the policy named weights we could not use
    used_fallback: bool = False

    def applies_to(self, recipient: Recipient) -> bool:
        return normalize_organ(recipient.organ_needed) == self.organ

    def adjust(self, match: RankedMatch) -> RankedMatch:
        return match.with_score(match.breakdown.composite(self.weights))


@dataclass(frozen=True)
class SameLocationBonus(PolicyRule):
    organ: Optional[str] = None  # None = any organ
    city_bonus: int = DEFAULT_CITY_BONUS
    region_bonus: int = DEFAULT_REGION_BONUS

    def applies_to(self, recipient: Recipient) -> bool:
        return self.organ is None or normalize_organ(recipient.organ_needed) == self.organ

    def adjust(self, match: RankedMatch) -> RankedMatch:
        tier = match.breakdown.proximity_tier
        if tier == ProximityTier.LOCAL and self.city_bonus > 0:
            note = f"Same city priority ({match.city}) - {self.title} (+{self.city_bonus} pts)"
            return _add_bonus(match, self.city_bonus, note, self.title)
        if tier == ProximityTier.REGIONAL and self.region_bonus > 0:
            note = f"Same state priority ({match.region}) - {self.title} (+{self.region_bonus} pts)"
            return _add_bonus(match, self.region_bonus, note, self.title)
        return match


@dataclass(frozen=True)
class PediatricBonus(PolicyRule):
    bonus: int = DEFAULT_PEDIATRIC_BONUS
    max_age: int = PEDIATRIC_AGE_LIMIT

    def applies_to(self, recipient: Recipient) -> bool:
        return recipient.age < self.max_age

    def adjust(self, match: RankedMatch) -> RankedMatch:
        return _add_bonus(match, self.bonus, f"{self.title} (+{self.bonus} pts)", self.title)


@dataclass(frozen=True)
class UrgentBonus(PolicyRule):
    bonus: int = DEFAULT_URGENT_BONUS

    def applies_to(self, recipient: Recipient) -> bool:
        return recipient.urgency == UrgencyLevel.CRITICAL

    def adjust(self, match: RankedMatch) -> RankedMatch:
        return _add_bonus(match, self.bonus, f"{self.title} (+{self.bonus} pts)", self.title)


def mentioned_organ(text: str) -> Optional[str]:
    """
    First known organ named in the text (by position), singular form.
    """
    text = (text or "").lower()
    found = [(text.find(organ), organ) for organ in KNOWN_ORGANS if organ in text]
    if not found:
        return None
    return normalize_organ(min(found)[1])


def resolve_weights(policy: GovernancePolicy, raw: Any, fallback: ScoreWeights) -> Tuple[ScoreWeights, bool]:
    """
    Weights named by a policy, falling back per missing key.
    Unreadable data falls back to the whole default tuple and is logged.
    """
    if raw is None:
        return fallback, False

    try:
        if isinstance(raw, (str, bytes)):
            raw = json.loads(raw)
        return ScoreWeights.from_mapping(raw, fallback), False
    except ValueError as exc:
        # json.JSONDecodeError is a ValueError too
        logger.warning("Policy %s has unusable weights, using defaults: %s", policy.id, exc)
        return fallback, True


def _bonus(policy: GovernancePolicy, entry: Mapping[str, Any], key: str, default: int) -> int:
    value = entry.get(key, default)
    try:
        bonus = int(value)
    except (TypeError, ValueError) as exc:
        raise MalformedPolicyError(policy.id, f"{key} is not an integer: {value!r}") from exc
    if bonus < 0:
        raise MalformedPolicyError(policy.id, f"{key} must be >= 0, got {bonus}")
    return bonus


def _entry_organ(policy: GovernancePolicy, entry: Mapping[str, Any]) -> Optional[str]:
    organ = entry.get("organ", policy.organ)
    if organ is None:
        return None
    if not isinstance(organ, str) or not organ.strip():
        raise MalformedPolicyError(policy.id, f"organ must be a non-empty string, got {organ!r}")
    return normalize_organ(organ)


def _rule_from_entry(policy: GovernancePolicy, entry: Any, fallback: ScoreWeights) -> PolicyRule:
    if not isinstance(entry, Mapping):
        raise MalformedPolicyError(policy.id, f"rule entry must be a mapping, got {type(entry).__name__}")

    kind = str(entry.get("type", "")).strip().lower()

    if kind == "organ_weights":
        organ = _entry_organ(policy, entry) or mentioned_organ(policy.text)
        if organ is None:
            raise MalformedPolicyError(policy.id, "organ_weights rule names no organ")
        weights, used_fallback = resolve_weights(
            policy, entry.get("weights", policy.criteria_weights), fallback
        )
        return OrganWeightOverride(
            policy.id, policy.title, organ=organ, weights=weights, used_fallback=used_fallback
        )

    if kind == "same_location":
        return SameLocationBonus(
            policy.id,
            policy.title,
            organ=_entry_organ(policy, entry),
            city_bonus=_bonus(policy, entry, "city_bonus", DEFAULT_CITY_BONUS),
            region_bonus=_bonus(policy, entry, "region_bonus", DEFAULT_REGION_BONUS),
        )

    if kind == "pediatric":
        return PediatricBonus(
            policy.id,
            policy.title,
            bonus=_bonus(policy, entry, "bonus", DEFAULT_PEDIATRIC_BONUS),
            max_age=_bonus(policy, entry, "max_age", PEDIATRIC_AGE_LIMIT),
        )

    if kind == "urgent":
        return UrgentBonus(
            policy.id, policy.title, bonus=_bonus(policy, entry, "bonus", DEFAULT_URGENT_BONUS)
        )

    raise MalformedPolicyError(policy.id, f"unknown rule type {kind!r}")


def _rules_from_text(policy: GovernancePolicy, fallback: ScoreWeights) -> List[PolicyRule]:
    rules: List[PolicyRule] = []
    title = policy.title.lower()

    if policy.organ is not None and not str(policy.organ).strip():
        raise MalformedPolicyError(policy.id, "organ is blank")
    organ = normalize_organ(policy.organ) if policy.organ else mentioned_organ(policy.text)

    if organ:
        weights, used_fallback = resolve_weights(policy, policy.criteria_weights, fallback)
        rules.append(
            OrganWeightOverride(
                policy.id, policy.title, organ=organ, weights=weights, used_fallback=used_fallback
            )
        )

    location_priority = organ is not None and organ in title and ("transport" in title or "priority" in title)
    if location_priority or "geographically closer" in policy.text:
        rules.append(SameLocationBonus(policy.id, policy.title, organ=organ))

    if "pediatric" in title:
        rules.append(PediatricBonus(policy.id, policy.title))

    if any(keyword in title for keyword in _URGENT_KEYWORDS):
        rules.append(UrgentBonus(policy.id, policy.title))

    return rules


def build_rules(policy: GovernancePolicy, fallback_weights: ScoreWeights) -> List[PolicyRule]:
    """
    Structured entries win; free-text policies are read by keyword.
    """
    if not isinstance(policy.title, str) or not policy.title.strip():
        raise MalformedPolicyError(policy.id, "policy has no title")

    if policy.rules:
        if not isinstance(policy.rules, (list, tuple)):
            raise MalformedPolicyError(policy.id, "rules must be a list")
        return [_rule_from_entry(policy, entry, fallback_weights) for entry in policy.rules]

    return _rules_from_text(policy, fallback_weights)

"""
Purpose: Policy Adjuster (governance layer on top of the ranking).
What it does:

Takes the ranked matches for one recipient + the currently approved policies and:

1) Weight override: the newest policy with an OrganWeightOverride for the
   recipient's organ reweights every match; other matching overrides are only
   counted ("Policy: X (+n more)").

2) Rule bonuses: every applicable bonus rule adds its points (capped at 100)
   and appends its title to the rationale.

3) Re-sorts descending by the final score.

Rule: policy data problems never abort matching. The policy is skipped and logged.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Iterable, List, Optional, Tuple

from matching.policy import ENHANCED_WEIGHTS, ScoreWeights
from matching.scoring import RankedMatch, applied_policy_titles, sort_matches
from recipients.models import Recipient

from .models import GovernancePolicy, is_eligible_for_matching
from .rules import MalformedPolicyError, OrganWeightOverride, PolicyRule, build_rules

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AdjustmentResult:
    matches: List[RankedMatch]

    # title of the policy whose weights were used, if any
    weight_policy: Optional[str] = None
    weight_policy_count: int = 0
    applied_policies: Tuple[str, ...] = field(default_factory=tuple)

    @property
    def policy_applied(self) -> bool:
        return bool(self.applied_policies)


def order_policies(policies: Iterable[GovernancePolicy]) -> List[GovernancePolicy]:
    """
    Eligible policies only, newest first.
    """
    eligible = [p for p in policies if is_eligible_for_matching(p)]
    return sorted(eligible, key=lambda p: p.created_at, reverse=True)


class PolicyAdjuster:
    def __init__(self, default_weights: ScoreWeights = ENHANCED_WEIGHTS):
        self.default_weights = default_weights

    def compile(
        self,
        policies: Iterable[GovernancePolicy],
        default_weights: Optional[ScoreWeights] = None,
    ) -> List[PolicyRule]:
        fallback = default_weights or self.default_weights
        rules: List[PolicyRule] = []

        for policy in order_policies(policies):
            try:
                rules.extend(build_rules(policy, fallback))
            except MalformedPolicyError as exc:
                logger.warning("Skipping malformed policy %s (%s): %s", policy.id, policy.title, exc.reason)

        return rules

    def adjust(
        self,
        recipient: Recipient,
        matches: Iterable[RankedMatch],
        policies: Iterable[GovernancePolicy],
        default_weights: Optional[ScoreWeights] = None,
    ) -> AdjustmentResult:
        adjusted = list(matches)
        rules = [r for r in self.compile(policies, default_weights) if r.applies_to(recipient)]

        overrides = [r for r in rules if isinstance(r, OrganWeightOverride)]
        bonuses = [r for r in rules if not isinstance(r, OrganWeightOverride)]

        weight_policy = None
        if overrides:
            chosen = overrides[0]
            weight_policy = chosen.title
            note = f"Policy: {chosen.title}"
            if len(overrides) > 1:
                note += f" (+{len(overrides) - 1} more)"

            logger.info(
                "Reweighting %d matches for recipient %s with policy %s",
                len(adjusted), recipient.id, chosen.policy_id,
            )
            adjusted = [chosen.adjust(m).with_note(note, chosen.title) for m in adjusted]

        for rule in bonuses:
            adjusted = [rule.adjust(m) for m in adjusted]

        adjusted = sort_matches(adjusted)

        return AdjustmentResult(
            matches=adjusted,
            weight_policy=weight_policy,
            weight_policy_count=len(overrides),
            applied_policies=applied_policy_titles(adjusted),
        )

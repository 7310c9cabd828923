"""
Governance domain package.

Public API:
- Policy model: GovernancePolicy, PolicyStatus, is_eligible_for_matching
- Typed rules: PolicyRule, OrganWeightOverride, SameLocationBonus, PediatricBonus, UrgentBonus
- Ranking adjustment: PolicyAdjuster
"""
from .models import GovernancePolicy, PolicyStatus, is_eligible_for_matching
from .rules import (
    MalformedPolicyError,
    OrganWeightOverride,
    PediatricBonus,
    PolicyRule,
    SameLocationBonus,
    UrgentBonus,
    build_rules,
)
from .adjuster import AdjustmentResult, PolicyAdjuster

__all__ = [
    "GovernancePolicy",
    "PolicyStatus",
    "is_eligible_for_matching",
    "MalformedPolicyError",
    "PolicyRule",
    "OrganWeightOverride",
    "SameLocationBonus",
    "PediatricBonus",
    "UrgentBonus",
    "build_rules",
    "AdjustmentResult",
    "PolicyAdjuster",
]

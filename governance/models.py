"""
Purpose: Domain models for organization governance policies.
What it does:
- Defines the GovernancePolicy voted on by member organizations.
- Defines PolicyStatus = voting | active | withdrawn | suspended
- Decides whether a policy may influence matching right now.

Rule: No rule parsing and no score math here. Models only.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, List, Mapping, Optional

from donors.models import utcnow


class PolicyStatus(str, Enum):
    VOTING = "voting"
    ACTIVE = "active"
    WITHDRAWN = "withdrawn"
    SUSPENDED = "suspended"


@dataclass
class GovernancePolicy:
    """
    A proposal that, once approved, may reweight or bonus the donor ranking.

    `criteria_weights` is the raw weight override as stored (a mapping or a JSON
    string); `rules` holds structured rule entries such as
    {"type": "same_location", "organ": "kidney", "city_bonus": 15, "region_bonus": 8}.
    """
    id: str
    title: str
    content: str = ""
    status: PolicyStatus = PolicyStatus.VOTING

    votes_for: int = 0
    votes_against: int = 0
    paused_for_matching: bool = False

    organ: Optional[str] = None
    criteria_weights: Optional[Any] = None
    rules: List[Mapping[str, Any]] = field(default_factory=list)

    proposed_by: Optional[str] = None
    created_at: datetime = field(default_factory=utcnow)

    @property
    def total_votes(self) -> int:
        return self.votes_for + self.votes_against

    @property
    def has_majority(self) -> bool:
        # strictly more than half of the votes cast
        total = self.total_votes
        return total > 0 and self.votes_for / total > 0.5

    @property
    def text(self) -> str:
        return f"{self.title} {self.content}".lower()


def is_eligible_for_matching(policy: GovernancePolicy) -> bool:
    if policy.paused_for_matching:
        return False
    if policy.status == PolicyStatus.ACTIVE:
        return True
    if policy.status == PolicyStatus.VOTING:
        return policy.has_majority
    return False

"""
Purpose: Matching orchestrator (the "one call" entry point).
What it does:
Loads the recipient, finds eligible donors, ranks them and lets the approved
governance policies adjust the ranking.

find_matches           cross-hospital search; organ / blood type / urgency may be overridden
find_enhanced_matches  any hospital, top `max_results`, with policy attribution
predict_success        success estimate for one recipient/donor pair

The viability cut applies to the policy-adjusted scores as well: a reweight that
pushes a match to or below min_viable_score drops it.

Rule: read-only. Nothing here writes to the store.
"""

from __future__ import annotations

import dataclasses
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, List, Optional, Tuple

from allocation.errors import DataIntegrityError, NotFoundError, ValidationError
from allocation.repository import AllocationStore, PolicySource
from donors.models import BloodType, DonorStatus, utcnow
from governance.adjuster import PolicyAdjuster
from recipients.models import Recipient, UrgencyLevel

from .candidate_filter import CandidateScope, find_candidates
from .compatibility import SuccessPrediction, predict_success
from .policy import MatchingPolicy, default_matching_policy
from .scoring import RankedMatch, applied_policy_titles, rank_candidates, viable_matches

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MatchResult:
    recipient_id: str
    organ: str
    blood_type: str
    urgency: str

    matches: List[RankedMatch]
    total_candidates: int

    weight_policy: Optional[str] = None
    applied_policies: Tuple[str, ...] = ()

    @property
    def policy_applied(self) -> bool:
        return bool(self.applied_policies)

    @property
    def total_matches(self) -> int:
        return len(self.matches)


class Matcher:
    def __init__(
        self,
        store: AllocationStore,
        policies: Optional[PolicySource] = None,
        policy: Optional[MatchingPolicy] = None,
        adjuster: Optional[PolicyAdjuster] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.store = store
        self.policies = policies
        self.policy = policy or default_matching_policy()
        self.adjuster = adjuster or PolicyAdjuster(self.policy.weights)
        self.clock = clock

    def _load_recipient(self, recipient_id: str, hospital_id: Optional[str]) -> Recipient:
        if not isinstance(recipient_id, str) or not recipient_id.strip():
            raise ValidationError("recipient_id is required")

        recipient = self.store.get_recipient(recipient_id.strip())
        if recipient is None or (hospital_id is not None and recipient.hospital_id != hospital_id):
            raise NotFoundError(f"Recipient {recipient_id} not found")
        return recipient

    def _with_overrides(
        self,
        recipient: Recipient,
        organ: Optional[str],
        blood_type: Optional[str],
        urgency: Optional[str],
    ) -> Recipient:
        changes = {}
        if organ is not None:
            if not isinstance(organ, str) or not organ.strip():
                raise ValidationError("organ must be a non-empty string")
            changes["organ_needed"] = organ.strip()
        try:
            if blood_type is not None:
                changes["blood_type"] = BloodType.parse(blood_type)
            if urgency is not None:
                changes["urgency"] = UrgencyLevel.parse(urgency)
        except ValueError as exc:
            raise ValidationError(str(exc)) from exc

        return dataclasses.replace(recipient, **changes) if changes else recipient

    def _match(self, recipient: Recipient, scope: CandidateScope, limit: Optional[int]) -> MatchResult:
        home = self.store.get_hospital(recipient.hospital_id)
        if home is None:
            raise DataIntegrityError(f"Hospital {recipient.hospital_id} of recipient {recipient.id} no longer exists")

        hospitals = {h.id: h for h in self.store.list_hospitals()}
        donors = self.store.list_donors(organ=recipient.organ_needed, status=DonorStatus.AVAILABLE)
        candidates = find_candidates(recipient, donors, hospitals, scope)

        ranked = rank_candidates(recipient, home, candidates, self.policy, now=self.clock())

        policies = self.policies.eligible_policies() if self.policies is not None else []
        adjusted = self.adjuster.adjust(recipient, ranked, policies, self.policy.weights)

        matches = viable_matches(adjusted.matches, self.policy.min_viable_score)
        if limit is not None:
            matches = matches[:limit]

        logger.info(
            "Matched recipient %s (%s, %s): %d candidates, %d viable, %d returned",
            recipient.id, recipient.organ_needed, scope.value, len(candidates), len(ranked), len(matches),
        )
        return MatchResult(
            recipient_id=recipient.id,
            organ=recipient.organ_needed,
            blood_type=recipient.blood_type.value,
            urgency=recipient.urgency.value,
            matches=matches,
            total_candidates=len(candidates),
            weight_policy=adjusted.weight_policy,
            applied_policies=applied_policy_titles(matches),
        )

    def find_matches(
        self,
        recipient_id: str,
        organ: Optional[str] = None,
        blood_type: Optional[str] = None,
        urgency: Optional[str] = None,
        hospital_id: Optional[str] = None,
    ) -> MatchResult:
        """
        Donors at other hospitals only. `hospital_id`, when given, must own the recipient.
        """
        recipient = self._load_recipient(recipient_id, hospital_id)
        recipient = self._with_overrides(recipient, organ, blood_type, urgency)
        return self._match(recipient, CandidateScope.CROSS_HOSPITAL, limit=None)

    def find_enhanced_matches(self, recipient_id: str, hospital_id: Optional[str] = None) -> MatchResult:
        """
        Donors at any hospital (internal matches included), capped at policy.max_results.
        """
        recipient = self._load_recipient(recipient_id, hospital_id)
        return self._match(recipient, CandidateScope.ANY, limit=self.policy.max_results)

    def predict_success(
        self, recipient_id: str, donor_id: str, hospital_id: Optional[str] = None
    ) -> SuccessPrediction:
        recipient = self._load_recipient(recipient_id, hospital_id)
        if not isinstance(donor_id, str) or not donor_id.strip():
            raise ValidationError("donor_id is required")

        donor = self.store.get_donor(donor_id.strip())
        if donor is None:
            raise NotFoundError(f"Donor {donor_id} not found")

        prediction = predict_success(recipient, donor)
        logger.info(
            "Predicted %d%% success for recipient %s / donor %s (%d risk factors)",
            prediction.probability, recipient.id, donor.id, len(prediction.risk_factors),
        )
        return prediction

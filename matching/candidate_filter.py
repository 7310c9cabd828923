#Purpose: Hard eligibility filtering (rule gates) for donor candidates.
#Builds the base candidate set before scoring.
#Responsibilities:
#active + available donors only
#organ offered (singular/plural tolerant)
#ABO/Rh compatible blood type
#hospital scope (cross-hospital search vs same-hospital / internal match search)

#Output: "rule-qualified donors" paired with their hospital (still not ranked).

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Iterable, List, Mapping

from donors.models import Donor, DonorStatus
from hospitals.models import Hospital
from recipients.models import Recipient

from .compatibility import is_blood_compatible


class CandidateScope(str, Enum):
    CROSS_HOSPITAL = "cross_hospital"  # excludes the recipient's own hospital
    SAME_HOSPITAL = "same_hospital"  # internal / auto-match detection
    ANY = "any"


@dataclass(frozen=True)
class Candidate:
    donor: Donor
    hospital: Hospital


def in_scope(recipient: Recipient, donor: Donor, scope: CandidateScope) -> bool:
    if scope == CandidateScope.CROSS_HOSPITAL:
        return donor.hospital_id != recipient.hospital_id
    if scope == CandidateScope.SAME_HOSPITAL:
        return donor.hospital_id == recipient.hospital_id
    return True


def is_eligible_donor(recipient: Recipient, donor: Donor) -> bool:
    """
    Scope-independent gates of the candidate finder. Request creation re-checks the
    same gates one at a time so each failure maps to its own error.
    """
    if not donor.is_active or donor.status != DonorStatus.AVAILABLE:
        return False

    if not donor.offers(recipient.organ_needed):
        return False

    return is_blood_compatible(recipient.blood_type, donor.blood_type)


def find_candidates(
    recipient: Recipient,
    donors: Iterable[Donor],
    hospitals: Mapping[str, Hospital],
    scope: CandidateScope = CandidateScope.CROSS_HOSPITAL,
) -> List[Candidate]:
    """
    Returns the donors that may be offered to this recipient.
    The caller picks the hospital scope; donors whose hospital is unknown are skipped.
    """
    candidates: List[Candidate] = []

    for donor in donors:
        if not in_scope(recipient, donor, scope):
            continue

        if not is_eligible_donor(recipient, donor):
            continue

        hospital = hospitals.get(donor.hospital_id)
        if hospital is None:
            continue

        candidates.append(Candidate(donor=donor, hospital=hospital))

    return candidates

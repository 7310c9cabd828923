"""
Purpose: Compatibility Scorer (pure functions).
What it does:
- Blood sub-score from ABO/Rh donor-compatibility rules.
- Medical-risk sub-score from age gap, organ sensitivity, pediatric/elderly rules and gender.
- Transplant success estimate with risk factors and recommendations for one pair.

Rule: no I/O, no ranking. Inputs in, scores in [0, 100] out.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import List, Tuple

from donors.models import BloodType, Donor, normalize_organ
from recipients.models import Recipient, UrgencyLevel

# donor ABO group -> recipient ABO groups it may give to
_ABO_RECEIVERS = {
    "O": {"O", "A", "B", "AB"},
    "A": {"A", "AB"},
    "B": {"B", "AB"},
    "AB": {"AB"},
}

IDENTICAL_SCORE = 100
RH_ONLY_DIFFERS_SCORE = 95
ABO_ONLY_DIFFERS_SCORE = 90
BOTH_DIFFER_SCORE = 85
UNIVERSAL_DONOR_SCORE = 80

MEDICAL_RISK_BASELINE = 80

# organ -> (age gap threshold, penalty)
_ORGAN_AGE_SENSITIVITY = {
    "heart": (15, 20),
    "lung": (10, 25),
    "liver": (20, 15),
    "kidney": (25, 10),
}

_GENDER_SENSITIVE_ORGANS = {"heart", "liver"}


@dataclass(frozen=True)
class CompatibilityScore:
    blood: int
    medical_risk: int


def is_blood_compatible(recipient_blood: str | BloodType, donor_blood: str | BloodType) -> bool:
    recipient_type = BloodType.parse(recipient_blood)
    donor_type = BloodType.parse(donor_blood)

    if recipient_type.abo not in _ABO_RECEIVERS[donor_type.abo]:
        return False
    # Rh-positive donors only give to Rh-positive recipients
    if donor_type.rh_positive and not recipient_type.rh_positive:
        return False
    return True


def blood_compatibility_score(recipient_blood: str | BloodType, donor_blood: str | BloodType) -> int:
    """
    100 for identical types, 0 for incompatible pairs, and 80-95 for valid
    non-identical donations depending on which side of the type differs.
    """
    recipient_type = BloodType.parse(recipient_blood)
    donor_type = BloodType.parse(donor_blood)

    if recipient_type == donor_type:
        return IDENTICAL_SCORE
    if not is_blood_compatible(recipient_type, donor_type):
        return 0

    # O- is the scarcest universal supply; spending it elsewhere costs a little
    if donor_type == BloodType.O_NEG:
        return UNIVERSAL_DONOR_SCORE

    same_abo = recipient_type.abo == donor_type.abo
    same_rh = recipient_type.rh_positive == donor_type.rh_positive
    if same_abo:
        return RH_ONLY_DIFFERS_SCORE
    if same_rh:
        return ABO_ONLY_DIFFERS_SCORE
    return BOTH_DIFFER_SCORE


def medical_risk_score(recipient: Recipient, donor: Donor) -> int:
    score = MEDICAL_RISK_BASELINE
    age_gap = abs(recipient.age - donor.age)

    if age_gap > 20:
        score -= 15
    elif age_gap > 10:
        score -= 8
    elif age_gap <= 5:
        score += 5

    organ = normalize_organ(recipient.organ_needed)
    sensitivity = _ORGAN_AGE_SENSITIVITY.get(organ)
    if sensitivity is not None:
        threshold, penalty = sensitivity
        if age_gap > threshold:
            score -= penalty

    if recipient.is_pediatric:
        score += 10
        if donor.age < 30:
            score += 5
    elif recipient.age > 65:
        if donor.age > 65:
            score -= 10
        elif donor.age < 50:
            score += 5

    if (
        organ in _GENDER_SENSITIVE_ORGANS
        and recipient.gender is not None
        and recipient.gender == donor.gender
    ):
        score += 5

    return max(0, min(100, score))


def score_compatibility(recipient: Recipient, donor: Donor) -> CompatibilityScore:
    return CompatibilityScore(
        blood=blood_compatibility_score(recipient.blood_type, donor.blood_type),
        medical_risk=medical_risk_score(recipient, donor),
    )


SUCCESS_BASELINE = 75
SUCCESS_FLOOR = 30
SUCCESS_CEILING = 95

STANDARD_RECOMMENDATIONS = (
    "Complete tissue typing and crossmatching",
    "Coordinate transportation logistics",
)


@dataclass(frozen=True)
class SuccessPrediction:
    probability: int
    risk_factors: Tuple[str, ...]
    recommendations: Tuple[str, ...]


def predict_success(recipient: Recipient, donor: Donor) -> SuccessPrediction:
    """
    Rough transplant success estimate for one recipient/donor pair.

    Starts at 75 and moves with the age gap, blood match quality, organ type,
    urgency and gender match; the result is clamped to [30, 95]. Every risk that
    lowers the estimate is named in risk_factors.
    """
    probability = SUCCESS_BASELINE
    risks: List[str] = []
    recommendations: List[str] = []

    age_gap = abs(recipient.age - donor.age)
    if age_gap > 20:
        probability -= 15
        risks.append("Significant age difference between donor and recipient")
        recommendations.append("Consider additional pre-operative screening")
    elif age_gap <= 5:
        probability += 10

    blood = blood_compatibility_score(recipient.blood_type, donor.blood_type)
    if blood < UNIVERSAL_DONOR_SCORE:
        probability -= 20
        risks.append("Suboptimal blood type compatibility")
        recommendations.append("Enhanced immunosuppression protocol may be required")
    elif blood == IDENTICAL_SCORE:
        probability += 15

    critical = recipient.urgency == UrgencyLevel.CRITICAL
    organ = normalize_organ(recipient.organ_needed)
    if organ == "kidney":
        probability += 10
    elif organ == "heart" and recipient.age > 65:
        probability -= 10
        risks.append("Advanced age for heart transplant")
    elif organ == "liver" and critical:
        probability -= 5
        risks.append("Critical condition may affect recovery")
    elif organ == "lung":
        probability -= 5
        if age_gap > 10:
            probability -= 10
            risks.append("Age compatibility critical for lung transplants")

    if critical:
        probability -= 5
        risks.append("Critical condition increases surgical risk")
        recommendations.append("Expedited surgical planning and ICU preparation")

    if (
        organ in _GENDER_SENSITIVE_ORGANS
        and recipient.gender is not None
        and recipient.gender == donor.gender
    ):
        probability += 5

    probability = max(SUCCESS_FLOOR, min(SUCCESS_CEILING, probability))

    recommendations.extend(STANDARD_RECOMMENDATIONS)
    if probability < 70:
        recommendations.append("Consider patient counseling regarding increased risks")

    return SuccessPrediction(
        probability=probability,
        risk_factors=tuple(risks),
        recommendations=tuple(recommendations),
    )

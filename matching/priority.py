"""
Purpose: Recipient-side priority sub-scores.
What it does:
- wait_time_score: step function rewarding recipients who have waited longer.
- urgency_score: clinical urgency tier plus age and organ criticality adjustments.
"""

from __future__ import annotations

from datetime import datetime
from typing import List, Optional, Tuple

from donors.models import normalize_organ, utcnow
from recipients.models import UrgencyLevel

# (days strictly greater than, score), checked top-down
WAIT_TIERS: List[Tuple[int, int]] = [
    (365, 100),
    (180, 90),
    (90, 80),
    (30, 70),
    (14, 60),
    (7, 50),
]
WAIT_FLOOR_SCORE = 40

URGENCY_BASE_SCORES = {
    UrgencyLevel.LOW: 25,
    UrgencyLevel.MEDIUM: 50,
    UrgencyLevel.HIGH: 75,
    UrgencyLevel.CRITICAL: 100,
}

ORGAN_CRITICALITY = {
    "heart": 20,
    "liver": 15,
    "lung": 10,
    "kidney": 5,
}


def days_waited(registered_at: datetime, now: Optional[datetime] = None) -> int:
    now = now or utcnow()
    return max(0, (now - registered_at).days)


def wait_time_score(registered_at: datetime, now: Optional[datetime] = None) -> int:
    days = days_waited(registered_at, now)
    for threshold, score in WAIT_TIERS:
        if days > threshold:
            return score
    return WAIT_FLOOR_SCORE


def urgency_score(urgency: UrgencyLevel | str, age: int, organ: str) -> int:
    score = URGENCY_BASE_SCORES[UrgencyLevel.parse(urgency)]

    if age < 18:
        score += 15
    elif age > 70:
        score += 10

    score += ORGAN_CRITICALITY.get(normalize_organ(organ), 0)

    return min(100, score)

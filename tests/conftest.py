from datetime import datetime, timedelta, timezone

import pytest

from allocation.repository import InMemoryRegistry
from donors.models import Donor
from hospitals.models import Hospital
from matching.policy import ENHANCED_WEIGHTS
from matching.proximity import ProximityTier
from matching.scoring import RankedMatch, ScoreBreakdown
from recipients.models import Recipient

NOW = datetime(2026, 1, 15, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def now():
    return NOW


@pytest.fixture
def hospitals():
    # Mumbai is the home city for most recipients below
    return {
        "h_mumbai": Hospital("h_mumbai", "Mumbai Central", "Mumbai", "Maharashtra", "India"),
        "h_mumbai_west": Hospital("h_mumbai_west", "Mumbai West", "Mumbai", "Maharashtra", "India"),
        "h_pune": Hospital("h_pune", "Pune City Hospital", "Pune", "Maharashtra", "India"),
        "h_chennai": Hospital("h_chennai", "Chennai General", "Chennai", "Tamil Nadu", "India"),
        "h_kathmandu": Hospital("h_kathmandu", "Kathmandu Teaching", "Kathmandu", "Bagmati", "Nepal"),
    }


@pytest.fixture
def registry(hospitals):
    reg = InMemoryRegistry()
    for hospital in hospitals.values():
        reg.add_hospital(hospital)
    return reg


@pytest.fixture
def make_recipient():
    def _make(
        recipient_id="r1",
        organ="kidney",
        blood="O+",
        urgency="High",
        age=40,
        hospital_id="h_mumbai",
        gender="Male",
        days_waiting=100,
    ):
        return Recipient.new(
            recipient_id,
            organ,
            blood,
            urgency,
            age,
            hospital_id,
            full_name=f"Patient {recipient_id}",
            gender=gender,
            registered_at=NOW - timedelta(days=days_waiting),
        )

    return _make


@pytest.fixture
def make_donor():
    def _make(
        donor_id="d1",
        blood="O+",
        organs=("kidney",),
        age=42,
        hospital_id="h_pune",
        gender="Female",
    ):
        return Donor.new(
            donor_id,
            blood,
            organs,
            age,
            hospital_id,
            full_name=f"Donor {donor_id}",
            gender=gender,
            registered_at=NOW - timedelta(days=3),
        )

    return _make


@pytest.fixture
def make_match():
    """
    RankedMatch with a breakdown; the score defaults to the enhanced-weight composite.
    """
    def _make(
        donor_id,
        tier=ProximityTier.NATIONAL,
        score=None,
        blood=100,
        urgency=80,
        wait=80,
        medical=85,
        city="Chennai",
        region="Tamil Nadu",
    ):
        breakdown = ScoreBreakdown(
            blood_compatibility=blood,
            urgency=urgency,
            proximity=tier.score,
            wait_time=wait,
            medical_risk=medical,
            proximity_tier=tier,
        )
        return RankedMatch(
            donor_id=donor_id,
            donor_name=f"Donor {donor_id}",
            blood_type="O+",
            organs=("kidney",),
            hospital_id=f"h_{donor_id}",
            hospital_name=f"Hospital {donor_id}",
            city=city,
            region=region,
            breakdown=breakdown,
            match_score=breakdown.composite(ENHANCED_WEIGHTS) if score is None else score,
            rationale=(f"Blood: {blood}%",),
        )

    return _make

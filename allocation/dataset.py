"""
Purpose: Registry datasets for simulations and demos.
What it does:
- Generates mock hospitals / recipients / donors as pandas DataFrames (numpy for the draws).
- Writes and reads them as CSV (one file per table).
- Loads the frames into an InMemoryRegistry the matcher and state machine can run on.

Organs are stored in CSV as a ";"-joined list, timestamps as ISO-8601 UTC.
"""

from __future__ import annotations

import os
from datetime import datetime, timedelta
from typing import Dict, List, Optional

import numpy as np
import pandas as pd

from donors.models import BloodType, Donor, utcnow
from hospitals.models import Hospital
from recipients.models import Recipient, UrgencyLevel

from .repository import InMemoryRegistry

TABLES = ("hospitals", "recipients", "donors")

# (city, region, country)
PLACES = [
    ("Mumbai", "Maharashtra", "India"),
    ("Pune", "Maharashtra", "India"),
    ("Nagpur", "Maharashtra", "India"),
    ("Bengaluru", "Karnataka", "India"),
    ("Mysuru", "Karnataka", "India"),
    ("Chennai", "Tamil Nadu", "India"),
    ("Coimbatore", "Tamil Nadu", "India"),
    ("New Delhi", "Delhi", "India"),
    ("Kathmandu", "Bagmati", "Nepal"),
]

BLOOD_TYPES = [b.value for b in BloodType]
# population frequencies in BloodType order (O-, O+, A-, A+, B-, B+, AB-, AB+)
BLOOD_TYPE_P = [0.07, 0.37, 0.06, 0.28, 0.02, 0.09, 0.01, 0.10]

ORGANS = ["kidney", "liver", "heart", "lung", "pancreas"]
RECIPIENT_ORGAN_P = [0.55, 0.2, 0.1, 0.1, 0.05]

URGENCY_LEVELS = [u.value for u in UrgencyLevel]
URGENCY_P = [0.2, 0.4, 0.3, 0.1]

GENDERS = ["Male", "Female"]


def generate_registry_frames(
    num_hospitals: int = 12,
    num_recipients: int = 200,
    num_donors: int = 120,
    seed: Optional[int] = None,
    now: Optional[datetime] = None,
) -> Dict[str, pd.DataFrame]:
    """
    Mock registry spread over a handful of cities so every proximity tier shows up.
    """
    rng = np.random.default_rng(seed)
    now = now or utcnow()

    hospitals = []
    for index in range(num_hospitals):
        city, region, country = PLACES[index % len(PLACES)]
        hospitals.append({
            "hospital_id": f"h_{str(index + 1).zfill(3)}",
            "name": f"{city} General Hospital {index // len(PLACES) + 1}",
            "city": city,
            "region": region,
            "country": country,
        })
    hospital_ids = [h["hospital_id"] for h in hospitals]

    recipients = []
    for index in range(num_recipients):
        waited_days = int(rng.integers(0, 730))
        recipients.append({
            "recipient_id": f"r_{str(index + 1).zfill(5)}",
            "full_name": f"Patient {index + 1}",
            "organ_needed": rng.choice(ORGANS, p=RECIPIENT_ORGAN_P),
            "blood_type": rng.choice(BLOOD_TYPES, p=BLOOD_TYPE_P),
            "urgency": rng.choice(URGENCY_LEVELS, p=URGENCY_P),
            "age": int(rng.integers(2, 85)),
            "gender": rng.choice(GENDERS),
            "hospital_id": rng.choice(hospital_ids),
            "status": "Waiting",
            "registered_at": (now - timedelta(days=waited_days)).isoformat(),
        })

    donors = []
    for index in range(num_donors):
        organ_count = int(rng.integers(1, 4))
        organs = rng.choice(ORGANS, size=organ_count, replace=False)
        donors.append({
            "donor_id": f"d_{str(index + 1).zfill(5)}",
            "full_name": f"Donor {index + 1}",
            "blood_type": rng.choice(BLOOD_TYPES, p=BLOOD_TYPE_P),
            "organs": ";".join(sorted(str(o) for o in organs)),
            "age": int(rng.integers(18, 75)),
            "gender": rng.choice(GENDERS),
            "hospital_id": rng.choice(hospital_ids),
            "status": "Available",
            "is_active": bool(rng.random() > 0.05),
            "registered_at": (now - timedelta(days=int(rng.integers(0, 60)))).isoformat(),
        })

    return {
        "hospitals": pd.DataFrame(hospitals),
        "recipients": pd.DataFrame(recipients),
        "donors": pd.DataFrame(donors),
    }


def write_frames(frames: Dict[str, pd.DataFrame], directory: str) -> Dict[str, str]:
    os.makedirs(directory, exist_ok=True)
    paths = {}
    for table in TABLES:
        path = os.path.join(directory, f"{table}.csv")
        frames[table].to_csv(path, index=False)
        paths[table] = path
    return paths


def read_frames(directory: str) -> Dict[str, pd.DataFrame]:
    # everything as text; blanks stay "" instead of NaN
    return {
        table: pd.read_csv(os.path.join(directory, f"{table}.csv"), dtype=str, keep_default_na=False)
        for table in TABLES
    }


def _parse_timestamp(value) -> Optional[datetime]:
    if value is None or value == "":
        return None
    ts = pd.Timestamp(value)
    if ts.tzinfo is None:
        ts = ts.tz_localize("UTC")
    return ts.to_pydatetime()


def _parse_bool(value) -> bool:
    if isinstance(value, (bool, np.bool_)):
        return bool(value)
    return str(value).strip().lower() in ("true", "1", "yes")


def hospitals_from_frame(df: pd.DataFrame) -> List[Hospital]:
    return [
        Hospital(
            id=str(row.hospital_id),
            name=str(row.name),
            city=str(row.city) or None,
            region=str(row.region) or None,
            country=str(row.country) or None,
        )
        for row in df.itertuples(index=False)
    ]


def recipients_from_frame(df: pd.DataFrame) -> List[Recipient]:
    recipients = []
    for row in df.itertuples(index=False):
        recipients.append(
            Recipient.new(
                str(row.recipient_id),
                str(row.organ_needed),
                str(row.blood_type),
                str(row.urgency),
                int(row.age),
                str(row.hospital_id),
                full_name=str(row.full_name),
                gender=str(row.gender) or None,
                status=str(row.status) or "Waiting",
                registered_at=_parse_timestamp(row.registered_at),
            )
        )
    return recipients


def donors_from_frame(df: pd.DataFrame) -> List[Donor]:
    donors = []
    for row in df.itertuples(index=False):
        donor = Donor.new(
            str(row.donor_id),
            str(row.blood_type),
            str(row.organs).split(";"),
            int(row.age),
            str(row.hospital_id),
            full_name=str(row.full_name),
            gender=str(row.gender) or None,
            status=str(row.status) or "Available",
            registered_at=_parse_timestamp(row.registered_at),
        )
        donor.is_active = _parse_bool(row.is_active)
        donors.append(donor)
    return donors


def load_registry(frames: Dict[str, pd.DataFrame], registry: Optional[InMemoryRegistry] = None) -> InMemoryRegistry:
    registry = registry or InMemoryRegistry()

    for hospital in hospitals_from_frame(frames["hospitals"]):
        registry.add_hospital(hospital)
    for recipient in recipients_from_frame(frames["recipients"]):
        registry.save_recipient(recipient)
    for donor in donors_from_frame(frames["donors"]):
        registry.save_donor(donor)

    return registry

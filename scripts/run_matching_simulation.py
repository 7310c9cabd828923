import os

import numpy as np
import pandas as pd

from allocation.dataset import generate_registry_frames, load_registry, read_frames
from allocation.errors import AllocationError
from allocation.models import Decision, RequestStatus
from allocation.state_machine import AllocationStateMachine
from governance.models import GovernancePolicy, PolicyStatus
from matching.matcher import Matcher
from matching.policy import matching_policy_from_env
from recipients.models import RecipientStatus


def demo_policies():
    return [
        GovernancePolicy(
            id="pol_kidney_transport",
            title="Kidney Transport Priority",
            content="Kidneys should go to geographically closer centres to cut cold ischemia time.",
            status=PolicyStatus.ACTIVE,
        ),
        GovernancePolicy(
            id="pol_pediatric",
            title="Pediatric Priority",
            content="Children on the waiting list get a small ranking bonus.",
            status=PolicyStatus.VOTING,
            votes_for=7,
            votes_against=2,
        ),
    ]


def load_or_generate(data_dir):
    if all(os.path.exists(os.path.join(data_dir, f"{t}.csv")) for t in ("hospitals", "recipients", "donors")):
        return read_frames(data_dir)
    print(f"No registry CSVs in '{data_dir}', generating a fresh one.")
    return generate_registry_frames(seed=7)


def run_simulation(data_dir="sampledata", acceptance_probability=0.7, seed=11):
    print("=== STARTING MATCHING / ALLOCATION SIMULATION ===")
    rng = np.random.default_rng(seed)
    base_dir = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))

    # 1. Load Data
    registry = load_registry(load_or_generate(os.path.join(base_dir, data_dir)))
    for policy in demo_policies():
        registry.add_policy(policy)
    print(f"Loaded {len(registry.hospitals)} hospitals, {len(registry.recipients)} recipients, {len(registry.donors)} donors.\n")

    # 2. Configure System
    matcher = Matcher(registry, policies=registry, policy=matching_policy_from_env())
    machine = AllocationStateMachine(registry, notifications=registry)

    # Most urgent first, then longest waiting
    waiting = sorted(
        (r for r in registry.recipients.values() if r.status == RecipientStatus.WAITING),
        key=lambda r: (-r.urgency.rank, r.registered_at),
    )

    rows = []
    for recipient in waiting:
        result = matcher.find_enhanced_matches(recipient.id)
        if not result.matches:
            rows.append({"recipient_id": recipient.id, "organ": recipient.organ_needed, "outcome": "NO_MATCH"})
            continue

        best = result.matches[0]
        row = {
            "recipient_id": recipient.id,
            "organ": recipient.organ_needed,
            "urgency": recipient.urgency.value,
            "donor_id": best.donor_id,
            "donor_hospital": best.hospital_id,
            "match_score": best.match_score,
            "proximity": best.breakdown.proximity_tier.value,
            "policies": "; ".join(best.applied_policies),
        }

        # 3. Request -> response -> completion
        try:
            created = machine.create_request(recipient.hospital_id, best.hospital_id, recipient.id, best.donor_id)
            status = created.status
            if status == RequestStatus.PENDING:
                decision = Decision.ACCEPT if rng.random() < acceptance_probability else Decision.REJECT
                status = machine.respond(created.request_id, best.hospital_id, decision, notes="simulated")
            if status == RequestStatus.ACCEPTED:
                machine.complete_transplant(recipient.id, best.donor_id)
                status = RequestStatus.COMPLETED
            row["outcome"] = status.value.upper()
        except AllocationError as exc:
            row["outcome"] = f"ERROR: {type(exc).__name__}"

        rows.append(row)

    # 4. Report
    df = pd.DataFrame(rows)
    output_path = os.path.join(base_dir, "allocation_results.csv")
    df.to_csv(output_path, index=False)

    print("=== SIMULATION COMPLETE ===")
    for outcome, count in df["outcome"].value_counts().items():
        print(f"  {outcome}: {count}")
    if "match_score" in df:
        print(f"Mean top match score: {df['match_score'].mean():.2f}")
    print(f"Results written to '{output_path}'.")


if __name__ == "__main__":
    run_simulation()

import threading
from datetime import timedelta
from itertools import count

import pytest

from allocation.errors import (
    AllocationError,
    AuthorizationError,
    ConflictError,
    DataIntegrityError,
    DownstreamError,
    NotFoundError,
    ValidationError,
)
from allocation.models import DEFAULT_COMPLETION_NOTE, INTERNAL_MATCH_NOTE, RequestStatus
from allocation.notifications import NotificationType
from allocation.repository import InMemoryRegistry
from allocation.state_machine import AllocationStateMachine
from donors.models import DonorStatus
from matching.candidate_filter import is_eligible_donor
from recipients.models import RecipientStatus


@pytest.fixture
def store(registry, make_recipient, make_donor):
    registry.save_recipient(make_recipient("r1", hospital_id="h_mumbai"))
    registry.save_donor(make_donor("d1", hospital_id="h_pune"))
    registry.save_donor(make_donor("d_home", hospital_id="h_mumbai"))
    return registry


@pytest.fixture
def machine(store, now):
    return AllocationStateMachine(store, store, clock=lambda: now)


@pytest.fixture
def pending(machine):
    return machine.create_request("h_mumbai", "h_pune", "r1", "d1", notes="Patient is stable").request_id


class FailingSink:
    def emit(self, intent):
        raise RuntimeError("notification service unavailable")

    def mark_read(self, hospital_id, related_id):
        return 0


def test_external_request_flow(store, machine, now):
    created = machine.create_request("h_mumbai", "h_pune", "r1", "d1", notes="Patient is stable")

    assert created.status == RequestStatus.PENDING
    assert not created.auto_accepted
    recipient = store.get_recipient("r1")
    assert recipient.status == RecipientStatus.IN_PROGRESS
    assert recipient.matched_donor_id == "d1"
    assert store.get_donor("d1").status == DonorStatus.AVAILABLE

    [incoming] = store.notifications_for("h_pune")
    assert incoming.intent.type == NotificationType.ORGAN_REQUEST
    assert incoming.intent.title == "New Organ Request"
    assert incoming.intent.message == "Mumbai Central has requested a kidney for a high priority patient."

    assert machine.respond(created.request_id, "h_pune", "accept") == RequestStatus.ACCEPTED

    request = store.get_request(created.request_id)
    assert request.status == RequestStatus.ACCEPTED
    assert request.updated_at == now
    assert store.get_recipient("r1").status == RecipientStatus.MATCHED
    donor = store.get_donor("d1")
    assert donor.status == DonorStatus.MATCHED
    assert donor.matched_recipient_id == "r1"
    assert donor.matched_hospital_id == "h_mumbai"

    [answer] = store.notifications_for("h_mumbai")
    assert answer.intent.title == "Request Accepted!"
    # responding clears the responder's own request notification
    assert store.notifications_for("h_pune", unread_only=True) == []

    completed = machine.complete_transplant("r1", "d1", hospital_id="h_mumbai")

    assert completed.status == RequestStatus.COMPLETED
    assert completed.response_notes == DEFAULT_COMPLETION_NOTE
    recipient = store.get_recipient("r1")
    assert recipient.status == RecipientStatus.COMPLETED
    assert recipient.completed_at == now
    donor = store.get_donor("d1")
    assert donor.status == DonorStatus.DONATED
    assert donor.donated_at == now


def test_internal_match_is_accepted_immediately(store, machine):
    created = machine.create_request("h_mumbai", "h_mumbai", "r1", "d_home")

    assert created.status == RequestStatus.ACCEPTED
    assert created.auto_accepted
    request = store.get_request(created.request_id)
    assert request.response_notes == INTERNAL_MATCH_NOTE
    assert store.get_recipient("r1").status == RecipientStatus.MATCHED
    assert store.get_donor("d_home").status == DonorStatus.MATCHED

    [note] = store.notifications_for("h_mumbai")
    assert note.intent.type == NotificationType.INTERNAL_MATCH
    assert note.intent.title == "Internal Match Confirmed"
    assert note.intent.metadata["auto_accepted"] is True

    completed = machine.complete_transplant("r1", "d_home", notes="Done in theatre 2")
    assert completed.status == RequestStatus.COMPLETED
    assert completed.response_notes == "Done in theatre 2"


def test_reject_returns_recipient_to_waiting(store, machine, pending):
    assert machine.respond(pending, "h_pune", "rejected", notes="No ICU capacity") == RequestStatus.REJECTED

    request = store.get_request(pending)
    assert request.status == RequestStatus.REJECTED
    assert request.response_notes == "No ICU capacity"
    recipient = store.get_recipient("r1")
    assert recipient.status == RecipientStatus.WAITING
    assert recipient.matched_donor_id is None
    assert recipient.matched_hospital_id is None
    assert store.get_donor("d1").status == DonorStatus.AVAILABLE

    [answer] = store.notifications_for("h_mumbai")
    assert answer.intent.title == "Request Declined"
    assert answer.intent.message.endswith("Reason: No ICU capacity")

    # the recipient can be offered to someone else again
    again = machine.create_request("h_mumbai", "h_pune", "r1", "d1")
    assert again.status == RequestStatus.PENDING


def test_only_the_target_hospital_may_respond(store, machine, pending):
    with pytest.raises(AuthorizationError):
        machine.respond(pending, "h_chennai", "accepted")
    with pytest.raises(AuthorizationError):
        machine.respond(pending, "h_mumbai", "accepted")

    assert store.get_request(pending).status == RequestStatus.PENDING


def test_unknown_request_is_not_found(machine):
    with pytest.raises(NotFoundError):
        machine.respond("missing", "h_pune", "accepted")


def test_second_response_is_a_conflict(store, machine, pending):
    machine.respond(pending, "h_pune", "accepted")

    with pytest.raises(ConflictError):
        machine.respond(pending, "h_pune", "rejected")
    assert store.get_request(pending).status == RequestStatus.ACCEPTED
    assert store.get_recipient("r1").status == RecipientStatus.MATCHED


def test_concurrent_responses_have_one_winner(store, machine, pending):
    barrier = threading.Barrier(2)
    outcomes = []

    def answer(decision):
        barrier.wait()
        try:
            outcomes.append(machine.respond(pending, "h_pune", decision))
        except ConflictError:
            outcomes.append("conflict")

    threads = [threading.Thread(target=answer, args=(d,)) for d in ("accepted", "rejected")]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert outcomes.count("conflict") == 1
    [winner] = [o for o in outcomes if o != "conflict"]
    assert store.get_request(pending).status == winner

    expected = RecipientStatus.MATCHED if winner == RequestStatus.ACCEPTED else RecipientStatus.WAITING
    assert store.get_recipient("r1").status == expected
    assert len(store.notifications_for("h_mumbai")) == 1


def test_decision_must_be_known(machine, pending):
    with pytest.raises(ValidationError):
        machine.respond(pending, "h_pune", "maybe")


def test_accept_needs_an_available_donor(store, machine, pending):
    donor = store.get_donor("d1")
    donor.status = DonorStatus.MATCHED
    store.save_donor(donor)

    with pytest.raises(ConflictError):
        machine.respond(pending, "h_pune", "accepted")
    assert store.get_request(pending).status == RequestStatus.PENDING


def test_vanished_donor_is_a_data_integrity_error(store, machine, pending):
    store.delete_donor("d1")

    with pytest.raises(DataIntegrityError):
        machine.respond(pending, "h_pune", "accepted")
    assert store.get_request(pending).status == RequestStatus.PENDING


def test_complete_requires_a_mutual_match(store, machine, pending):
    with pytest.raises(ConflictError):
        machine.complete_transplant("r1", "d1")

    assert store.get_recipient("r1").status == RecipientStatus.IN_PROGRESS
    assert store.get_donor("d1").status == DonorStatus.AVAILABLE
    assert store.get_request(pending).status == RequestStatus.PENDING


def test_complete_checks_the_owning_hospital(store, machine, pending):
    machine.respond(pending, "h_pune", "accepted")

    with pytest.raises(NotFoundError):
        machine.complete_transplant("r1", "d1", hospital_id="h_chennai")
    assert store.get_recipient("r1").status == RecipientStatus.MATCHED


def test_complete_with_missing_records(machine):
    with pytest.raises(DataIntegrityError):
        machine.complete_transplant("r1", "d404")


def test_failed_notification_rolls_everything_back(store, now):
    machine = AllocationStateMachine(store, FailingSink(), clock=lambda: now)

    with pytest.raises(DownstreamError):
        machine.create_request("h_mumbai", "h_pune", "r1", "d1")

    assert store.requests == {}
    recipient = store.get_recipient("r1")
    assert recipient.status == RecipientStatus.WAITING
    assert recipient.matched_donor_id is None


@pytest.mark.parametrize(
    "origin, target, recipient_id, donor_id, error",
    [
        ("", "h_pune", "r1", "d1", ValidationError),
        ("h_mumbai", "h_pune", "r1", "  ", ValidationError),
        ("h_chennai", "h_pune", "r1", "d1", NotFoundError),   # recipient belongs to another hospital
        ("h_mumbai", "h_pune", "r404", "d1", NotFoundError),
        ("h_mumbai", "h_nowhere", "r1", "d1", NotFoundError),
        ("h_mumbai", "h_pune", "r1", "d404", NotFoundError),
        ("h_mumbai", "h_chennai", "r1", "d1", ValidationError),  # donor is in Pune
    ],
)
def test_create_rejects_bad_references(store, machine, origin, target, recipient_id, donor_id, error):
    with pytest.raises(error):
        machine.create_request(origin, target, recipient_id, donor_id)

    assert store.requests == {}
    assert store.notifications == []


def test_create_rejects_unsuitable_donors(store, machine, make_donor):
    store.save_donor(make_donor("d_liver", organs=("liver",)))
    store.save_donor(make_donor("d_ab", blood="AB+"))

    with pytest.raises(ValidationError):
        machine.create_request("h_mumbai", "h_pune", "r1", "d_liver")
    with pytest.raises(ValidationError):
        machine.create_request("h_mumbai", "h_pune", "r1", "d_ab")


def test_create_needs_a_waiting_recipient(machine, pending):
    with pytest.raises(ConflictError):
        machine.create_request("h_mumbai", "h_pune", "r1", "d1")


def test_mark_received_viewed_counts_answered_requests(store, machine, make_recipient):
    store.save_recipient(make_recipient("r2", hospital_id="h_chennai"))
    first = machine.create_request("h_mumbai", "h_pune", "r1", "d1").request_id
    machine.create_request("h_chennai", "h_pune", "r2", "d1")
    machine.respond(first, "h_pune", "accepted")

    # the second request is still pending and stays unviewed
    assert machine.mark_received_viewed("h_pune") == 1
    assert machine.mark_received_viewed("h_pune") == 0


class StaleDonorReads(InMemoryRegistry):
    """Reports every donor as Available, like a read taken before another transaction committed."""

    def get_donor(self, donor_id):
        donor = super().get_donor(donor_id)
        if donor is not None:
            donor.status = DonorStatus.AVAILABLE
        return donor


def test_donor_is_never_matched_twice_on_stale_reads(hospitals, make_recipient, make_donor, now):
    store = StaleDonorReads()
    for hospital in hospitals.values():
        store.add_hospital(hospital)
    store.save_recipient(make_recipient("r1", hospital_id="h_mumbai"))
    store.save_recipient(make_recipient("r2", hospital_id="h_chennai"))
    store.save_donor(make_donor("d1", hospital_id="h_pune"))
    machine = AllocationStateMachine(store, store, clock=lambda: now)

    first = machine.create_request("h_mumbai", "h_pune", "r1", "d1").request_id
    second = machine.create_request("h_chennai", "h_pune", "r2", "d1").request_id
    machine.respond(first, "h_pune", "accepted")

    with pytest.raises(ConflictError):
        machine.respond(second, "h_pune", "accepted")

    assert store.get_request(second).status == RequestStatus.PENDING
    assert store.get_recipient("r2").status == RecipientStatus.IN_PROGRESS
    assert store.donors["d1"].matched_recipient_id == "r1"
    assert store.get_recipient("r1").status == RecipientStatus.MATCHED


def test_match_donor_if_available_only_takes_available_donors(store, now):
    assert store.match_donor_if_available("d1", "r1", "h_mumbai", at=now)

    donor = store.get_donor("d1")
    assert donor.status == DonorStatus.MATCHED
    assert donor.matched_recipient_id == "r1"
    assert donor.status_updated_at == now

    assert not store.match_donor_if_available("d1", "r2", "h_chennai", at=now)
    assert store.get_donor("d1").matched_recipient_id == "r1"
    assert not store.match_donor_if_available("d404", "r1", "h_mumbai")


def test_request_lists_per_hospital(store, make_recipient, make_donor, now):
    ticks = count()
    machine = AllocationStateMachine(store, store, clock=lambda: now + timedelta(minutes=next(ticks)))
    store.save_recipient(make_recipient("r2", hospital_id="h_chennai"))
    store.save_donor(make_donor("d2", hospital_id="h_pune"))

    first = machine.create_request("h_mumbai", "h_pune", "r1", "d1").request_id
    second = machine.create_request("h_chennai", "h_pune", "r2", "d2").request_id

    assert [r.id for r in machine.list_incoming("h_pune")] == [second, first]
    assert [r.id for r in machine.list_outgoing("h_mumbai")] == [first]
    assert machine.list_received("h_pune") == []

    machine.respond(second, "h_pune", "rejected")
    machine.respond(first, "h_pune", "accepted")

    assert machine.list_incoming("h_pune") == []
    received = machine.list_received("h_pune")
    assert [(r.id, r.status) for r in received] == [
        (first, RequestStatus.ACCEPTED),
        (second, RequestStatus.REJECTED),
    ]
    assert machine.list_received("h_mumbai") == []
    assert [r.id for r in machine.list_outgoing("h_chennai")] == [second]


def test_request_lists_need_a_hospital(machine):
    with pytest.raises(ValidationError):
        machine.list_outgoing(" ")


@pytest.mark.parametrize(
    "donor_kwargs, change",
    [
        ({}, {"is_active": False}),
        ({}, {"status": DonorStatus.MATCHED}),
        ({"organs": ("liver",)}, {}),
        ({"blood": "AB+"}, {}),
    ],
)
def test_create_refuses_every_donor_the_candidate_gates_refuse(
    store, machine, make_donor, donor_kwargs, change
):
    donor = make_donor("d_x", **donor_kwargs)
    for name, value in change.items():
        setattr(donor, name, value)
    store.save_donor(donor)

    assert not is_eligible_donor(store.get_recipient("r1"), donor)
    with pytest.raises(AllocationError):
        machine.create_request("h_mumbai", "h_pune", "r1", "d_x")
    assert store.requests == {}

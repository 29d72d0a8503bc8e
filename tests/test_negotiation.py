"""
Tests for the proposal / vote / lock ledger.
Covers:
- Membership gating for propose and vote
- Proposal validation and locked categories
- Vote idempotence and the unknown-proposal no-op
- Host-only locking, re-lock rules and the PAYMENT_OPEN transition
- Payable amount and payment eligibility
"""
import pytest

from conftest import FLAGGED, TRUSTED, UNVERIFIED, make_user, notifications, texts
from errors import InvalidState, NotFound, Unauthorized, ValidationError
from models import LifecycleStatus, NotificationType

BUS = {"title": "Volvo AC Sleeper", "price_per_person": 1450}
VILLA = {"title": "Calangute Beach Villa", "price_per_person": 8500}
FLIGHT = {"title": "6E 2041 BLR-GOI", "price_per_person": 4200}


@pytest.fixture
def trip(participation):
    host = make_user("Vishnu Menon", **TRUSTED)
    return participation.create_trip("Goa Monsoon Escapade", host.id)


@pytest.fixture
def member(participation, trip):
    u = make_user("Asha Rao", **UNVERIFIED)
    participation.request_to_join(trip.id, u.id)
    participation.approve(trip.id, trip.owner_id, u.id)
    return u


def lock_both(ledger, trip, member):
    bus = ledger.propose(trip.id, "transport", member.id, BUS)
    villa = ledger.propose(trip.id, "lodging", trip.owner_id, VILLA)
    ledger.lock(trip.id, "transport", bus.id, trip.owner_id)
    ledger.lock(trip.id, "lodging", villa.id, trip.owner_id)
    return bus, villa


# ────────────────────────── propose ─────────────────────────────────────────

def test_member_proposes(ledger, events, trip, member):
    p = ledger.propose(trip.id, "transport", member.id, BUS)
    assert p.voters() == [member.id]
    assert p.provider == "redBus"
    assert p.price_per_person == 1450
    assert "Asha Rao proposed TRANSPORT: Volvo AC Sleeper, ₹1450" in texts(events, trip.id)
    notes = notifications(events, trip.id, NotificationType.MESSAGE)
    assert [n.user_id for n in notes] == [trip.owner_id]


def test_provider_defaults_per_category(ledger, trip):
    assert ledger.propose(trip.id, "lodging", trip.owner_id, VILLA).provider == "MakeMyTrip"
    assert ledger.propose(trip.id, "flight", trip.owner_id, FLIGHT).provider == "Airline"
    custom = ledger.propose(trip.id, "FLIGHT", trip.owner_id, dict(FLIGHT, provider="IndiGo"))
    assert custom.provider == "IndiGo"


def test_requested_member_cannot_propose(participation, ledger, trip):
    u = make_user(**FLAGGED)
    participation.request_to_join(trip.id, u.id)
    with pytest.raises(Unauthorized):
        ledger.propose(trip.id, "transport", u.id, BUS)
    outsider = make_user("Outsider")
    with pytest.raises(Unauthorized):
        ledger.propose(trip.id, "transport", outsider.id, BUS)
    assert ledger.proposals(trip.id, "transport") == []


def test_propose_on_unknown_trip(ledger, member):
    with pytest.raises(NotFound):
        ledger.propose(999, "transport", member.id, BUS)


@pytest.mark.parametrize("option", [
    {"price_per_person": 100},
    {"title": "  ", "price_per_person": 100},
    {"title": "No price"},
    {"title": "Bad price", "price_per_person": "cheap"},
    {"title": "Negative", "price_per_person": -1},
])
def test_malformed_option_rejected(ledger, trip, option):
    with pytest.raises(ValidationError):
        ledger.propose(trip.id, "transport", trip.owner_id, option)


def test_unknown_category_rejected(ledger, trip):
    with pytest.raises(ValidationError):
        ledger.propose(trip.id, "boat", trip.owner_id, BUS)


def test_cannot_propose_into_locked_category(ledger, trip, member):
    p = ledger.propose(trip.id, "transport", member.id, BUS)
    ledger.lock(trip.id, "transport", p.id, trip.owner_id)
    with pytest.raises(InvalidState):
        ledger.propose(trip.id, "transport", member.id, {"title": "Train", "price_per_person": 900})
    # other categories stay open
    ledger.propose(trip.id, "lodging", member.id, VILLA)


# ────────────────────────── vote ────────────────────────────────────────────

def test_yes_vote_is_idempotent(ledger, events, trip, member):
    p = ledger.propose(trip.id, "transport", trip.owner_id, BUS)
    ledger.vote(trip.id, "transport", p.id, member.id, "YES")
    again = ledger.vote(trip.id, "transport", p.id, member.id, "yes")
    assert again.voters() == [trip.owner_id, member.id]
    assert texts(events, trip.id).count("Asha Rao agreed to Volvo AC Sleeper") == 1


def test_no_vote_removes_voter(ledger, events, trip, member):
    p = ledger.propose(trip.id, "transport", member.id, BUS)
    p = ledger.vote(trip.id, "transport", p.id, member.id, "NO")
    assert p.voters() == []
    # removing again is harmless
    p = ledger.vote(trip.id, "transport", p.id, member.id, "NO")
    assert p.voters() == []
    assert not any("agreed" in t for t in texts(events, trip.id))


def test_string_ids_count_as_one_voter(ledger, trip, member):
    p = ledger.propose(trip.id, "transport", str(member.id), BUS)
    assert p.voters() == [member.id]
    p = ledger.vote(trip.id, "transport", p.id, str(trip.owner_id), "YES")
    p = ledger.vote(trip.id, "transport", p.id, trip.owner_id, "YES")
    assert p.voters() == [member.id, trip.owner_id]
    p = ledger.vote(trip.id, "transport", p.id, str(member.id), "NO")
    assert p.voters() == [trip.owner_id]


@pytest.mark.parametrize("bad_id", ["abc", None, True, "1.5"])
def test_malformed_user_id_rejected(ledger, trip, bad_id):
    with pytest.raises(ValidationError):
        ledger.propose(trip.id, "transport", bad_id, BUS)


def test_vote_on_unknown_proposal_is_noop(ledger, trip, member):
    assert ledger.vote(trip.id, "transport", 12345, member.id, "YES") is None
    p = ledger.propose(trip.id, "transport", member.id, BUS)
    # right id, wrong category
    assert ledger.vote(trip.id, "lodging", p.id, member.id, "YES") is None


def test_vote_requires_membership(participation, ledger, trip):
    p = ledger.propose(trip.id, "transport", trip.owner_id, BUS)
    u = make_user(**UNVERIFIED)
    participation.request_to_join(trip.id, u.id)
    with pytest.raises(Unauthorized):
        ledger.vote(trip.id, "transport", p.id, u.id, "YES")


def test_vote_decision_validated(ledger, trip):
    p = ledger.propose(trip.id, "transport", trip.owner_id, BUS)
    with pytest.raises(ValidationError):
        ledger.vote(trip.id, "transport", p.id, trip.owner_id, "MAYBE")


# ────────────────────────── lock ────────────────────────────────────────────

def test_only_host_locks(ledger, trip, member):
    p = ledger.propose(trip.id, "transport", member.id, BUS)
    with pytest.raises(Unauthorized):
        ledger.lock(trip.id, "transport", p.id, member.id)
    assert ledger.locked_proposal_id(trip.id, "transport") is None


def test_lock_unknown_proposal(ledger, trip):
    with pytest.raises(NotFound):
        ledger.lock(trip.id, "transport", 777, trip.owner_id)
    p = ledger.propose(trip.id, "transport", trip.owner_id, BUS)
    with pytest.raises(NotFound):
        ledger.lock(trip.id, "lodging", p.id, trip.owner_id)


def test_lock_emits_message_and_notifies_members(ledger, events, trip, member):
    p = ledger.propose(trip.id, "transport", member.id, BUS)
    ledger.lock(trip.id, "transport", p.id, trip.owner_id)
    assert ledger.locked_proposal_id(trip.id, "transport") == p.id
    assert "Host locked TRANSPORT: Volvo AC Sleeper" in texts(events, trip.id)
    notes = notifications(events, trip.id, NotificationType.PROPOSAL_LOCKED)
    assert [n.user_id for n in notes] == [member.id]


def test_double_lock_same_proposal(ledger, trip):
    p = ledger.propose(trip.id, "transport", trip.owner_id, BUS)
    ledger.lock(trip.id, "transport", p.id, trip.owner_id)
    with pytest.raises(InvalidState):
        ledger.lock(trip.id, "transport", p.id, trip.owner_id)


def test_relock_allowed_while_planning(ledger, trip):
    first = ledger.propose(trip.id, "transport", trip.owner_id, BUS)
    second = ledger.propose(trip.id, "transport", trip.owner_id, {"title": "Konkan Express", "price_per_person": 900})
    ledger.lock(trip.id, "transport", first.id, trip.owner_id)
    ledger.lock(trip.id, "transport", second.id, trip.owner_id)
    assert ledger.locked_proposal_id(trip.id, "transport") == second.id


def test_relock_rejected_once_payments_open(ledger, trip, member):
    villa = ledger.propose(trip.id, "lodging", trip.owner_id, VILLA)
    hostel = ledger.propose(trip.id, "lodging", trip.owner_id, {"title": "Zostel Anjuna", "price_per_person": 1200})
    bus = ledger.propose(trip.id, "transport", trip.owner_id, BUS)
    ledger.lock(trip.id, "lodging", villa.id, trip.owner_id)
    ledger.lock(trip.id, "transport", bus.id, trip.owner_id)
    with pytest.raises(InvalidState):
        ledger.lock(trip.id, "lodging", hostel.id, trip.owner_id)
    assert ledger.payable_amount(trip.id) == 9950


# ────────────────────────── lifecycle & payment ─────────────────────────────

def test_booking_complete_opens_payment_once(ledger, events, trip, member):
    assert ledger.lifecycle_status(trip.id) == LifecycleStatus.PLANNING
    assert ledger.payable_amount(trip.id) == 0
    lock_both(ledger, trip, member)
    assert ledger.lifecycle_status(trip.id) == LifecycleStatus.PAYMENT_OPEN
    assert ledger.payable_amount(trip.id) == 9950

    flight = ledger.propose(trip.id, "flight", trip.owner_id, FLIGHT)
    with pytest.raises(InvalidState):
        ledger.lock(trip.id, "flight", flight.id, trip.owner_id)

    assert texts(events, trip.id).count("Booking Phase Complete. Payments Are Now Open.") == 1
    due = notifications(events, trip.id, NotificationType.PAYMENT_DUE)
    # the host joined through the settled path, only the approved member owes
    assert [n.user_id for n in due] == [member.id]


def test_lodging_alone_keeps_planning(ledger, trip):
    villa = ledger.propose(trip.id, "lodging", trip.owner_id, VILLA)
    ledger.lock(trip.id, "lodging", villa.id, trip.owner_id)
    assert ledger.lifecycle_status(trip.id) == LifecycleStatus.PLANNING


def test_flight_stands_in_for_transport(ledger, trip):
    flight = ledger.propose(trip.id, "flight", trip.owner_id, FLIGHT)
    villa = ledger.propose(trip.id, "lodging", trip.owner_id, VILLA)
    ledger.lock(trip.id, "flight", flight.id, trip.owner_id)
    ledger.lock(trip.id, "lodging", villa.id, trip.owner_id)
    assert ledger.lifecycle_status(trip.id) == LifecycleStatus.PAYMENT_OPEN
    assert ledger.payable_amount(trip.id) == 12700


def test_transport_cannot_replace_flight_after_payments_open(participation, ledger, trip, member):
    # a second unpaid member keeps the trip in PAYMENT_OPEN
    late = make_user("Kiran Shah", **UNVERIFIED)
    participation.request_to_join(trip.id, late.id)
    participation.approve(trip.id, trip.owner_id, late.id)
    flight = ledger.propose(trip.id, "flight", trip.owner_id, dict(FLIGHT, price_per_person=5000))
    villa = ledger.propose(trip.id, "lodging", trip.owner_id, VILLA)
    ledger.lock(trip.id, "flight", flight.id, trip.owner_id)
    ledger.lock(trip.id, "lodging", villa.id, trip.owner_id)
    assert ledger.payable_amount(trip.id) == 13500
    participation.mark_paid(trip.id, member.id)
    assert ledger.lifecycle_status(trip.id) == LifecycleStatus.PAYMENT_OPEN

    bus = ledger.propose(trip.id, "transport", trip.owner_id, BUS)
    with pytest.raises(InvalidState):
        ledger.lock(trip.id, "transport", bus.id, trip.owner_id)
    assert ledger.locked_proposal_id(trip.id, "transport") is None
    assert ledger.payable_amount(trip.id) == 13500
    assert participation.get_membership(trip.id, member.id).amount_paid == 13500


@pytest.mark.parametrize("locked,paid,expected", [
    (False, False, False),
    (False, True, False),
    (True, False, True),
    (True, True, False),
])
def test_payment_eligibility(participation, ledger, trip, member, locked, paid, expected):
    if locked:
        lock_both(ledger, trip, member)
    if paid:
        participation.mark_paid(trip.id, member.id, 9950)
    assert ledger.payment_eligible(trip.id, member.id) is expected


def test_unapproved_member_never_eligible(participation, ledger, trip, member):
    pending = make_user(**UNVERIFIED)
    participation.request_to_join(trip.id, pending.id)
    lock_both(ledger, trip, member)
    assert ledger.payment_eligible(trip.id, pending.id) is False
    assert ledger.payment_eligible(trip.id, make_user("Stranger").id) is False


def test_payment_defaults_to_payable_amount_and_confirms(participation, ledger, events, trip, member):
    lock_both(ledger, trip, member)
    m = participation.mark_paid(trip.id, member.id)
    assert m.amount_paid == 9950
    assert "💳 Asha paid ₹9950." in texts(events, trip.id)
    assert ledger.lifecycle_status(trip.id) == LifecycleStatus.CONFIRMED
    assert ledger.payment_eligible(trip.id, member.id) is False

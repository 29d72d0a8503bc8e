"""Proposal, vote and lock ledger for a trip's travel and lodging choices.

Each (trip, category) is serialized through its own lock so concurrent
votes never lose an update and concurrent locks produce one winner. Locking
also takes the trip-wide negotiation lock because it can move the trip into
PAYMENT_OPEN, which depends on more than one category.
"""
from datetime import datetime
from typing import List, Optional
from sqlmodel import select

from db import get_session, category_lock, trip_negotiation_lock, lifecycle_lock
from errors import InvalidState, NotFound, Unauthorized, ValidationError
from events import bus
from logger import logger
from models import (
    APPROVED_STATES,
    Category,
    LifecycleStatus,
    Membership,
    NegotiationCategory,
    NotificationType,
    Proposal,
    TRAVEL_CATEGORIES,
    Trip,
    User,
    VoteDecision,
)
from pricing import format_inr, locked_proposal, payable_for_trip

DEFAULT_PROVIDERS = {
    Category.TRANSPORT: "redBus",
    Category.FLIGHT: "Airline",
    Category.LODGING: "MakeMyTrip",
}


def parse_category(value) -> Category:
    try:
        return Category(str(value).lower())
    except ValueError:
        raise ValidationError(f"unknown category: {value!r}")


def parse_decision(value) -> VoteDecision:
    try:
        return VoteDecision(str(value).upper())
    except ValueError:
        raise ValidationError(f"vote must be YES or NO, got {value!r}")


def parse_id(value, name: str = "user_id") -> int:
    # JSON bodies may carry ids as strings; voter lists compare ints
    if isinstance(value, bool):
        raise ValidationError(f"{name} must be an integer id")
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{name} must be an integer id")


def _category_state(session, trip_id: int, category: Category) -> NegotiationCategory:
    state = session.get(NegotiationCategory, (trip_id, category.value))
    if state is None:
        state = NegotiationCategory(trip_id=trip_id, category=category.value)
        session.add(state)
    return state


def _approved_user_ids(session, trip_id: int) -> List[int]:
    rows = session.exec(select(Membership).where(Membership.trip_id == trip_id)).all()
    return [m.user_id for m in rows if m.state in APPROVED_STATES]


class NegotiationLedger:
    def __init__(self, participation, events=None, session_factory=get_session):
        self.participation = participation
        self.events = events if events is not None else bus
        self.session_factory = session_factory

    def _require_member(self, trip_id: int, user_id: int):
        # raises NotFound for an unknown trip
        if not self.participation.is_approved(trip_id, user_id):
            logger.warning("User %s is not an approved member of trip %s", user_id, trip_id)
            raise Unauthorized("only approved members can negotiate")

    def propose(self, trip_id: int, category, user_id: int, option: dict) -> Proposal:
        category = parse_category(category)
        user_id = parse_id(user_id)
        self._require_member(trip_id, user_id)

        title = str(option.get("title") or "").strip()
        if not title:
            raise ValidationError("proposal title is required")
        price = option.get("price_per_person", option.get("price"))
        if price is None:
            raise ValidationError("proposal price is required")
        try:
            price = float(price)
        except (TypeError, ValueError):
            raise ValidationError("proposal price must be a number")
        if price < 0:
            raise ValidationError("proposal price must not be negative")

        with category_lock(trip_id, category.value):
            with self.session_factory() as session:
                user = session.get(User, user_id)
                if not user:
                    raise NotFound("user not found")
                state = _category_state(session, trip_id, category)
                if state.locked_proposal_id is not None:
                    raise InvalidState(f"{category.value} is already locked")

                proposal = Proposal(
                    trip_id=trip_id,
                    category=category.value,
                    proposer_id=user_id,
                    title=title,
                    provider=option.get("provider") or DEFAULT_PROVIDERS[category],
                    price_per_person=price,
                    depart_time=option.get("depart_time"),
                    arrive_time=option.get("arrive_time"),
                    notes=option.get("notes"),
                )
                proposal.set_voters([user_id])
                session.add(proposal)
                session.commit()
                session.refresh(proposal)
                others = [uid for uid in _approved_user_ids(session, trip_id) if uid != user_id]

            logger.info("Proposal %s (%s) added to trip %s by user %s", proposal.id, category.value, trip_id, user_id)
            text = f"{user.name} proposed {category.name}: {title}, ₹{format_inr(price)}"
            self.events.system_message(
                trip_id, text, proposal_id=proposal.id, category=category.value, provider=proposal.provider,
            )
            for uid in others:
                self.events.notify(uid, NotificationType.MESSAGE, "New proposal", text, trip_id, screen="chatThread")
            return proposal

    def vote(self, trip_id: int, category, proposal_id: int, user_id: int, decision) -> Optional[Proposal]:
        """YES adds the voter once, NO removes them. Unknown proposals are ignored."""
        category = parse_category(category)
        decision = parse_decision(decision)
        user_id = parse_id(user_id)
        self._require_member(trip_id, user_id)

        with category_lock(trip_id, category.value):
            with self.session_factory() as session:
                proposal = session.get(Proposal, proposal_id)
                if proposal is None or proposal.trip_id != trip_id or proposal.category != category:
                    logger.info("Vote on unknown proposal %s for trip %s ignored", proposal_id, trip_id)
                    return None

                voters = proposal.voters()
                added = False
                if decision == VoteDecision.YES and user_id not in voters:
                    voters.append(user_id)
                    added = True
                elif decision == VoteDecision.NO and user_id in voters:
                    voters.remove(user_id)
                else:
                    return proposal

                proposal.set_voters(voters)
                session.add(proposal)
                session.commit()
                session.refresh(proposal)
                user = session.get(User, user_id)

            if added:
                self.events.system_message(trip_id, f"{user.name} agreed to {proposal.title}", proposal_id=proposal.id)
            self.events.state_change(trip_id, proposal_id=proposal.id, voter_ids=voters)
            return proposal

    def lock(self, trip_id: int, category, proposal_id: int, host_id: int) -> Proposal:
        category = parse_category(category)
        host_id = parse_id(host_id, "host_id")
        if not self.participation.is_owner(trip_id, host_id):
            logger.warning("User %s tried to lock %s on trip %s without being host", host_id, category.value, trip_id)
            raise Unauthorized("only the host can lock a selection")

        with trip_negotiation_lock(trip_id), category_lock(trip_id, category.value):
            with self.session_factory() as session:
                trip = session.get(Trip, trip_id)
                proposal = session.get(Proposal, proposal_id)
                if proposal is None or proposal.trip_id != trip_id or proposal.category != category:
                    raise NotFound("proposal not found")
                state = _category_state(session, trip_id, category)
                if state.locked_proposal_id == proposal.id:
                    raise InvalidState(f"{category.value} is already locked to this proposal")
                # the payable amount is fixed once payments open
                if trip.lifecycle_status != LifecycleStatus.PLANNING:
                    raise InvalidState(f"{category.value} cannot be locked once payments are open")

                state.locked_proposal_id = proposal.id
                state.locked_at = datetime.utcnow()
                session.add(state)
                session.commit()
                members = [uid for uid in _approved_user_ids(session, trip_id) if uid != host_id]

            logger.info("Host %s locked %s proposal %s on trip %s", host_id, category.value, proposal.id, trip_id)
            self.events.system_message(trip_id, f"Host locked {category.name}: {proposal.title}", proposal_id=proposal.id)
            for uid in members:
                self.events.notify(
                    uid, NotificationType.PROPOSAL_LOCKED, "Selection Locked",
                    f"Host locked a {category.value} for {trip.title}", trip_id,
                )
            self.events.state_change(trip_id, category=category.value, locked_proposal_id=proposal.id)
            self._open_payments_if_ready(trip_id)
            return proposal

    def _open_payments_if_ready(self, trip_id: int) -> bool:
        # PLANNING -> PAYMENT_OPEN happens at most once per trip
        with lifecycle_lock(trip_id):
            with self.session_factory() as session:
                trip = session.get(Trip, trip_id)
                if trip.lifecycle_status != LifecycleStatus.PLANNING:
                    return False
                travel_locked = any(locked_proposal(session, trip_id, c) is not None for c in TRAVEL_CATEGORIES)
                lodging_locked = locked_proposal(session, trip_id, Category.LODGING) is not None
                if not (travel_locked and lodging_locked):
                    return False
                trip.lifecycle_status = LifecycleStatus.PAYMENT_OPEN.value
                session.add(trip)
                session.commit()
                rows = session.exec(select(Membership).where(Membership.trip_id == trip_id)).all()
                unpaid = [m.user_id for m in rows if m.state in APPROVED_STATES and not m.paid]

            logger.info("Trip %s moved to PAYMENT_OPEN", trip_id)
            self.events.system_message(trip_id, "Booking Phase Complete. Payments Are Now Open.")
            self.events.state_change(trip_id, lifecycle_status=LifecycleStatus.PAYMENT_OPEN.value)
            for uid in unpaid:
                self.events.notify(uid, NotificationType.PAYMENT_DUE, "Payment Open", f"{trip.title} payment is now open", trip_id)
            return True

    # ---- reads ----

    def proposals(self, trip_id: int, category) -> List[Proposal]:
        category = parse_category(category)
        with self.session_factory() as session:
            return list(session.exec(
                select(Proposal)
                .where(Proposal.trip_id == trip_id, Proposal.category == category.value)
                .order_by(Proposal.created_at, Proposal.id)
            ).all())

    def locked_proposal_id(self, trip_id: int, category) -> Optional[int]:
        category = parse_category(category)
        with self.session_factory() as session:
            state = session.get(NegotiationCategory, (trip_id, category.value))
            return state.locked_proposal_id if state else None

    def lifecycle_status(self, trip_id: int) -> LifecycleStatus:
        with self.session_factory() as session:
            trip = session.get(Trip, trip_id)
            if not trip:
                raise NotFound("trip not found")
            return LifecycleStatus(trip.lifecycle_status)

    def payable_amount(self, trip_id: int) -> float:
        with self.session_factory() as session:
            return payable_for_trip(session, trip_id)

    def payment_eligible(self, trip_id: int, user_id: int) -> bool:
        membership = self.participation.get_membership(trip_id, user_id)
        if membership is None or membership.state not in APPROVED_STATES:
            return False
        if self.lifecycle_status(trip_id) != LifecycleStatus.PAYMENT_OPEN:
            return False
        return not membership.paid

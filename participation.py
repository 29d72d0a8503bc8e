"""Join / approval / payment state machine for (trip, user) pairs.

NOT_JOINED -> REQUESTED -> APPROVED_UNPAID -> APPROVED_PAID
REQUESTED -> DENIED

NOT_JOINED is implicit (no membership row) and nothing ever returns to it.
Every mutation runs under the membership lock for its (trip, user) key.
"""
from datetime import datetime
from typing import List, Optional
from sqlmodel import col, select

from db import get_session, membership_lock, lifecycle_lock
from errors import InvalidState, NotFound, Unauthorized, ValidationError
from events import bus
from logger import logger
from models import (
    APPROVED_STATES,
    CoTravelerSnapshot,
    LifecycleStatus,
    Membership,
    NotificationType,
    ParticipationState,
    Trip,
    User,
)
from pricing import format_inr, payable_for_trip
from trust import compute_trust, group_trust
from vibe import compute_vibe_match, snapshot_profiles

AUTO_APPROVE_MIN_TRUST = 6.5


def _get_trip(session, trip_id: int) -> Trip:
    trip = session.get(Trip, trip_id)
    if not trip:
        raise NotFound("trip not found")
    return trip


def _get_user(session, user_id: int) -> User:
    user = session.get(User, user_id)
    if not user:
        raise NotFound("user not found")
    return user


def _find_membership(session, trip_id: int, user_id: int) -> Optional[Membership]:
    return session.exec(
        select(Membership).where(Membership.trip_id == trip_id, Membership.user_id == user_id)
    ).first()


def _approved_memberships(session, trip_id: int) -> List[Membership]:
    rows = session.exec(select(Membership).where(Membership.trip_id == trip_id)).all()
    return [m for m in rows if m.state in APPROVED_STATES]


class ParticipationManager:
    def __init__(self, events=None, session_factory=get_session):
        self.events = events if events is not None else bus
        self.session_factory = session_factory

    # ---- mutations ----

    def create_trip(self, title: str, owner_id: int) -> Trip:
        if not title or not title.strip():
            raise ValidationError("trip title is required")
        with self.session_factory() as session:
            _get_user(session, owner_id)
            trip = Trip(title=title.strip(), owner_id=owner_id)
            session.add(trip)
            session.commit()
            session.refresh(trip)
        logger.info("Trip %s created by user %s", trip.id, owner_id)
        # the owner joins their own trip through the forced approval path
        self.request_to_join(trip.id, owner_id, force_approve=True)
        return trip

    def request_to_join(self, trip_id: int, user_id: int, force_approve: bool = False) -> Membership:
        with membership_lock(trip_id, user_id):
            with self.session_factory() as session:
                _get_trip(session, trip_id)
                user = _get_user(session, user_id)
                membership = _find_membership(session, trip_id, user_id)
                if membership and membership.state in APPROVED_STATES:
                    return membership

                trust = compute_trust(user.trust_profile())
                auto = force_approve or (user.kyc_verified and trust.score >= AUTO_APPROVE_MIN_TRUST)

                if membership is None:
                    membership = Membership(trip_id=trip_id, user_id=user_id)
                # auto-approved members are treated as settled
                membership.state = ParticipationState.APPROVED_PAID.value if auto else ParticipationState.REQUESTED.value
                membership.paid = auto
                membership.trust_score_at_joining = trust.score
                membership.joined_at = datetime.utcnow()
                session.add(membership)
                if auto:
                    self._capture_snapshot(session, trip_id, user, trust.score)
                session.commit()
                session.refresh(membership)

                logger.info("User %s -> %s on trip %s (trust %.1f)", user_id, membership.state, trip_id, trust.score)
                if auto:
                    self.events.system_message(trip_id, f"{user.name} joined the tribe.", user_id=user_id)
                self.events.state_change(trip_id, user_id=user_id, state=membership.state)
                return membership

    def approve(self, trip_id: int, host_id: int, user_id: int) -> Membership:
        with membership_lock(trip_id, user_id):
            with self.session_factory() as session:
                trip, membership, user = self._host_decision(session, trip_id, host_id, user_id)
                membership.state = ParticipationState.APPROVED_UNPAID.value
                session.add(membership)
                self._capture_snapshot(session, trip_id, user, compute_trust(user.trust_profile()).score)
                session.commit()
                session.refresh(membership)

                logger.info("Host %s approved user %s on trip %s", host_id, user_id, trip_id)
                self.events.system_message(trip_id, f"{user.name}'s opt-in was approved by host.", user_id=user_id)
                self.events.notify(
                    user_id, NotificationType.OPTIN_APPROVED, "Approved",
                    f"You're approved for {trip.title}", trip_id, screen="chatThread",
                )
                self.events.state_change(trip_id, user_id=user_id, state=membership.state)
                return membership

    def deny(self, trip_id: int, host_id: int, user_id: int) -> Membership:
        with membership_lock(trip_id, user_id):
            with self.session_factory() as session:
                trip, membership, user = self._host_decision(session, trip_id, host_id, user_id)
                membership.state = ParticipationState.DENIED.value
                session.add(membership)
                session.commit()
                session.refresh(membership)

                logger.info("Host %s denied user %s on trip %s", host_id, user_id, trip_id)
                self.events.notify(
                    user_id, NotificationType.OPTIN_REJECTED, "Request declined",
                    f"Your request to join {trip.title} was declined", trip_id, screen="tripsTab",
                )
                self.events.state_change(trip_id, user_id=user_id, state=membership.state)
                return membership

    def mark_paid(self, trip_id: int, user_id: int, amount=None) -> Membership:
        """Apply a payment confirmation from the gateway."""
        with membership_lock(trip_id, user_id):
            with self.session_factory() as session:
                _get_trip(session, trip_id)
                user = _get_user(session, user_id)
                membership = _find_membership(session, trip_id, user_id)
                if membership is None:
                    raise NotFound("membership not found")
                if membership.state not in APPROVED_STATES:
                    logger.warning("Payment for user %s on trip %s rejected in state %s", user_id, trip_id, membership.state)
                    raise InvalidState(f"cannot pay while membership is {membership.state}")
                if amount is None:
                    amount = payable_for_trip(session, trip_id)
                try:
                    amount = float(amount)
                except (TypeError, ValueError):
                    raise ValidationError("amount must be a number")
                if amount < 0:
                    raise ValidationError("amount must not be negative")

                membership.state = ParticipationState.APPROVED_PAID.value
                membership.paid = True
                membership.amount_paid = amount
                session.add(membership)
                session.commit()
                session.refresh(membership)

            logger.info("User %s paid %s on trip %s", user_id, amount, trip_id)
            self.events.system_message(
                trip_id, f"💳 {user.first_name} paid ₹{format_inr(amount)}.",
                user_id=user_id, amount=amount,
            )
            self.events.state_change(trip_id, user_id=user_id, state=membership.state)
            self._confirm_if_settled(trip_id)
            return membership

    # ---- helpers ----

    def _host_decision(self, session, trip_id: int, host_id: int, user_id: int):
        trip = _get_trip(session, trip_id)
        if trip.owner_id != host_id:
            logger.warning("User %s is not the host of trip %s", host_id, trip_id)
            raise Unauthorized("only the host can decide on join requests")
        membership = _find_membership(session, trip_id, user_id)
        if membership is None:
            raise NotFound("membership not found")
        if membership.state != ParticipationState.REQUESTED:
            raise InvalidState(f"membership is {membership.state}, not REQUESTED")
        user = _get_user(session, user_id)
        return trip, membership, user

    def _capture_snapshot(self, session, trip_id: int, user: User, score: float):
        snap = session.exec(
            select(CoTravelerSnapshot).where(
                CoTravelerSnapshot.trip_id == trip_id, CoTravelerSnapshot.user_id == user.id
            )
        ).first()
        if snap is None:
            snap = CoTravelerSnapshot(trip_id=trip_id, user_id=user.id, name=user.name)
        profile = user.vibe_profile()
        snap.name = user.name
        snap.vibe = profile.model_dump() if profile is not None else None
        snap.trust_signals = user.trust_profile().model_dump()
        snap.trust_score = score
        snap.captured_at = datetime.utcnow()
        session.add(snap)

    def _confirm_if_settled(self, trip_id: int) -> bool:
        with lifecycle_lock(trip_id):
            with self.session_factory() as session:
                trip = _get_trip(session, trip_id)
                if trip.lifecycle_status != LifecycleStatus.PAYMENT_OPEN:
                    return False
                members = _approved_memberships(session, trip_id)
                if not members or not all(m.paid for m in members):
                    return False
                trip.lifecycle_status = LifecycleStatus.CONFIRMED.value
                session.add(trip)
                session.commit()

            logger.info("Trip %s confirmed, all %d members paid", trip_id, len(members))
            self.events.system_message(trip_id, "All members paid. Trip confirmed.")
            self.events.state_change(trip_id, lifecycle_status=LifecycleStatus.CONFIRMED.value)
            for m in members:
                self.events.notify(
                    m.user_id, NotificationType.TRIP_UPDATE, "Trip confirmed",
                    f"{trip.title} is confirmed", trip_id,
                )
            return True

    # ---- reads ----

    def get_membership(self, trip_id: int, user_id: int) -> Optional[Membership]:
        with self.session_factory() as session:
            return _find_membership(session, trip_id, user_id)

    def state_of(self, trip_id: int, user_id: int) -> ParticipationState:
        membership = self.get_membership(trip_id, user_id)
        if membership is None:
            return ParticipationState.NOT_JOINED
        return ParticipationState(membership.state)

    def members(self, trip_id: int) -> List[Membership]:
        with self.session_factory() as session:
            _get_trip(session, trip_id)
            return list(session.exec(select(Membership).where(Membership.trip_id == trip_id)).all())

    def approved_members(self, trip_id: int) -> List[Membership]:
        with self.session_factory() as session:
            return _approved_memberships(session, trip_id)

    def is_owner(self, trip_id: int, user_id: int) -> bool:
        with self.session_factory() as session:
            return _get_trip(session, trip_id).owner_id == user_id

    def is_approved(self, trip_id: int, user_id: int) -> bool:
        """Owners and approved members may take part in negotiation."""
        if self.is_owner(trip_id, user_id):
            return True
        return self.state_of(trip_id, user_id) in APPROVED_STATES

    def group_trust(self, trip_id: int) -> float:
        with self.session_factory() as session:
            trip = _get_trip(session, trip_id)
            rows = session.exec(select(Membership).where(Membership.trip_id == trip_id)).all()
            member_ids = [m.user_id for m in rows if m.state in APPROVED_STATES or m.paid]
            ids = {trip.owner_id, *member_ids}
            users = session.exec(select(User).where(col(User.id).in_(ids))).all()
            profiles = {u.id: u.trust_profile() for u in users}
        return group_trust(trip.owner_id, member_ids, profiles)

    def snapshots(self, trip_id: int) -> List[CoTravelerSnapshot]:
        with self.session_factory() as session:
            return list(session.exec(
                select(CoTravelerSnapshot)
                .where(CoTravelerSnapshot.trip_id == trip_id)
                .order_by(CoTravelerSnapshot.id)
            ).all())

    def vibe_match(self, trip_id: int, user_id: int) -> Optional[int]:
        with self.session_factory() as session:
            _get_trip(session, trip_id)
            user = _get_user(session, user_id)
            profile = user.vibe_profile()
        others = [s for s in self.snapshots(trip_id) if s.user_id != user_id]
        return compute_vibe_match(profile, snapshot_profiles(others))

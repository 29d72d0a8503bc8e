from enum import Enum
from typing import Optional, List
from sqlmodel import SQLModel, Field, Column, JSON, UniqueConstraint
from datetime import datetime


class ParticipationState(str, Enum):
    NOT_JOINED = "NOT_JOINED"
    REQUESTED = "REQUESTED"
    APPROVED_UNPAID = "APPROVED_UNPAID"
    APPROVED_PAID = "APPROVED_PAID"
    DENIED = "DENIED"


APPROVED_STATES = (ParticipationState.APPROVED_UNPAID, ParticipationState.APPROVED_PAID)


class LifecycleStatus(str, Enum):
    PLANNING = "PLANNING"
    PAYMENT_OPEN = "PAYMENT_OPEN"
    CONFIRMED = "CONFIRMED"


class Category(str, Enum):
    TRANSPORT = "transport"
    LODGING = "lodging"
    FLIGHT = "flight"


# flight is an alternative to transport for the travel leg
TRAVEL_CATEGORIES = (Category.TRANSPORT, Category.FLIGHT)


class VoteDecision(str, Enum):
    YES = "YES"
    NO = "NO"


class NotificationType(str, Enum):
    MESSAGE = "message"
    OPTIN_APPROVED = "optin_approved"
    OPTIN_REJECTED = "optin_rejected"
    PROPOSAL_LOCKED = "proposal_locked"
    PAYMENT_DUE = "payment_due"
    TRIP_UPDATE = "trip_update"


class TrustProfile(SQLModel):
    """Signals consumed by the trust scorer. Missing values count as zero/false."""
    kyc_verified: bool = False
    trips_completed: int = 0
    trips_dropped: int = 0
    avg_rating: float = 0.0
    rating_count: int = 0
    abusive_count: int = 0
    toxic_count: int = 0
    spam_count: int = 0
    violent_content_flag: bool = False
    # only used by the legacy 0-100 display score
    comm_tone_score: float = 0.0


class VibeProfile(SQLModel):
    pace: Optional[str] = None
    commitment: Optional[str] = None
    food: Optional[str] = None
    social: Optional[str] = None
    travel_mode: Optional[str] = None
    night_style: Optional[str] = None
    solo_time: Optional[str] = None
    budget: Optional[str] = None


class User(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    name: str
    kyc_verified: bool = False
    trips_completed: int = 0
    trips_dropped: int = 0
    avg_rating: float = 0.0
    rating_count: int = 0
    abusive_count: int = 0
    toxic_count: int = 0
    spam_count: int = 0
    violent_content_flag: bool = False
    comm_tone_score: float = 0.0
    vibe_pace: Optional[str] = None
    vibe_commitment: Optional[str] = None
    vibe_food: Optional[str] = None
    vibe_social: Optional[str] = None
    vibe_travel_mode: Optional[str] = None
    vibe_night_style: Optional[str] = None
    vibe_solo_time: Optional[str] = None
    vibe_budget: Optional[str] = None
    vibe_checked_at: Optional[datetime] = None

    @property
    def first_name(self) -> str:
        return self.name.split()[0] if self.name.strip() else self.name

    def trust_profile(self) -> TrustProfile:
        return TrustProfile(
            kyc_verified=self.kyc_verified,
            trips_completed=self.trips_completed,
            trips_dropped=self.trips_dropped,
            avg_rating=self.avg_rating,
            rating_count=self.rating_count,
            abusive_count=self.abusive_count,
            toxic_count=self.toxic_count,
            spam_count=self.spam_count,
            violent_content_flag=self.violent_content_flag,
            comm_tone_score=self.comm_tone_score,
        )

    def vibe_profile(self) -> Optional[VibeProfile]:
        if self.vibe_checked_at is None:
            return None
        return VibeProfile(
            pace=self.vibe_pace,
            commitment=self.vibe_commitment,
            food=self.vibe_food,
            social=self.vibe_social,
            travel_mode=self.vibe_travel_mode,
            night_style=self.vibe_night_style,
            solo_time=self.vibe_solo_time,
            budget=self.vibe_budget,
        )


class Trip(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    title: str
    owner_id: int = Field(foreign_key="user.id", index=True)
    lifecycle_status: str = Field(default=LifecycleStatus.PLANNING.value)  # PLANNING, PAYMENT_OPEN, CONFIRMED
    created_at: datetime = Field(default_factory=datetime.utcnow)


class Membership(SQLModel, table=True):
    __table_args__ = (UniqueConstraint("trip_id", "user_id", name="uq_membership_trip_user"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    trip_id: int = Field(foreign_key="trip.id", index=True)
    user_id: int = Field(foreign_key="user.id", index=True)
    state: str = Field(default=ParticipationState.REQUESTED.value, index=True)
    paid: bool = False
    trust_score_at_joining: Optional[float] = None
    amount_paid: Optional[float] = None
    joined_at: datetime = Field(default_factory=datetime.utcnow)


class CoTravelerSnapshot(SQLModel, table=True):
    """Point-in-time copy of a member taken when they were approved into the trip."""
    __table_args__ = (UniqueConstraint("trip_id", "user_id", name="uq_snapshot_trip_user"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    trip_id: int = Field(foreign_key="trip.id", index=True)
    user_id: int = Field(foreign_key="user.id")
    name: str
    vibe: Optional[dict] = Field(default=None, sa_column=Column(JSON))
    trust_signals: dict = Field(default_factory=dict, sa_column=Column(JSON))
    trust_score: float = 5.0
    captured_at: datetime = Field(default_factory=datetime.utcnow)

    def vibe_profile(self) -> Optional[VibeProfile]:
        if self.vibe is None:
            return None
        return VibeProfile(**self.vibe)


class Proposal(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    trip_id: int = Field(foreign_key="trip.id", index=True)
    category: str = Field(index=True)  # transport, lodging, flight
    proposer_id: int = Field(foreign_key="user.id")
    title: str
    provider: Optional[str] = None
    price_per_person: float
    depart_time: Optional[str] = None
    arrive_time: Optional[str] = None
    notes: Optional[str] = None
    voter_ids: str = ""  # comma-separated user ids for simplicity
    created_at: datetime = Field(default_factory=datetime.utcnow)

    def voters(self) -> List[int]:
        return [int(v) for v in self.voter_ids.split(",") if v]

    def set_voters(self, ids: List[int]):
        self.voter_ids = ",".join(str(i) for i in ids)


class NegotiationCategory(SQLModel, table=True):
    trip_id: int = Field(foreign_key="trip.id", primary_key=True)
    category: str = Field(primary_key=True)
    locked_proposal_id: Optional[int] = Field(default=None, foreign_key="proposal.id")
    locked_at: Optional[datetime] = None


class TripRating(SQLModel, table=True):
    __table_args__ = (UniqueConstraint("trip_id", "rater_id", "rated_id", name="uq_rating_trip_pair"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    trip_id: int = Field(foreign_key="trip.id", index=True)
    rater_id: int = Field(foreign_key="user.id")
    rated_id: int = Field(foreign_key="user.id", index=True)
    respect: int
    reliability: int
    cooperation: int
    safety: int
    feedback: Optional[str] = None
    created_at: datetime = Field(default_factory=datetime.utcnow)

    @property
    def stars(self) -> float:
        return (self.respect + self.reliability + self.cooperation + self.safety) / 4

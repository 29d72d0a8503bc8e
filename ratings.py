from typing import Optional
from sqlmodel import select

from db import get_session, get_lock
from errors import NotFound, ValidationError
from logger import logger
from models import APPROVED_STATES, Membership, Trip, TripRating, User

SCORE_FIELDS = ("respect", "reliability", "cooperation", "safety")


def _is_member(session, trip_id: int, user_id: int) -> bool:
    membership = session.exec(
        select(Membership).where(Membership.trip_id == trip_id, Membership.user_id == user_id)
    ).first()
    return membership is not None and membership.state in APPROVED_STATES


def record_rating(trip_id: int, rater_id: int, rated_id: int, scores: dict,
                  feedback: Optional[str] = None) -> TripRating:
    """Store a post-trip peer rating and fold it into the rated user's trust profile.

    A first rating for (trip, rater, rated) adds to the running average and
    bumps rating_count. Rating the same person again for the same trip
    replaces the earlier stars without changing the count.
    """
    if rater_id == rated_id:
        raise ValidationError("members cannot rate themselves")
    values = {}
    for name in SCORE_FIELDS:
        value = scores.get(name)
        if not isinstance(value, int) or isinstance(value, bool) or not 1 <= value <= 5:
            raise ValidationError(f"{name} must be an integer from 1 to 5")
        values[name] = value

    # the rated user's profile is a shared read-modify-write target
    with get_lock(f"rating:{rated_id}"):
        with get_session() as session:
            if not session.get(Trip, trip_id):
                raise NotFound("trip not found")
            rated = session.get(User, rated_id)
            if not rated or not session.get(User, rater_id):
                raise NotFound("user not found")
            if not _is_member(session, trip_id, rater_id) or not _is_member(session, trip_id, rated_id):
                raise NotFound("both users must be members of the trip")

            rating = session.exec(
                select(TripRating).where(
                    TripRating.trip_id == trip_id,
                    TripRating.rater_id == rater_id,
                    TripRating.rated_id == rated_id,
                )
            ).first()

            total = rated.avg_rating * rated.rating_count
            if rating is None:
                rating = TripRating(trip_id=trip_id, rater_id=rater_id, rated_id=rated_id, **values)
                rated.rating_count += 1
            else:
                total -= rating.stars
                for name, value in values.items():
                    setattr(rating, name, value)
            rating.feedback = feedback
            total += rating.stars
            # unrounded, the next rating multiplies it back by rating_count
            rated.avg_rating = total / rated.rating_count

            session.add(rating)
            session.add(rated)
            session.commit()
            session.refresh(rating)

    logger.info("User %s rated user %s on trip %s (%.2f stars)", rater_id, rated_id, trip_id, rating.stars)
    return rating

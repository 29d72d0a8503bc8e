from decimal import Decimal, ROUND_HALF_UP
from typing import Dict, Iterable, List
from sqlmodel import SQLModel, Field

from models import TrustProfile

BASE_SCORE = 5.0
GROUP_TRUST_FLOOR = 5.0


def round_score(value: float) -> float:
    """One decimal, ties away from zero (7.25 -> 7.3)."""
    return float(Decimal(str(value)).quantize(Decimal("0.1"), rounding=ROUND_HALF_UP))


class TrustResult(SQLModel):
    score: float
    reasons: List[str] = Field(default_factory=list)


def compute_trust(profile: TrustProfile) -> TrustResult:
    """Deterministic 0-10 trust score.

    Terms are applied to a 5.0 base in a fixed order: KYC, experience tier,
    community rating, drop-off penalty, chat conduct penalty, hard safety flag.
    The result is clamped to [0, 10] and rounded to one decimal.
    """
    reasons = []
    score = BASE_SCORE

    if profile.kyc_verified:
        score += 2.0
        reasons.append("KYC Verified (+2.0)")

    if profile.trips_completed >= 5:
        score += 1.0
        reasons.append("Expert Traveler: 5+ trips (+1.0)")
    elif profile.trips_completed >= 3:
        score += 0.8
        reasons.append("Experienced Traveler: 3+ trips (+0.8)")
    elif profile.trips_completed >= 1:
        score += 0.6
        reasons.append("Completed first trip (+0.6)")

    if profile.rating_count >= 1:
        # maps 1..5 stars onto -1..+1
        rating_norm = (profile.avg_rating - 3.0) / 2.0
        multiplier = 2.0 if profile.rating_count >= 5 else 1.5
        contribution = rating_norm * multiplier
        score += contribution
        reasons.append(f"Community Feedback: {round(profile.avg_rating, 2)}/5 ({round_score(contribution):+.1f})")

    involved = profile.trips_completed + profile.trips_dropped
    if involved > 0 and profile.trips_dropped > 0:
        drop_rate = profile.trips_dropped / involved
        penalty = min(3.0, drop_rate * 3.0)
        score -= penalty
        reasons.append(f"Drop-off Penalty (-{round_score(penalty):.1f})")

    chat_penalty = min(2.5, profile.abusive_count * 0.8 + profile.toxic_count * 0.4 + profile.spam_count * 0.2)
    if chat_penalty > 0:
        score -= chat_penalty
        reasons.append(f"Chat Conduct Penalty (-{round_score(chat_penalty):.1f})")

    if profile.violent_content_flag:
        score -= 4.0
        reasons.append("Hard Safety Alert: Social Signal (-4.0)")

    score = max(0.0, min(10.0, score))
    return TrustResult(score=round_score(score), reasons=reasons)


def group_trust(owner_id, member_ids: Iterable, profiles: Dict) -> float:
    """Average trust of the owner plus approved/paid members.

    Ids without a profile in the lookup are skipped, not counted as zero.
    With nothing to average the floor of 5.0 is returned.
    """
    ids = []
    for uid in [owner_id, *member_ids]:
        if uid is not None and uid not in ids:
            ids.append(uid)

    scores = [compute_trust(profiles[uid]).score for uid in ids if uid in profiles]
    if not scores:
        return GROUP_TRUST_FLOOR
    return round_score(sum(scores) / len(scores))


# Legacy 0-100 display metric. It uses a different signal set and weighting
# than compute_trust and is never used for approval or payment decisions.

def display_trust_score(profile: TrustProfile) -> int:
    score = 50.0
    if profile.kyc_verified:
        score += 20
    if profile.trips_completed >= 2:
        score += 10
    if profile.trips_dropped >= 1:
        score -= 15
    score += profile.avg_rating * 5
    score += profile.comm_tone_score
    return int(max(0, min(100, Decimal(str(score)).quantize(Decimal("1"), rounding=ROUND_HALF_UP))))


def trust_tier(display_score: int) -> str:
    if display_score >= 80:
        return "High"
    if display_score >= 40:
        return "Medium"
    return "Low"

from datetime import datetime
from math import floor
from typing import Dict, List, Optional, Sequence

from errors import ValidationError
from models import CoTravelerSnapshot, User, VibeProfile

# per-axis weights, sum to 100
WEIGHTS = {
    "budget": 25,
    "commitment": 10,
    "food": 15,
    "social": 10,
    "travel_mode": 15,
    "pace": 10,
    "night_style": 10,
    "solo_time": 5,
}

VIBE_OPTIONS: Dict[str, List[str]] = {
    "pace": ["Fast-paced", "Relaxed", "Balanced"],
    "commitment": ["Planned", "Go-with-the-flow", "Flexible"],
    "food": ["Very comfortable", "Comfortable after a little time", "I take time, but I warm up"],
    "social": ["Social & chatty", "Calm & respectful", "Depends on the day"],
    "travel_mode": ["I like structure and clarity", "I like freedom and spontaneity", "A bit of both"],
    "night_style": ["Early starts and full days", "Easy mornings, steady days", "Late starts, relaxed pace"],
    "solo_time": [
        "Like to discuss and decide together",
        "Are okay following the group",
        "Prefer a clear lead, but open to input",
    ],
    "budget": ["Talk it out calmly", "Adjust and move on", "Prefer space before discussing"],
}


def _norm(value) -> str:
    return "" if value is None else str(value).lower()


def compute_vibe_match(profile: Optional[VibeProfile], co_travelers: Sequence[VibeProfile]) -> Optional[int]:
    """Percent compatibility between one profile and a group of co-travelers.

    None means no match was computed (the user has not done a vibe check),
    which is not the same as 0%. An empty group is fully compatible.
    """
    if profile is None:
        return None
    if not co_travelers:
        return 100

    total = 0.0
    for axis, weight in WEIGHTS.items():
        user_value = _norm(getattr(profile, axis))
        if not user_value:
            continue
        matches = sum(1 for ct in co_travelers if _norm(getattr(ct, axis)) == user_value)
        total += matches / len(co_travelers) * weight

    total = max(0.0, min(100.0, total))
    # half rounds up
    return int(floor(total + 0.5))


def vibe_band(score: Optional[int]) -> str:
    if score is None:
        return "Unknown"
    if score >= 80:
        return "Great"
    if score >= 40:
        return "Good"
    return "Muted"


def snapshot_profiles(snapshots: Sequence[CoTravelerSnapshot]) -> List[VibeProfile]:
    """Snapshots without a vibe profile still count as travelers that match nothing."""
    return [s.vibe_profile() or VibeProfile() for s in snapshots]


def validate_vibe_answers(answers: dict) -> VibeProfile:
    missing = [axis for axis in WEIGHTS if axis not in answers]
    if missing:
        raise ValidationError(f"missing vibe answers: {', '.join(missing)}")
    lowered = {axis: {_norm(o): o for o in options} for axis, options in VIBE_OPTIONS.items()}
    values = {}
    for axis in WEIGHTS:
        value = answers[axis]
        if _norm(value) not in lowered[axis]:
            raise ValidationError(f"invalid value for {axis}: {value!r}")
        values[axis] = lowered[axis][_norm(value)]
    return VibeProfile(**values)


def apply_vibe_check(user: User, profile: VibeProfile):
    """Overwrite the user's vibe profile wholesale."""
    for axis in WEIGHTS:
        setattr(user, f"vibe_{axis}", getattr(profile, axis))
    user.vibe_checked_at = datetime.utcnow()

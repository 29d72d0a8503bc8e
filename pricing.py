from typing import Optional

from models import Category, NegotiationCategory, Proposal


def compute_payable(travel: Optional[Proposal], lodging: Optional[Proposal]) -> float:
    """Per-person amount due once the booking phase is complete:
    price = locked travel leg price + locked lodging price
    Nothing is payable until both are locked.
    """
    if travel is None or lodging is None:
        return 0
    return travel.price_per_person + lodging.price_per_person


def format_inr(amount) -> str:
    # whole rupees print without a decimal part, paise keep two places
    value = float(amount)
    if value.is_integer():
        return str(int(value))
    return f"{value:.2f}"


def locked_proposal(session, trip_id: int, category) -> Optional[Proposal]:
    state = session.get(NegotiationCategory, (trip_id, Category(category).value))
    if state is None or state.locked_proposal_id is None:
        return None
    return session.get(Proposal, state.locked_proposal_id)


def payable_for_trip(session, trip_id: int) -> float:
    # the travel leg is the locked transport, falling back to a locked flight
    travel = locked_proposal(session, trip_id, Category.TRANSPORT) or locked_proposal(session, trip_id, Category.FLIGHT)
    lodging = locked_proposal(session, trip_id, Category.LODGING)
    return compute_payable(travel, lodging)

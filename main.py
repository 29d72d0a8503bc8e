from contextlib import asynccontextmanager
from starlette.applications import Starlette
from starlette.responses import JSONResponse
from starlette.requests import Request
from starlette.routing import Route
from sqlmodel import select
from db import init_db, get_session, get_lock
from errors import TribeError, NotFound
from events import bus
from models import User, Trip
from negotiation import NegotiationLedger, parse_id
from participation import ParticipationManager
from ratings import record_rating, SCORE_FIELDS
from trust import compute_trust, display_trust_score, trust_tier
from vibe import apply_vibe_check, validate_vibe_answers, vibe_band

participation = ParticipationManager(bus)
ledger = NegotiationLedger(participation, bus)

TRUST_FIELDS = [
    "kyc_verified", "trips_completed", "trips_dropped", "avg_rating", "rating_count",
    "abusive_count", "toxic_count", "spam_count", "violent_content_flag", "comm_tone_score",
]


@asynccontextmanager
async def lifespan(app):
    init_db()
    yield


async def handle_error(request: Request, exc: TribeError):
    return JSONResponse({"error": exc.message}, status_code=exc.status_code)


async def read_payload(request: Request, required=()):
    try:
        payload = await request.json()
    except ValueError:
        return None, JSONResponse({"error": "invalid json body"}, status_code=400)
    if not isinstance(payload, dict):
        return None, JSONResponse({"error": "json object expected"}, status_code=400)
    for k in required:
        if k not in payload:
            return None, JSONResponse({"error": f"missing {k}"}, status_code=400)
    return payload, None


def membership_out(m):
    return {
        "trip_id": m.trip_id,
        "user_id": m.user_id,
        "state": m.state,
        "paid": m.paid,
        "trust_score_at_joining": m.trust_score_at_joining,
        "amount_paid": m.amount_paid,
    }


def proposal_out(p, locked_id=None):
    return {
        "id": p.id,
        "category": p.category,
        "proposer_id": p.proposer_id,
        "title": p.title,
        "provider": p.provider,
        "price_per_person": p.price_per_person,
        "depart_time": p.depart_time,
        "arrive_time": p.arrive_time,
        "voter_ids": p.voters(),
        "locked": locked_id is not None and p.id == locked_id,
    }


def trip_out(trip, user_id=None):
    out = {
        "id": trip.id,
        "title": trip.title,
        "owner_id": trip.owner_id,
        "lifecycle_status": ledger.lifecycle_status(trip.id).value,
        "group_trust": participation.group_trust(trip.id),
        "payable_amount": ledger.payable_amount(trip.id),
    }
    if user_id is not None:
        match = participation.vibe_match(trip.id, user_id)
        out["vibe_match"] = match
        out["vibe_band"] = vibe_band(match)
        out["participation"] = participation.state_of(trip.id, user_id).value
    return out


# ---- users ----

async def create_user(request: Request):
    payload, error = await read_payload(request, required=["name"])
    if error:
        return error
    user = User(name=payload["name"], **{k: payload[k] for k in TRUST_FIELDS if k in payload})
    with get_session() as session:
        session.add(user)
        session.commit()
        session.refresh(user)
    return JSONResponse({"user_id": user.id})


async def user_trust(request: Request):
    uid = int(request.path_params["user_id"])
    with get_session() as session:
        user = session.get(User, uid)
    if not user:
        return JSONResponse({"error": "user not found"}, status_code=404)
    profile = user.trust_profile()
    result = compute_trust(profile)
    display = display_trust_score(profile)
    return JSONResponse({
        "user_id": uid,
        "score": result.score,
        "reasons": result.reasons,
        "display_score": display,
        "display_tier": trust_tier(display),
    })


async def vibe_check(request: Request):
    uid = int(request.path_params["user_id"])
    payload, error = await read_payload(request)
    if error:
        return error
    profile = validate_vibe_answers(payload)
    with get_lock(f"user:{uid}"):
        with get_session() as session:
            user = session.get(User, uid)
            if not user:
                raise NotFound("user not found")
            apply_vibe_check(user, profile)
            session.add(user)
            session.commit()
    return JSONResponse({"user_id": uid, "vibe": profile.model_dump()})


# ---- trips & membership ----

async def create_trip(request: Request):
    payload, error = await read_payload(request, required=["title", "owner_id"])
    if error:
        return error
    trip = participation.create_trip(payload["title"], parse_id(payload["owner_id"], "owner_id"))
    return JSONResponse({"trip_id": trip.id, "lifecycle_status": trip.lifecycle_status})


async def list_trips(request: Request):
    user_id = request.query_params.get("user_id")
    user_id = parse_id(user_id) if user_id else None
    with get_session() as session:
        trips = session.exec(select(Trip)).all()
    out = [trip_out(t, user_id) for t in trips]
    # best vibe match first, trips without a computed match last
    out.sort(key=lambda t: (t.get("vibe_match") is None, -(t.get("vibe_match") or 0), -t["group_trust"]))
    return JSONResponse(out)


async def get_trip(request: Request):
    trip_id = int(request.path_params["trip_id"])
    user_id = request.query_params.get("user_id")
    with get_session() as session:
        trip = session.get(Trip, trip_id)
    if not trip:
        return JSONResponse({"error": "trip not found"}, status_code=404)
    out = trip_out(trip, parse_id(user_id) if user_id else None)
    out["members"] = [membership_out(m) for m in participation.members(trip_id)]
    return JSONResponse(out)


async def join_trip(request: Request):
    trip_id = int(request.path_params["trip_id"])
    payload, error = await read_payload(request, required=["user_id"])
    if error:
        return error
    m = participation.request_to_join(trip_id, parse_id(payload["user_id"]))
    return JSONResponse(membership_out(m))


async def approve_member(request: Request):
    trip_id = int(request.path_params["trip_id"])
    payload, error = await read_payload(request, required=["host_id"])
    if error:
        return error
    m = participation.approve(trip_id, parse_id(payload["host_id"], "host_id"), int(request.path_params["user_id"]))
    return JSONResponse(membership_out(m))


async def deny_member(request: Request):
    trip_id = int(request.path_params["trip_id"])
    payload, error = await read_payload(request, required=["host_id"])
    if error:
        return error
    m = participation.deny(trip_id, parse_id(payload["host_id"], "host_id"), int(request.path_params["user_id"]))
    return JSONResponse(membership_out(m))


async def confirm_payment(request: Request):
    trip_id = int(request.path_params["trip_id"])
    payload, error = await read_payload(request, required=["user_id"])
    if error:
        return error
    m = participation.mark_paid(trip_id, parse_id(payload["user_id"]), payload.get("amount"))
    return JSONResponse(membership_out(m))


async def payment_status(request: Request):
    trip_id = int(request.path_params["trip_id"])
    user_id = int(request.path_params["user_id"])
    return JSONResponse({
        "trip_id": trip_id,
        "user_id": user_id,
        "eligible": ledger.payment_eligible(trip_id, user_id),
        "amount": ledger.payable_amount(trip_id),
        "lifecycle_status": ledger.lifecycle_status(trip_id).value,
    })


async def trip_vibe(request: Request):
    trip_id = int(request.path_params["trip_id"])
    user_id = request.query_params.get("user_id")
    if not user_id:
        return JSONResponse({"error": "missing user_id"}, status_code=400)
    match = participation.vibe_match(trip_id, parse_id(user_id))
    return JSONResponse({"trip_id": trip_id, "vibe_match": match, "band": vibe_band(match)})


# ---- negotiation ----

async def list_proposals(request: Request):
    trip_id = int(request.path_params["trip_id"])
    category = request.path_params["category"]
    ledger.lifecycle_status(trip_id)  # 404 for unknown trips
    locked_id = ledger.locked_proposal_id(trip_id, category)
    return JSONResponse({
        "locked_proposal_id": locked_id,
        "proposals": [proposal_out(p, locked_id) for p in ledger.proposals(trip_id, category)],
    })


async def create_proposal(request: Request):
    trip_id = int(request.path_params["trip_id"])
    payload, error = await read_payload(request, required=["user_id"])
    if error:
        return error
    p = ledger.propose(trip_id, request.path_params["category"], payload["user_id"], payload)
    return JSONResponse(proposal_out(p))


async def vote_proposal(request: Request):
    trip_id = int(request.path_params["trip_id"])
    payload, error = await read_payload(request, required=["user_id", "decision"])
    if error:
        return error
    p = ledger.vote(
        trip_id, request.path_params["category"], int(request.path_params["proposal_id"]),
        payload["user_id"], payload["decision"],
    )
    if p is None:
        return JSONResponse({"status": "ignored"})
    return JSONResponse(proposal_out(p))


async def lock_proposal(request: Request):
    trip_id = int(request.path_params["trip_id"])
    payload, error = await read_payload(request, required=["host_id"])
    if error:
        return error
    p = ledger.lock(trip_id, request.path_params["category"], int(request.path_params["proposal_id"]), payload["host_id"])
    return JSONResponse({
        "proposal": proposal_out(p, p.id),
        "lifecycle_status": ledger.lifecycle_status(trip_id).value,
    })


# ---- ratings & events ----

async def rate_member(request: Request):
    trip_id = int(request.path_params["trip_id"])
    payload, error = await read_payload(request, required=["rater_id", "rated_id", *SCORE_FIELDS])
    if error:
        return error
    rating = record_rating(
        trip_id, parse_id(payload["rater_id"], "rater_id"), parse_id(payload["rated_id"], "rated_id"),
        {k: payload[k] for k in SCORE_FIELDS}, payload.get("feedback"),
    )
    return JSONResponse({"rating_id": rating.id, "stars": rating.stars})


async def trip_events(request: Request):
    trip_id = int(request.path_params["trip_id"])
    try:
        since = int(request.query_params.get("since", 0))
    except ValueError:
        return JSONResponse({"error": "since must be an integer"}, status_code=400)
    events = bus.since(trip_id, since)
    return JSONResponse([e.model_dump(mode="json") for e in events])


routes = [
    Route("/users", create_user, methods=["POST"]),
    Route("/users/{user_id:int}/trust", user_trust, methods=["GET"]),
    Route("/users/{user_id:int}/vibe", vibe_check, methods=["PUT"]),
    Route("/trips", create_trip, methods=["POST"]),
    Route("/trips", list_trips, methods=["GET"]),
    Route("/trips/{trip_id:int}", get_trip, methods=["GET"]),
    Route("/trips/{trip_id:int}/join", join_trip, methods=["POST"]),
    Route("/trips/{trip_id:int}/members/{user_id:int}/approve", approve_member, methods=["POST"]),
    Route("/trips/{trip_id:int}/members/{user_id:int}/deny", deny_member, methods=["POST"]),
    Route("/trips/{trip_id:int}/members/{user_id:int}/payment", payment_status, methods=["GET"]),
    Route("/trips/{trip_id:int}/payments", confirm_payment, methods=["POST"]),
    Route("/trips/{trip_id:int}/vibe", trip_vibe, methods=["GET"]),
    Route("/trips/{trip_id:int}/negotiation/{category}/proposals", list_proposals, methods=["GET"]),
    Route("/trips/{trip_id:int}/negotiation/{category}/proposals", create_proposal, methods=["POST"]),
    Route("/trips/{trip_id:int}/negotiation/{category}/proposals/{proposal_id:int}/vote", vote_proposal, methods=["POST"]),
    Route("/trips/{trip_id:int}/negotiation/{category}/proposals/{proposal_id:int}/lock", lock_proposal, methods=["POST"]),
    Route("/trips/{trip_id:int}/ratings", rate_member, methods=["POST"]),
    Route("/trips/{trip_id:int}/events", trip_events, methods=["GET"]),
]

app = Starlette(
    debug=False,
    routes=routes,
    lifespan=lifespan,
    exception_handlers={TribeError: handle_error},
)

import os
import sys
import pytest

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from sqlmodel import SQLModel, create_engine
from db import get_session
from events import EventBus
from models import User
from negotiation import NegotiationLedger
from participation import ParticipationManager
from vibe import VIBE_OPTIONS, apply_vibe_check, validate_vibe_answers

# ────────────────────────── profiles ────────────────────────────────────────

# KYC verified, 5 trips, 4.8 stars over 5 ratings -> 9.8
TRUSTED = dict(kyc_verified=True, trips_completed=5, avg_rating=4.8, rating_count=5)
# verified but with conduct flags -> 7.0 - 2.4 = 4.6, below the auto-approve bar
FLAGGED = dict(kyc_verified=True, abusive_count=3)
# great record but no KYC
UNVERIFIED = dict(kyc_verified=False, trips_completed=8, avg_rating=5.0, rating_count=9)


def vibe_answers(index=0, **overrides):
    answers = {axis: options[index] for axis, options in VIBE_OPTIONS.items()}
    answers.update(overrides)
    return answers


# ────────────────────────── fixtures ────────────────────────────────────────

@pytest.fixture(autouse=True)
def fresh_db(tmp_path, monkeypatch):
    """Each test runs against a fresh database file."""
    import db as db_mod
    import models  # noqa: F401
    test_db = f"sqlite:///{tmp_path}/test.db"
    new_engine = create_engine(test_db, echo=False, connect_args={"check_same_thread": False})
    monkeypatch.setattr(db_mod, "engine", new_engine)
    SQLModel.metadata.create_all(new_engine)
    yield
    SQLModel.metadata.drop_all(new_engine)
    new_engine.dispose()


@pytest.fixture
def events():
    return EventBus()


@pytest.fixture
def participation(events):
    return ParticipationManager(events)


@pytest.fixture
def ledger(participation, events):
    return NegotiationLedger(participation, events)


def make_user(name="Asha Rao", vibe=None, **fields):
    user = User(name=name, **fields)
    if vibe is not None:
        apply_vibe_check(user, validate_vibe_answers(vibe))
    with get_session() as session:
        session.add(user)
        session.commit()
        session.refresh(user)
    return user


def texts(events, trip_id):
    return [e.text for e in events.since(trip_id) if e.kind == "system_message"]


def notifications(events, trip_id, type=None):
    out = [e.notification for e in events.since(trip_id) if e.kind == "notification"]
    if type is not None:
        out = [n for n in out if n.type == type]
    return out

from sqlmodel import create_engine, Session
from sqlmodel import SQLModel
import threading
import os

DB_FILE = os.path.join(os.path.dirname(__file__), "tribetrip.db")
_default_url = f"sqlite:///{DB_FILE}"
DATABASE_URL = os.environ.get("DATABASE_URL", _default_url)

# SQLite needs check_same_thread=False; Postgres does not
_connect_args = {"check_same_thread": False} if DATABASE_URL.startswith("sqlite") else {}

# Application-level locks keyed by name (e.g. "negotiation:3:lodging")
locks = {}
locks_lock = threading.Lock()


def get_lock(name: str):
    with locks_lock:
        if name not in locks:
            locks[name] = threading.Lock()
        return locks[name]


def membership_lock(trip_id: int, user_id: int):
    return get_lock(f"membership:{trip_id}:{user_id}")


def category_lock(trip_id: int, category: str):
    return get_lock(f"negotiation:{trip_id}:{category}")


def trip_negotiation_lock(trip_id: int):
    return get_lock(f"negotiation:{trip_id}")


def lifecycle_lock(trip_id: int):
    return get_lock(f"lifecycle:{trip_id}")


engine = create_engine(DATABASE_URL, echo=False, connect_args=_connect_args)


def init_db():
    # models must be imported so their tables are registered on the metadata
    import models  # noqa: F401
    SQLModel.metadata.create_all(engine)


def get_session():
    return Session(engine, expire_on_commit=False)

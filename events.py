"""Per-trip change notification.

Mutations publish events here instead of clients re-reading and diffing the
whole trip state. Each trip keeps a bounded, ordered history so a client can
ask for everything after the last sequence number it saw.
"""
from collections import defaultdict, deque
from datetime import datetime
from typing import Callable, Dict, List, Optional
from sqlmodel import SQLModel, Field
import itertools
import os
import threading

from logger import logger
from models import NotificationType

EVENT_HISTORY = int(os.environ.get("TRIBETRIP_EVENT_HISTORY", "500"))

SYSTEM_MESSAGE = "system_message"
NOTIFICATION = "notification"
STATE_CHANGE = "state_change"


class Notification(SQLModel):
    type: NotificationType
    title: str
    body: str
    trip_id: int
    user_id: int
    target: dict = Field(default_factory=dict)


class TripEvent(SQLModel):
    seq: int = 0
    trip_id: int
    kind: str  # system_message, notification, state_change
    text: Optional[str] = None
    notification: Optional[Notification] = None
    data: dict = Field(default_factory=dict)
    created_at: datetime = Field(default_factory=datetime.utcnow)


class EventBus:
    def __init__(self, history: int = EVENT_HISTORY):
        self._lock = threading.Lock()
        self._seq = itertools.count(1)
        self._history: Dict[int, deque] = defaultdict(lambda: deque(maxlen=history))
        self._subscribers: Dict[int, List[Callable[[TripEvent], None]]] = defaultdict(list)

    def subscribe(self, trip_id: int, callback: Callable[[TripEvent], None]):
        """Register a callback for one trip. Returns a function that unsubscribes it."""
        with self._lock:
            self._subscribers[trip_id].append(callback)

        def unsubscribe():
            with self._lock:
                if callback in self._subscribers[trip_id]:
                    self._subscribers[trip_id].remove(callback)

        return unsubscribe

    def publish(self, event: TripEvent) -> TripEvent:
        with self._lock:
            event.seq = next(self._seq)
            self._history[event.trip_id].append(event)
            callbacks = list(self._subscribers[event.trip_id])
        for cb in callbacks:
            try:
                cb(event)
            except Exception:
                # a broken subscriber must not undo a committed mutation
                logger.exception("Subscriber failed for trip %s event %s", event.trip_id, event.seq)
        return event

    def since(self, trip_id: int, seq: int = 0) -> List[TripEvent]:
        with self._lock:
            # reads must not create history for trips nobody published to
            return [e for e in self._history.get(trip_id, ()) if e.seq > seq]

    # helpers used by the services

    def system_message(self, trip_id: int, text: str, **data) -> TripEvent:
        return self.publish(TripEvent(trip_id=trip_id, kind=SYSTEM_MESSAGE, text=text, data=data))

    def notify(self, user_id: int, type: NotificationType, title: str, body: str,
               trip_id: int, screen: str = "tripDetails") -> TripEvent:
        note = Notification(
            type=type,
            title=title,
            body=body,
            trip_id=trip_id,
            user_id=user_id,
            target={"screen": screen, "params": {"tripId": trip_id}},
        )
        return self.publish(TripEvent(trip_id=trip_id, kind=NOTIFICATION, notification=note))

    def state_change(self, trip_id: int, **data) -> TripEvent:
        return self.publish(TripEvent(trip_id=trip_id, kind=STATE_CHANGE, data=data))


bus = EventBus()

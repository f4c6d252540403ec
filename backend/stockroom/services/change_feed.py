# Overview: In-process change feed; delivers committed change events to subscribers.

"""
Services call record_change() while they work. Events are parked on the
SQLAlchemy session and handed to subscribers only when that session
commits; a rollback discards them. Subscribers therefore never observe a
change that did not persist.

Usage:

    sub = change_feed.subscribe(lambda ev: ev.collection == "role_change_requests")
    for ev in sub:          # blocks
        ...
    sub.close()
"""

from __future__ import annotations

import queue
import threading
from dataclasses import dataclass, field
from typing import Callable, Iterator, Optional

from sqlalchemy import event
from sqlalchemy.orm import Session

from ..extensions import db

_PENDING_KEY = "stockroom.pending_changes"

_lock = threading.Lock()
_subscribers: list["Subscription"] = []


@dataclass(frozen=True)
class ChangeEvent:
    collection: str
    action: str
    entity_id: Optional[int]
    payload: dict = field(default_factory=dict)


class Subscription:
    """A subscriber's queue of committed events matching its predicate."""

    def __init__(self, predicate: Optional[Callable[[ChangeEvent], bool]] = None):
        self._predicate = predicate
        self._queue: "queue.Queue[Optional[ChangeEvent]]" = queue.Queue()
        self.closed = False

    def matches(self, ev: ChangeEvent) -> bool:
        return self._predicate is None or bool(self._predicate(ev))

    def deliver(self, ev: ChangeEvent) -> None:
        if not self.closed:
            self._queue.put(ev)

    def get(self, timeout: Optional[float] = None) -> Optional[ChangeEvent]:
        """Next event, or None when the timeout expires or the subscription is closed."""
        if self.closed and self._queue.empty():
            return None
        try:
            return self._queue.get(timeout=timeout)
        except queue.Empty:
            return None

    def drain(self) -> list[ChangeEvent]:
        """Everything already delivered, without blocking."""
        events = []
        while True:
            try:
                ev = self._queue.get_nowait()
            except queue.Empty:
                return events
            if ev is not None:
                events.append(ev)

    def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        with _lock:
            if self in _subscribers:
                _subscribers.remove(self)
        # wake a blocked iterator
        self._queue.put(None)

    def __iter__(self) -> Iterator[ChangeEvent]:
        while True:
            if self.closed and self._queue.empty():
                return
            ev = self._queue.get()
            if ev is None:
                return
            yield ev

    def __enter__(self) -> "Subscription":
        return self

    def __exit__(self, *exc) -> None:
        self.close()


def subscribe(predicate: Optional[Callable[[ChangeEvent], bool]] = None) -> Subscription:
    sub = Subscription(predicate)
    with _lock:
        _subscribers.append(sub)
    return sub


def record_change(collection: str, action: str, entity_id: Optional[int], payload: Optional[dict] = None) -> ChangeEvent:
    """Park an event on the current session until it commits."""
    ev = ChangeEvent(collection=collection, action=action, entity_id=entity_id, payload=payload or {})
    db.session.info.setdefault(_PENDING_KEY, []).append(ev)
    return ev


def _publish(events: list[ChangeEvent]) -> None:
    with _lock:
        targets = list(_subscribers)
    for ev in events:
        for sub in targets:
            if sub.matches(ev):
                sub.deliver(ev)


@event.listens_for(Session, "after_commit")
def _after_commit(session):
    events = session.info.pop(_PENDING_KEY, None)
    if events:
        _publish(events)


@event.listens_for(Session, "after_rollback")
def _after_rollback(session):
    session.info.pop(_PENDING_KEY, None)

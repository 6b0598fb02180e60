"""
In-process change feed for the projects and tasks tables.

Repositories publish one event per affected row after their transaction
commits. Consumers subscribe per table, optionally filtered by project id, and
dispose of their subscription explicitly when they no longer want events.
"""
import logging
import threading
from dataclasses import dataclass
from typing import Callable, List, Optional

logger = logging.getLogger(__name__)

INSERT = "INSERT"
UPDATE = "UPDATE"
DELETE = "DELETE"


@dataclass(frozen=True)
class ChangeEvent:
    table: str
    type: str
    new: Optional[dict] = None
    old: Optional[dict] = None

    @property
    def record(self) -> dict:
        return self.new if self.new is not None else (self.old or {})

    @property
    def project_id(self) -> Optional[str]:
        rec = self.record
        if self.table == "projects":
            return rec.get("id")
        return rec.get("project_id")


class Subscription:
    def __init__(self, feed: "ChangeFeed", table: str, callback: Callable[[ChangeEvent], None],
                 project_id: Optional[str] = None):
        self._feed = feed
        self.table = table
        self.callback = callback
        self.project_id = project_id
        self._active = True

    @property
    def active(self) -> bool:
        return self._active

    def matches(self, event: ChangeEvent) -> bool:
        if event.table != self.table:
            return False
        return self.project_id is None or event.project_id == self.project_id

    def unsubscribe(self) -> None:
        # Events already being delivered are dropped once this flips
        self._active = False
        self._feed._remove(self)

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.unsubscribe()


class ChangeFeed:
    def __init__(self):
        self._lock = threading.RLock()
        self._subscriptions: List[Subscription] = []

    def subscribe(self, table: str, callback: Callable[[ChangeEvent], None],
                  project_id: Optional[str] = None) -> Subscription:
        sub = Subscription(self, table, callback, project_id)
        with self._lock:
            self._subscriptions.append(sub)
        logger.debug("subscribed to %s (project_id=%s)", table, project_id)
        return sub

    def _remove(self, sub: Subscription) -> None:
        with self._lock:
            if sub in self._subscriptions:
                self._subscriptions.remove(sub)

    def subscriber_count(self, table: Optional[str] = None) -> int:
        with self._lock:
            return sum(1 for s in self._subscriptions if table is None or s.table == table)

    def publish(self, event: ChangeEvent) -> None:
        with self._lock:
            targets = [s for s in self._subscriptions if s.matches(event)]
            for sub in targets:
                if not sub.active:
                    continue
                try:
                    sub.callback(event)
                except Exception:
                    # The store change is already committed; a broken consumer must not undo it
                    logger.exception("change feed subscriber failed on %s %s", event.table, event.type)

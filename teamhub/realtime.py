"""
Row-level change feed.

Models opt in with ``__feed__ = True`` and a ``to_dict()`` method. Changes are
captured when the session flushes and are only published once the
transaction commits; a rollback discards them. Subscribers pick a table, an
optional set of operations and equality filters on row columns, and read
changes from their own queue (an SSE response drains it).

Delivery is at-least-once from the consumer's point of view (a client that
reconnects re-reads the list endpoint) and ordering across different rows is
not guaranteed, so consumers dedupe by row id. A subscriber whose queue
fills up is dropped: it still drains what was queued, then ``get`` raises
:class:`SubscriptionDropped` so the consumer can tell its client to resync.
"""
from __future__ import annotations

import logging
import queue
import threading
from dataclasses import dataclass, field
from datetime import datetime

from sqlalchemy import event

log = logging.getLogger(__name__)

OPERATIONS = ("INSERT", "UPDATE", "DELETE")
_PENDING_KEY = "teamhub_feed_pending"


class SubscriptionDropped(Exception):
    """The subscriber fell behind and no longer receives changes."""


@dataclass
class Change:
    table: str
    op: str
    row: dict
    at: datetime = field(default_factory=datetime.utcnow)

    def to_dict(self) -> dict:
        return {"table": self.table, "op": self.op, "row": self.row, "at": self.at.isoformat()}


class Subscription:
    def __init__(self, feed: "ChangeFeed", table: str, filters: dict | None = None,
                 ops: tuple[str, ...] = OPERATIONS, maxsize: int = 100):
        self.feed = feed
        self.table = table
        self.filters = dict(filters or {})
        self.ops = tuple(ops)
        self.queue: queue.Queue[Change] = queue.Queue(maxsize=maxsize)
        self.dropped = False

    def matches(self, change: Change) -> bool:
        if change.table != self.table or change.op not in self.ops:
            return False
        return all(change.row.get(k) == v for k, v in self.filters.items())

    def get(self, timeout: float | None = None) -> Change:
        """
        Block for the next change; raises ``queue.Empty`` on timeout and
        ``SubscriptionDropped`` once a dropped subscriber has drained its queue.
        """
        if self.dropped:
            try:
                return self.queue.get_nowait()
            except queue.Empty:
                raise SubscriptionDropped(self.table) from None
        return self.queue.get(timeout=timeout)

    def drain(self) -> list[Change]:
        out = []
        while True:
            try:
                out.append(self.queue.get_nowait())
            except queue.Empty:
                return out

    def close(self) -> None:
        self.feed.unsubscribe(self)

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()


class ChangeFeed:
    def __init__(self):
        self._subscribers: set[Subscription] = set()
        self._lock = threading.Lock()
        self._bound = False

    def init_app(self, app, db) -> None:
        app.extensions["teamhub_feed"] = self
        if self._bound:
            return
        event.listen(db.session, "before_flush", self._collect_deletes)
        event.listen(db.session, "after_flush", self._collect)
        event.listen(db.session, "after_commit", self._flush_pending)
        event.listen(db.session, "after_soft_rollback", self._discard)
        self._bound = True

    # ---- subscriptions ----

    def subscribe(self, table: str, filters: dict | None = None,
                  ops: tuple[str, ...] = OPERATIONS, maxsize: int = 100) -> Subscription:
        sub = Subscription(self, table, filters, ops, maxsize)
        with self._lock:
            self._subscribers.add(sub)
        log.debug("feed subscribe table=%s filters=%s", table, sub.filters)
        return sub

    def unsubscribe(self, sub: Subscription) -> None:
        with self._lock:
            self._subscribers.discard(sub)

    def publish(self, change: Change) -> int:
        """Deliver to matching subscribers, returns how many received it."""
        delivered = 0
        dead = []
        with self._lock:
            for sub in self._subscribers:
                if not sub.matches(change):
                    continue
                try:
                    sub.queue.put_nowait(change)
                    delivered += 1
                except queue.Full:
                    log.warning("feed queue full, dropping subscriber table=%s", sub.table)
                    dead.append(sub)
            for sub in dead:
                sub.dropped = True
                self._subscribers.discard(sub)
        return delivered

    # ---- session hooks ----

    def _collect_deletes(self, session, flush_context, instances) -> None:
        # rows are gone after the flush, so deleted objects are serialized first
        pending = session.info.setdefault(_PENDING_KEY, [])
        for obj in session.deleted:
            if getattr(obj, "__feed__", False):
                pending.append(Change(table=obj.__tablename__, op="DELETE", row=obj.to_dict()))

    def _collect(self, session, flush_context) -> None:
        pending = session.info.setdefault(_PENDING_KEY, [])
        for op, objs in (("INSERT", session.new), ("UPDATE", session.dirty)):
            for obj in objs:
                if not getattr(obj, "__feed__", False):
                    continue
                if op == "UPDATE" and not session.is_modified(obj, include_collections=False):
                    continue
                pending.append(Change(table=obj.__tablename__, op=op, row=obj.to_dict()))

    def _flush_pending(self, session) -> None:
        pending = session.info.pop(_PENDING_KEY, [])
        for change in pending:
            self.publish(change)

    def _discard(self, session, previous_transaction) -> None:
        session.info.pop(_PENDING_KEY, None)

# teamhub/services/inbox.py
from __future__ import annotations

import logging
from collections import deque

log = logging.getLogger(__name__)


class NotificationInbox:
    """
    Consumer state for one user's notification stream.

    Delivery is at-least-once and unordered, so events are keyed by id:
    a repeat of a known notification never bumps the unread counter twice,
    and a late "read" copy of an unread one lowers it.

    The inbox is seeded with one page of rows. ``unread_total`` is the
    user's real unread count; the unread rows older than that page are
    tallied apart so the counter stays exact.
    """

    def __init__(self, items=None, max_alerts: int = 20, unread_total: int | None = None):
        self._items: dict[int, dict] = {}
        self.alerts: deque[str] = deque(maxlen=max_alerts)
        for row in items or ():
            self._items[row["id"]] = dict(row)
        self._unread_beyond = 0
        if unread_total is not None:
            self._unread_beyond = max(unread_total - self._unread_loaded(), 0)

    def _unread_loaded(self) -> int:
        return sum(1 for n in self._items.values() if not n.get("read_at"))

    @property
    def unread(self) -> int:
        return self._unread_beyond + self._unread_loaded()

    def _forget_beyond(self) -> None:
        if self._unread_beyond:
            self._unread_beyond -= 1

    def items(self) -> list[dict]:
        return sorted(self._items.values(), key=lambda n: (n.get("created_at") or "", n["id"]), reverse=True)

    def receive(self, row: dict, op: str = "INSERT") -> bool:
        """Apply an inserted/updated notification row. Returns True when it was new."""
        nid = row.get("id")
        if nid is None:
            log.warning("inbox: dropping notification without id")
            return False
        known = self._items.get(nid)
        if known is None and op == "UPDATE":
            # an unread row from beyond the loaded page (only unread rows get updated)
            self._forget_beyond()
            self._items[nid] = dict(row)
            return False
        if known is None:
            self._items[nid] = dict(row)
            if not row.get("read_at"):
                message = (row.get("payload") or {}).get("message")
                if message:
                    self.alerts.append(message)
            return True
        # keep the read mark once seen; read_at never goes back to NULL
        merged = {**known, **row}
        if known.get("read_at") and not row.get("read_at"):
            merged["read_at"] = known["read_at"]
        self._items[nid] = merged
        return False

    def remove(self, notification_id: int, row: dict | None = None) -> None:
        known = self._items.pop(notification_id, None)
        if known is None and row is not None and not row.get("read_at"):
            self._forget_beyond()

    def mark_read(self, notification_id: int, read_at: str) -> None:
        n = self._items.get(notification_id)
        if n is not None and not n.get("read_at"):
            n["read_at"] = read_at

    def pop_alerts(self) -> list[str]:
        out = list(self.alerts)
        self.alerts.clear()
        return out

"""Local view over a table kept in sync from two sources.

A ``Projection`` receives full rows from REST snapshots and row events from
the change feed. Both go through the same reducer, which keys rows by
primary key and orders writes by each row's ``updated_at`` so a late,
stale write never replaces a newer one.
"""
import logging
import threading
from datetime import datetime
from typing import Any, Callable, Dict, Iterable, List, Optional

from gatsishub.realtime.feed import DELETE, INSERT, UPDATE, ChangeEvent, ChangeFeed, Subscription

logger = logging.getLogger(__name__)


def parse_version(value) -> Optional[datetime]:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return (value - value.utcoffset()).replace(tzinfo=None) if value.tzinfo else value
    try:
        parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    except ValueError:
        logger.warning("Unparseable row version %r", value)
        return None
    # compare everything as naive UTC
    if parsed.tzinfo is not None:
        parsed = (parsed - parsed.utcoffset()).replace(tzinfo=None)
    return parsed


class Projection:
    """Reducer keyed by primary key.

    ``page_size`` turns the projection into a single page of the newest
    rows (by ``sort_field``): inserts land in sorted position and anything
    past the page is dropped.
    """

    def __init__(
        self,
        key_field: str = "id",
        version_field: str = "updated_at",
        sort_field: str = "created_at",
        page_size: Optional[int] = None,
        on_change: Optional[Callable[["Projection", Dict[str, Any]], None]] = None,
    ):
        self.key_field = key_field
        self.version_field = version_field
        self.sort_field = sort_field
        self.page_size = page_size
        self.on_change = on_change
        self._rows: Dict[Any, Dict[str, Any]] = {}
        self._tombstones: Dict[Any, Optional[datetime]] = {}
        self._lock = threading.RLock()

    def _version(self, row: Dict[str, Any]) -> Optional[datetime]:
        return parse_version(row.get(self.version_field))

    def _is_stale(self, pk, version: Optional[datetime]) -> bool:
        if pk in self._tombstones:
            dead = self._tombstones[pk]
            # a delete outranks any write that is not strictly newer
            if dead is None or version is None or version <= dead:
                return True
        current = self._rows.get(pk)
        if current is not None:
            have = self._version(current)
            if have is not None and version is not None and version < have:
                return True
        return False

    def upsert(self, row: Dict[str, Any]) -> bool:
        pk = row.get(self.key_field)
        if pk is None:
            return False
        with self._lock:
            version = self._version(row)
            if self._is_stale(pk, version):
                logger.debug("Ignoring stale row %s version=%s", pk, version)
                return False
            self._tombstones.pop(pk, None)
            self._rows[pk] = dict(row)
            self._trim()
            return pk in self._rows

    def remove(self, row: Dict[str, Any]) -> bool:
        pk = row.get(self.key_field)
        if pk is None:
            return False
        with self._lock:
            version = self._version(row)
            current = self._rows.pop(pk, None)
            if current is not None:
                have = self._version(current)
                if version is None or (have is not None and have > version):
                    version = have
            previous = self._tombstones.get(pk)
            if previous is None or version is None or version > previous:
                self._tombstones[pk] = version
            return current is not None

    def apply(self, evt) -> bool:
        """Apply a change event (``ChangeEvent`` or its dict form); returns True if the view changed."""
        if isinstance(evt, ChangeEvent):
            evt = evt.as_dict()
        kind = evt.get("event_type")
        if kind in (INSERT, UPDATE):
            changed = self.upsert(evt.get("new") or {})
        elif kind == DELETE:
            changed = self.remove(evt.get("old") or {})
        else:
            logger.warning("Unknown change event type %r", kind)
            return False
        if changed and self.on_change is not None:
            self.on_change(self, evt)
        return changed

    __call__ = apply

    def apply_snapshot(self, rows: Iterable[Dict[str, Any]]) -> int:
        """Merge rows fetched over REST; returns how many were accepted."""
        accepted = 0
        for row in rows:
            if self.upsert(row):
                accepted += 1
        return accepted

    def _sort_key(self, row):
        return parse_version(row.get(self.sort_field)) or datetime.min

    def _trim(self) -> None:
        if self.page_size is None or len(self._rows) <= self.page_size:
            return
        ordered = sorted(self._rows.values(), key=self._sort_key, reverse=True)
        for row in ordered[self.page_size:]:
            self._rows.pop(row[self.key_field], None)

    def rows(self) -> List[Dict[str, Any]]:
        with self._lock:
            return sorted(self._rows.values(), key=self._sort_key, reverse=True)

    def keys(self) -> set:
        with self._lock:
            return set(self._rows)

    def get(self, pk) -> Optional[Dict[str, Any]]:
        with self._lock:
            return self._rows.get(pk)

    def __contains__(self, pk) -> bool:
        return pk in self._rows

    def __len__(self) -> int:
        return len(self._rows)


def watch(feed: ChangeFeed, table: str, key, projection: Projection) -> Subscription:
    """Feed ``table`` changes (optionally only those for ``key``) into ``projection``.

    The returned subscription is a context manager; leaving it unsubscribes.
    """
    return feed.subscribe(table, key, projection.apply)

"""In-process change feed.

Row changes are captured from SQLAlchemy sessions at flush time and
published once the transaction commits, first to the table's unfiltered
channel (admin views) and then to the channel keyed by the row's owner
column (customer views).
"""
import logging
import threading
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Tuple

from pydantic_core import to_jsonable_python
from sqlalchemy import event, inspect
from sqlmodel import Session, SQLModel

from gatsishub.models.common import utcnow

logger = logging.getLogger(__name__)

INSERT = "INSERT"
UPDATE = "UPDATE"
DELETE = "DELETE"

# table -> column whose value selects the keyed channel
FEED_KEYS = {
    "orders": "customer_id",
    "payments": "order_id",
    "messages": "customer_id",
}

_PENDING = "gatsishub_pending_changes"


@dataclass
class ChangeEvent:
    event_type: str
    table: str
    new: Optional[Dict[str, Any]] = None
    old: Optional[Dict[str, Any]] = None
    commit_timestamp: str = field(default_factory=lambda: utcnow().isoformat())

    @property
    def row(self) -> Dict[str, Any]:
        return self.new if self.new is not None else (self.old or {})

    def as_dict(self) -> Dict[str, Any]:
        return {
            "event_type": self.event_type,
            "table": self.table,
            "old": self.old,
            "new": self.new,
            "commit_timestamp": self.commit_timestamp,
        }


Listener = Callable[[ChangeEvent], None]


class Channel:
    def __init__(self, table: str, key: Optional[str] = None):
        self.table = table
        self.key = key
        self.listeners: List[Listener] = []

    def __repr__(self):
        return f"<Channel {self.table}:{self.key or '*'} listeners={len(self.listeners)}>"


class Subscription:
    def __init__(self, feed: "ChangeFeed", channel: Channel, callback: Listener):
        self.feed = feed
        self.channel = channel
        self.callback = callback
        self.active = True

    def unsubscribe(self) -> None:
        if self.active:
            self.active = False
            self.feed._release(self)

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.unsubscribe()
        return False


class ChangeFeed:
    """Per-(table, key) fan-out of ``ChangeEvent`` objects.

    At most one channel exists for each (table, key) pair; it is dropped
    when its last subscriber leaves. Delivery is synchronous, in the order
    events are published.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._channels: Dict[Tuple[str, Optional[str]], Channel] = {}

    @staticmethod
    def _normalize(key) -> Optional[str]:
        return None if key is None else str(key)

    def _open(self, ident) -> Channel:
        # caller holds _lock
        ch = self._channels.get(ident)
        if ch is None:
            ch = Channel(*ident)
            self._channels[ident] = ch
            logger.debug("Opened channel %s", ch)
        return ch

    def channel(self, table: str, key=None) -> Channel:
        with self._lock:
            return self._open((table, self._normalize(key)))

    def subscribe(self, table: str, key, callback: Listener) -> Subscription:
        with self._lock:
            ch = self._open((table, self._normalize(key)))
            ch.listeners.append(callback)
        return Subscription(self, ch, callback)

    def _release(self, sub: Subscription) -> None:
        ch = sub.channel
        with self._lock:
            try:
                ch.listeners.remove(sub.callback)
            except ValueError:
                pass
            if not ch.listeners and self._channels.get((ch.table, ch.key)) is ch:
                del self._channels[(ch.table, ch.key)]
                logger.debug("Released channel %s", ch)

    def channels(self) -> List[Tuple[str, Optional[str]]]:
        with self._lock:
            return list(self._channels)

    def publish(self, evt: ChangeEvent) -> None:
        targets = [(evt.table, None)]
        key_column = FEED_KEYS.get(evt.table)
        if key_column:
            # an update that moves a row between owners reaches both
            for row in (evt.new, evt.old):
                value = (row or {}).get(key_column)
                if value is not None and (evt.table, str(value)) not in targets:
                    targets.append((evt.table, str(value)))

        with self._lock:
            listeners = [
                cb for ident in targets
                for cb in (self._channels[ident].listeners if ident in self._channels else [])
            ]

        for cb in listeners:
            try:
                cb(evt)
            except Exception as e:
                logger.exception("Change listener failed for %s %s: %s", evt.table, evt.event_type, e)

    def clear(self) -> None:
        with self._lock:
            self._channels.clear()


feed = ChangeFeed()


def row_to_dict(obj) -> Dict[str, Any]:
    mapper = inspect(obj).mapper
    return to_jsonable_python({attr.key: getattr(obj, attr.key) for attr in mapper.column_attrs})


def _previous_row(obj) -> Dict[str, Any]:
    state = inspect(obj)
    values = {}
    for attr in state.mapper.column_attrs:
        hist = state.attrs[attr.key].history
        if hist.deleted:
            values[attr.key] = hist.deleted[0]
        else:
            values[attr.key] = getattr(obj, attr.key)
    return to_jsonable_python(values)


def _collect(session, flush_context):
    pending = session.info.setdefault(_PENDING, [])
    for obj in session.new:
        if isinstance(obj, SQLModel):
            pending.append(ChangeEvent(INSERT, obj.__tablename__, new=row_to_dict(obj)))
    for obj in session.dirty:
        if isinstance(obj, SQLModel) and session.is_modified(obj, include_collections=False):
            pending.append(ChangeEvent(UPDATE, obj.__tablename__, new=row_to_dict(obj), old=_previous_row(obj)))
    for obj in session.deleted:
        if isinstance(obj, SQLModel):
            pending.append(ChangeEvent(DELETE, obj.__tablename__, old=row_to_dict(obj)))


def _discard(session, previous_transaction=None):
    session.info.pop(_PENDING, None)


_target: Optional[ChangeFeed] = None


def _publish(session):
    changes = session.info.pop(_PENDING, None)
    if not changes or _target is None:
        return
    stamp = utcnow().isoformat()
    for evt in changes:
        evt.commit_timestamp = stamp
        _target.publish(evt)


def capture_changes(target: ChangeFeed = feed) -> None:
    """Publish committed row changes from every ``sqlmodel.Session`` to ``target``."""
    global _target
    first = _target is None
    _target = target
    if not first:
        return

    event.listen(Session, "after_flush", _collect)
    event.listen(Session, "after_commit", _publish)
    event.listen(Session, "after_soft_rollback", _discard)

# review/notifications.py
"""
Change feed for the `exercises` and `locks` tables.

Every change gets a sequence number and lands in a bounded backlog that
HTTP clients poll with a cursor (`events_since` / `wait_for_events`).

Backends (REVIEW_CHANGE_BACKEND):
  - redis: sequence, backlog and wake-ups live in Redis, so a change made by
    one worker reaches clients polling any other worker.
  - local: kept in this process (runserver, tests).

Callbacks registered with `subscribe(table, events, callback)` run
synchronously for the changes published by this process.
"""
from __future__ import annotations

import datetime as dt
import json
import logging
import threading
import time
from collections import deque
from dataclasses import dataclass
from typing import Any, Callable, Deque, FrozenSet, Iterable, List, Optional, Tuple, Union

import redis
from django.conf import settings
from django.core.exceptions import ImproperlyConfigured
from django.utils import timezone

logger = logging.getLogger(__name__)

INSERT = "INSERT"
UPDATE = "UPDATE"
DELETE = "DELETE"
ALL_EVENTS: FrozenSet[str] = frozenset({INSERT, UPDATE, DELETE})


@dataclass(frozen=True)
class ChangeEvent:
    seq: int
    table: str
    event: str
    pk: Any
    at: dt.datetime

    def as_dict(self):
        return {"seq": self.seq, "table": self.table, "event": self.event, "pk": self.pk, "at": self.at}


def _event_mask(events: Union[str, Iterable[str]]) -> FrozenSet[str]:
    if events == "*":
        return ALL_EVENTS
    if isinstance(events, str):
        events = [events]
    mask = frozenset(e.upper() for e in events)
    unknown = mask - ALL_EVENTS
    if unknown:
        raise ValueError(f"unknown event(s): {', '.join(sorted(unknown))}")
    return mask


class LocalChangeLog:
    """Sequence and backlog held by this process."""

    def __init__(self, backlog: int):
        self._cond = threading.Condition()
        self._events: Deque[ChangeEvent] = deque(maxlen=backlog)
        self._seq = 0

    def append(self, table: str, event: str, pk: Any) -> ChangeEvent:
        with self._cond:
            self._seq += 1
            change = ChangeEvent(seq=self._seq, table=table, event=event, pk=pk, at=timezone.now())
            self._events.append(change)
            self._cond.notify_all()
        return change

    def bounds(self) -> Tuple[Optional[int], int]:
        with self._cond:
            return (self._events[0].seq if self._events else None), self._seq

    def since(self, cursor: int) -> List[ChangeEvent]:
        with self._cond:
            return [e for e in self._events if e.seq > cursor]

    def wait(self, cursor: int, timeout: float) -> List[ChangeEvent]:
        with self._cond:
            if timeout > 0:
                self._cond.wait_for(lambda: self._seq > cursor, timeout=timeout)
            return [e for e in self._events if e.seq > cursor]


class RedisChangeLog:
    """
    Sequence, backlog and wake-ups shared by every worker.

    Keys:
      <prefix>:seq     latest sequence number
      <prefix>:log     capped list of events, oldest first
      <prefix>:events  pub/sub channel announcing each new sequence number

    INCR, RPUSH and LTRIM run in one MULTI block: the last list item always
    carries the value of <prefix>:seq, so positions map back to sequence numbers.
    """

    def __init__(self, client: redis.Redis, backlog: int, prefix: str = "review:changes"):
        self.client = client
        self.backlog = backlog
        self.seq_key = f"{prefix}:seq"
        self.log_key = f"{prefix}:log"
        self.channel = f"{prefix}:events"

    def append(self, table: str, event: str, pk: Any) -> ChangeEvent:
        at = timezone.now()
        payload = json.dumps({"table": table, "event": event, "pk": pk, "at": at.isoformat()})
        pipe = self.client.pipeline(transaction=True)
        pipe.incr(self.seq_key)
        pipe.rpush(self.log_key, payload)
        pipe.ltrim(self.log_key, -self.backlog, -1)
        seq = int(pipe.execute()[0])
        self.client.publish(self.channel, seq)
        return ChangeEvent(seq=seq, table=table, event=event, pk=pk, at=at)

    def bounds(self) -> Tuple[Optional[int], int]:
        pipe = self.client.pipeline(transaction=True)
        pipe.get(self.seq_key)
        pipe.llen(self.log_key)
        latest, size = pipe.execute()
        latest = int(latest or 0)
        return (latest - size + 1 if size else None), latest

    def since(self, cursor: int) -> List[ChangeEvent]:
        pipe = self.client.pipeline(transaction=True)
        pipe.get(self.seq_key)
        pipe.lrange(self.log_key, 0, -1)
        latest, raw = pipe.execute()
        first = int(latest or 0) - len(raw) + 1
        out = []
        for i, item in enumerate(raw):
            seq = first + i
            if seq <= cursor:
                continue
            data = json.loads(item)
            out.append(ChangeEvent(
                seq=seq,
                table=data["table"],
                event=data["event"],
                pk=data["pk"],
                at=dt.datetime.fromisoformat(data["at"]),
            ))
        return out

    def wait(self, cursor: int, timeout: float) -> List[ChangeEvent]:
        events = self.since(cursor)
        if events or timeout <= 0:
            return events

        pubsub = self.client.pubsub(ignore_subscribe_messages=True)
        try:
            pubsub.subscribe(self.channel)
            deadline = time.monotonic() + timeout
            # Re-read once subscribed: a publish may have landed in between.
            events = self.since(cursor)
            while not events:
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    break
                pubsub.get_message(timeout=remaining)
                events = self.since(cursor)
        finally:
            pubsub.close()
        return events


class Subscription:
    def __init__(self, hub: "ChangeHub", table: str, events: FrozenSet[str], callback: Callable[[ChangeEvent], None]):
        self._hub = hub
        self.table = table
        self.events = events
        self.callback = callback

    def matches(self, change: ChangeEvent) -> bool:
        return change.table == self.table and change.event in self.events

    @property
    def active(self) -> bool:
        return self._hub.is_subscribed(self)

    def unsubscribe(self) -> None:
        self._hub.unsubscribe(self)


class ChangeHub:
    """
    Publishes changes to the feed and fans them out to local subscribers.
    Pass a redis client to share the feed between workers.
    """

    def __init__(self, backlog: int = 500, *, client: Optional[redis.Redis] = None, prefix: str = "review:changes"):
        self._lock = threading.Lock()
        self._subscriptions: List[Subscription] = []
        if client is not None:
            self._log: Union[LocalChangeLog, RedisChangeLog] = RedisChangeLog(client, backlog, prefix)
        else:
            self._log = LocalChangeLog(backlog)

    @property
    def shared(self) -> bool:
        return isinstance(self._log, RedisChangeLog)

    @property
    def cursor(self) -> int:
        """Sequence number of the latest published event (0 when none yet)."""
        return self._log.bounds()[1]

    def needs_reset(self, cursor: int) -> bool:
        """
        True when `cursor` cannot be served incrementally: it is ahead of the
        feed (restart, flushed store) or older than the oldest buffered event.
        """
        oldest, latest = self._log.bounds()
        if cursor > latest:
            return True
        if oldest is None:
            return cursor < latest
        return cursor < oldest - 1

    def subscribe(
        self,
        table: str,
        events: Union[str, Iterable[str]],
        callback: Callable[[ChangeEvent], None],
    ) -> Subscription:
        sub = Subscription(self, table, _event_mask(events), callback)
        with self._lock:
            self._subscriptions.append(sub)
        return sub

    def unsubscribe(self, sub: Subscription) -> None:
        with self._lock:
            if sub in self._subscriptions:
                self._subscriptions.remove(sub)

    def is_subscribed(self, sub: Subscription) -> bool:
        with self._lock:
            return sub in self._subscriptions

    def publish(self, table: str, event: str, pk: Any) -> Optional[ChangeEvent]:
        try:
            change = self._log.append(table, event, pk)
        except redis.RedisError:
            logger.exception("CHANGE_PUBLISH_FAILED table=%s event=%s pk=%s", table, event, pk)
            return None

        with self._lock:
            targets = [s for s in self._subscriptions if s.matches(change)]
        # Callbacks run outside the lock so they may publish or unsubscribe.
        for sub in targets:
            try:
                sub.callback(change)
            except Exception:
                logger.exception("CHANGE_CALLBACK_FAILED table=%s seq=%s", table, change.seq)
        return change

    def events_since(self, cursor: int) -> List[ChangeEvent]:
        return self._log.since(cursor)

    def wait_for_events(self, cursor: int, timeout: float) -> List[ChangeEvent]:
        """Block up to `timeout` seconds until something newer than `cursor` is published."""
        return self._log.wait(cursor, timeout)


def _build_hub(client: Optional[redis.Redis] = None) -> ChangeHub:
    backend = settings.REVIEW_CHANGE_BACKEND
    if client is None and backend == "redis":
        client = redis.Redis.from_url(
            settings.REVIEW_REDIS_URL,
            decode_responses=True,
            socket_timeout=5,
            socket_connect_timeout=5,
        )
    elif client is None and backend != "local":
        raise ImproperlyConfigured(f"REVIEW_CHANGE_BACKEND must be redis|local, not {backend!r}")
    return ChangeHub(
        backlog=settings.REVIEW_CHANGE_BACKLOG,
        client=client,
        prefix=settings.REVIEW_CHANGE_KEY_PREFIX,
    )


_hub: Optional[ChangeHub] = None
_hub_lock = threading.Lock()


def get_hub() -> ChangeHub:
    global _hub
    with _hub_lock:
        if _hub is None:
            _hub = _build_hub()
        return _hub


def reset_hub(client: Optional[redis.Redis] = None) -> ChangeHub:
    """
    Rebuild this process's hub and drop its subscriptions (tests, process reload).
    A local backlog is discarded; a Redis backlog is shared and stays.
    """
    global _hub
    with _hub_lock:
        _hub = _build_hub(client)
        return _hub

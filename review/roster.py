# review/roster.py
from __future__ import annotations

import logging
from typing import Callable, Dict, List, Optional

from django.utils import timezone

from accounts.models import display_name

from .locks import lock_state
from .models import Exercise
from .notifications import ChangeEvent, ChangeHub, get_hub

logger = logging.getLogger(__name__)

DEFAULT_LIMIT = 50
ROSTER_TABLES = ("exercises", "locks")


def build_roster(user, status: Optional[str] = None, query: Optional[str] = None, limit: int = DEFAULT_LIMIT) -> List[Dict]:
    """Exercises ordered by id, each joined with its editing lock (if any)."""
    now = timezone.now()
    qs = Exercise.objects.select_related("lock", "lock__holder", "lock__holder__profile").order_by("id")
    if status:
        qs = qs.filter(status=status)
    if query:
        qs = qs.filter(content__question__icontains=query)

    rows = []
    for ex in qs[:limit]:
        content = ex.content or {}
        lock = getattr(ex, "lock", None)
        rows.append({
            "id": ex.pk,
            "question": content.get("question", ""),
            "level": content.get("level", ""),
            "topic": content.get("topic", ""),
            "status": ex.status,
            "version": ex.version,
            "updated_at": ex.updated_at,
            "lock": None if lock is None else {
                "holder": lock.holder_id,
                "holder_name": display_name(lock.holder),
                "claimed_at": lock.claimed_at,
                "state": lock_state(lock, now),
                "is_mine": lock.holder_id == user.pk,
            },
        })
    return rows


class RosterWatcher:
    """
    Keeps a roster snapshot in sync with exercise and lock changes.
    Every event triggers a full re-fetch (broadcast fan-out, small tables).
    """

    def __init__(
        self,
        user,
        on_refresh: Optional[Callable[[List[Dict], ChangeEvent], None]] = None,
        *,
        status: Optional[str] = None,
        query: Optional[str] = None,
        limit: int = DEFAULT_LIMIT,
        hub: Optional[ChangeHub] = None,
    ):
        self.user = user
        self.on_refresh = on_refresh
        self.status = status
        self.query = query
        self.limit = limit
        self.refreshes = 0
        self.roster = self._fetch()
        hub = hub or get_hub()
        self._subscriptions = [hub.subscribe(table, "*", self._refresh) for table in ROSTER_TABLES]

    def _fetch(self) -> List[Dict]:
        return build_roster(self.user, status=self.status, query=self.query, limit=self.limit)

    def _refresh(self, change: ChangeEvent) -> None:
        self.roster = self._fetch()
        self.refreshes += 1
        logger.debug("ROSTER_REFRESH user=%s cause=%s/%s seq=%s", self.user.pk, change.table, change.event, change.seq)
        if self.on_refresh is not None:
            self.on_refresh(self.roster, change)

    def close(self) -> None:
        for sub in self._subscriptions:
            sub.unsubscribe()
        self._subscriptions = []

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()
        return False

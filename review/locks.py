# review/locks.py
"""
Advisory editing locks.

One row per exercise in `locks` (unique on exercise). Acquisition is an
insert-if-absent; a second claimant is denied unless the current row is
stale, i.e. its holder stopped sending heartbeats for longer than
REVIEW_LOCK_STALE_AFTER_SECONDS. Locks never block writes to the exercise
itself: `services.transition` checks the holder explicitly.
"""
from __future__ import annotations

import datetime as dt
import logging
from dataclasses import dataclass
from typing import Dict, Optional

from django.conf import settings
from django.db import IntegrityError, transaction
from django.utils import timezone

from accounts.models import display_name, is_admin

from .exceptions import LockDenied, NotFound, ReviewError, translate_store_errors
from .models import EditingLock, Exercise

logger = logging.getLogger(__name__)

ACTIVE = "active"
STALE = "stale"


@dataclass(frozen=True)
class LockGrant:
    exercise_id: int
    holder_id: int
    claimed_at: dt.datetime
    renewed: bool = False                      # caller already held it
    taken_over_from: Optional[int] = None      # previous holder of a stale lock

    def as_dict(self) -> Dict:
        return {
            "exercise_id": self.exercise_id,
            "holder": self.holder_id,
            "claimed_at": self.claimed_at,
            "renewed": self.renewed,
            "taken_over_from": self.taken_over_from,
            "heartbeat_seconds": settings.REVIEW_LOCK_HEARTBEAT_SECONDS,
            "stale_after_seconds": settings.REVIEW_LOCK_STALE_AFTER_SECONDS,
        }


def stale_after() -> dt.timedelta:
    return dt.timedelta(seconds=settings.REVIEW_LOCK_STALE_AFTER_SECONDS)


def lock_state(lock: EditingLock, now: Optional[dt.datetime] = None) -> str:
    """Tagged state of a lock row: `active` or `stale` (computed from now - claimed_at)."""
    now = now or timezone.now()
    return STALE if now - lock.claimed_at >= stale_after() else ACTIVE


def denied(lock: EditingLock, detail: Optional[str] = None) -> LockDenied:
    return LockDenied(
        detail,
        holder_id=lock.holder_id,
        holder_name=display_name(lock.holder),
        claimed_at=lock.claimed_at,
    )


def _grant(lock: EditingLock, **extra) -> LockGrant:
    return LockGrant(
        exercise_id=lock.exercise_id,
        holder_id=lock.holder_id,
        claimed_at=lock.claimed_at,
        **extra,
    )


def _locked_row(exercise_id: int) -> Optional[EditingLock]:
    return (
        EditingLock.objects.select_for_update()
        .select_related("holder")
        .filter(exercise_id=exercise_id)
        .first()
    )


def acquire(exercise_id: int, user) -> LockGrant:
    """
    Claim the editing lock on an exercise.
    - Free: insert a new row.
    - Held by `user`: refresh claimed_at (re-entrant).
    - Held by someone else: LockDenied, unless the row is stale (then taken over).
    """
    with translate_store_errors("acquire lock"):
        if not Exercise.objects.filter(pk=exercise_id).exists():
            raise NotFound(f"Exercise {exercise_id} not found.")

        now = timezone.now()
        try:
            with transaction.atomic():
                lock = EditingLock.objects.create(exercise_id=exercise_id, holder=user, claimed_at=now)
            logger.info("LOCK_GRANTED exercise=%s holder=%s", exercise_id, user.pk)
            return _grant(lock)
        except IntegrityError:
            # Unique constraint hit: somebody holds a row, inspect it.
            pass

        with transaction.atomic():
            lock = _locked_row(exercise_id)
            if lock is None:
                # Released between the insert attempt and the read.
                lock = EditingLock.objects.create(exercise_id=exercise_id, holder=user, claimed_at=now)
                logger.info("LOCK_GRANTED exercise=%s holder=%s", exercise_id, user.pk)
                return _grant(lock)

            if lock.holder_id == user.pk:
                lock.claimed_at = now
                lock.save(update_fields=["claimed_at"])
                logger.debug("LOCK_RENEWED exercise=%s holder=%s", exercise_id, user.pk)
                return _grant(lock, renewed=True)

            if lock_state(lock, now) == STALE:
                previous = lock.holder_id
                lock.holder = user
                lock.claimed_at = now
                lock.save(update_fields=["holder", "claimed_at"])
                logger.warning(
                    "LOCK_TAKEOVER exercise=%s holder=%s previous=%s reason=stale",
                    exercise_id, user.pk, previous,
                )
                return _grant(lock, taken_over_from=previous)

            logger.info("LOCK_DENIED exercise=%s requester=%s holder=%s", exercise_id, user.pk, lock.holder_id)
            raise denied(lock)


def heartbeat(exercise_id: int, user) -> LockGrant:
    """Holder re-asserts its claim so the lock does not turn stale."""
    with translate_store_errors("renew lock"), transaction.atomic():
        lock = _locked_row(exercise_id)
        if lock is None:
            raise NotFound(f"No editing lock on exercise {exercise_id}.")
        if lock.holder_id != user.pk:
            raise denied(lock, "Editing lock now belongs to another validator.")
        lock.claimed_at = timezone.now()
        lock.save(update_fields=["claimed_at"])
    return _grant(lock, renewed=True)


def release(exercise_id: int, user, *, force: bool = False) -> bool:
    """
    Delete the lock row. Only the holder may release, or an admin with force=True.
    Returns False when there was nothing to release.
    """
    with translate_store_errors("release lock"), transaction.atomic():
        lock = _locked_row(exercise_id)
        if lock is None:
            return False
        if lock.holder_id != user.pk and not (force and is_admin(user)):
            raise denied(lock, "Only the holder (or an admin with force) can release this lock.")
        holder_id = lock.holder_id
        lock.delete()
    if holder_id != user.pk:
        logger.warning("LOCK_FORCE_RELEASED exercise=%s holder=%s by=%s", exercise_id, holder_id, user.pk)
    else:
        logger.info("LOCK_RELEASED exercise=%s holder=%s", exercise_id, holder_id)
    return True


def release_quietly(exercise_id: int, user) -> bool:
    """Best-effort release for page unload; failures are logged, never raised."""
    try:
        return release(exercise_id, user)
    except ReviewError as e:
        logger.warning("LOCK_RELEASE_SKIPPED exercise=%s user=%s reason=%s", exercise_id, user.pk, e.detail)
        return False


def holder_of(exercise_id: int) -> Optional[EditingLock]:
    return EditingLock.objects.select_related("holder").filter(exercise_id=exercise_id).first()


def list_active_locks(now: Optional[dt.datetime] = None) -> Dict[int, Dict]:
    """exercise_id -> {holder, holder_name, claimed_at, state} for every lock row."""
    now = now or timezone.now()
    out: Dict[int, Dict] = {}
    qs = EditingLock.objects.select_related("holder", "holder__profile").order_by("exercise_id")
    for lock in qs:
        out[lock.exercise_id] = {
            "holder": lock.holder_id,
            "holder_name": display_name(lock.holder),
            "claimed_at": lock.claimed_at,
            "state": lock_state(lock, now),
        }
    return out

# review/stats.py
from __future__ import annotations

import datetime as dt
from collections import Counter
from typing import Dict, List, Optional

import pytz
from django.conf import settings
from django.db.models import Count
from django.utils import timezone
from django.utils.dateparse import parse_datetime

from .models import AuditLogEntry, Exercise, ExerciseStatus

GRANULARITIES = ("hour", "day", "month")


def exercise_counts() -> Dict:
    """
    Status counts for the overview page.
    When REVIEW_EXPECTED_TOTAL is set, exercises not ingested yet count as pending
    and `total` is the expected corpus size.
    """
    counts = {s: 0 for s in ExerciseStatus.values}
    for row in Exercise.objects.values("status").annotate(n=Count("id")):
        counts[row["status"]] = row["n"]

    ingested = sum(counts.values())
    total = ingested
    expected = getattr(settings, "REVIEW_EXPECTED_TOTAL", None)
    if expected and expected > ingested:
        counts[ExerciseStatus.PENDING] += expected - ingested
        total = expected

    progress = round(counts[ExerciseStatus.VALIDATED] * 100.0 / total, 1) if total else 0.0
    return {
        "total": total,
        "ingested": ingested,
        "pending": counts[ExerciseStatus.PENDING],
        "validated": counts[ExerciseStatus.VALIDATED],
        "rejected": counts[ExerciseStatus.REJECTED],
        "progress": progress,
    }


def to_aware_utc(x: str | dt.datetime) -> dt.datetime:
    """Parse an ISO string or datetime into a tz-aware datetime in UTC."""
    if isinstance(x, str):
        d = parse_datetime(x)
        if d is None:
            raise ValueError("from/to must be ISO-8601")
    elif isinstance(x, dt.datetime):
        d = x
    else:
        raise TypeError("datetime must be str or datetime")
    if timezone.is_naive(d):
        d = timezone.make_aware(d, dt.timezone.utc)
    return d.astimezone(dt.timezone.utc)


def _floor_local(d: dt.datetime, granularity: str, tz) -> dt.datetime:
    """Floor a datetime to the bucket start at the given granularity in the local timezone (pytz zone)."""
    ld = d.astimezone(tz)
    if granularity == "hour":
        return ld.replace(minute=0, second=0, microsecond=0)
    if granularity == "day":
        return tz.localize(ld.replace(hour=0, minute=0, second=0, microsecond=0, tzinfo=None))
    if granularity == "month":
        return tz.localize(ld.replace(day=1, hour=0, minute=0, second=0, microsecond=0, tzinfo=None))
    raise ValueError("granularity must be hour|day|month")


def _step_local(d: dt.datetime, granularity: str, tz) -> dt.datetime:
    """Advance by one bucket in the local timezone (DST-safe: wall-clock days and months)."""
    if granularity == "hour":
        return (d + dt.timedelta(hours=1)).astimezone(tz)
    naive = d.replace(tzinfo=None)
    if granularity == "day":
        return tz.localize(naive + dt.timedelta(days=1))
    if granularity == "month":
        year = naive.year + (1 if naive.month == 12 else 0)
        month = 1 if naive.month == 12 else naive.month + 1
        return tz.localize(naive.replace(year=year, month=month, day=1))
    raise ValueError("granularity must be hour|day|month")


def _iter_bucket_starts(
    from_utc: dt.datetime, to_utc: dt.datetime, granularity: str, tz: dt.tzinfo, limit: Optional[int] = None
) -> List[dt.datetime]:
    """Local bucket starts covering [from, to) (right-open interval), at most `limit` of them."""
    start_local = _floor_local(from_utc, granularity, tz)
    out: List[dt.datetime] = []
    cur = start_local
    while cur < to_utc:
        if limit is not None and len(out) >= limit:
            raise ValueError(f"window spans more than {limit} {granularity} buckets; narrow it or use a coarser granularity")
        out.append(cur)
        cur = _step_local(cur, granularity, tz)
    return out


def summarize_activity(
    dt_from: str | dt.datetime,
    dt_to: str | dt.datetime,
    *,
    granularity: str,
    tz: str,
    user_id: Optional[int] = None,
) -> List[Dict]:
    """
    Count review actions (audit entries) per local-time bucket over [from, to).

    Rules:
      1) Entries are assigned to buckets by the local-time view of their timestamp.
      2) Every bucket in the window is returned, including empty ones.
      3) `actions` breaks the bucket total down by action (exercise_validated, ...).
      4) More than REVIEW_ACTIVITY_MAX_BUCKETS buckets is a ValueError.
    """
    if granularity not in GRANULARITIES:
        raise ValueError("granularity must be hour|day|month")

    tzinfo = pytz.timezone(tz)
    f_utc = to_aware_utc(dt_from)
    t_utc = to_aware_utc(dt_to)
    if f_utc >= t_utc:
        return []

    bucket_starts_local = _iter_bucket_starts(
        f_utc, t_utc, granularity, tzinfo, limit=settings.REVIEW_ACTIVITY_MAX_BUCKETS
    )
    idx: Dict[dt.datetime, int] = {bs: i for i, bs in enumerate(bucket_starts_local)}
    per_bucket = [Counter() for _ in bucket_starts_local]

    qs = AuditLogEntry.objects.filter(timestamp__gte=f_utc, timestamp__lt=t_utc)
    if user_id is not None:
        qs = qs.filter(user_id=user_id)

    for entry in qs.only("action", "timestamp"):
        bucket_key = _floor_local(entry.timestamp, granularity, tzinfo)
        bi = idx.get(bucket_key)
        if bi is None:
            continue
        per_bucket[bi][entry.action] += 1

    out = []
    for i, bs_local in enumerate(bucket_starts_local):
        out.append({
            "bucket_start": bs_local.isoformat(),  # local timezone ISO
            "total": sum(per_bucket[i].values()),
            "actions": dict(per_bucket[i]),
        })
    return out

# review/tests/test_stats_exports.py
import csv
import datetime as dt
import io
import json

import pytest

from review import exports
from review.models import AuditLogEntry, Exercise, ExerciseStatus
from review.stats import exercise_counts, summarize_activity
from conftest import content


def _utc(*args):
    return dt.datetime(*args, tzinfo=dt.timezone.utc)


def _log(user, action, when, target_id=42):
    return AuditLogEntry.objects.create(user=user, action=action, target_id=target_id, details={}, timestamp=when)


def _exercise(status, validator=None, **overrides):
    return Exercise.objects.create(
        content=content(**overrides),
        status=status,
        validated_by=validator if status != ExerciseStatus.PENDING else None,
    )


@pytest.mark.django_db
def test_exercise_counts(alice):
    _exercise(ExerciseStatus.PENDING)
    _exercise(ExerciseStatus.VALIDATED, alice)
    _exercise(ExerciseStatus.VALIDATED, alice)
    _exercise(ExerciseStatus.REJECTED, alice)

    counts = exercise_counts()
    assert counts == {
        "total": 4,
        "ingested": 4,
        "pending": 1,
        "validated": 2,
        "rejected": 1,
        "progress": 50.0,
    }


@pytest.mark.django_db
def test_exercise_counts_against_expected_corpus(alice, settings):
    settings.REVIEW_EXPECTED_TOTAL = 12000
    _exercise(ExerciseStatus.VALIDATED, alice)
    _exercise(ExerciseStatus.PENDING)

    counts = exercise_counts()
    assert counts["total"] == 12000
    assert counts["ingested"] == 2
    assert counts["pending"] == 11999
    assert counts["progress"] == 0.0


@pytest.mark.django_db
def test_exercise_counts_empty_store():
    assert exercise_counts()["progress"] == 0.0


@pytest.mark.django_db
def test_daily_activity_across_dst_change(alice):
    # Europe/Paris switches to summer time on 2025-03-30.
    _log(alice, "exercise_validated", _utc(2025, 3, 30, 12, 0))
    _log(alice, "exercise_rejected", _utc(2025, 3, 31, 5, 0))
    _log(alice, "exercise_validated", _utc(2025, 3, 31, 21, 59))
    _log(alice, "exercise_validated", _utc(2025, 3, 31, 22, 0))  # next local day, outside window

    buckets = summarize_activity(
        "2025-03-29T23:00:00Z", "2025-03-31T22:00:00Z", granularity="day", tz="Europe/Paris",
    )
    assert [b["bucket_start"] for b in buckets] == [
        "2025-03-30T00:00:00+01:00",
        "2025-03-31T00:00:00+02:00",
    ]
    assert buckets[0]["actions"] == {"exercise_validated": 1}
    assert buckets[1]["actions"] == {"exercise_rejected": 1, "exercise_validated": 1}
    assert [b["total"] for b in buckets] == [1, 2]


@pytest.mark.django_db
def test_hourly_activity_includes_empty_buckets_and_filters_user(alice, bob):
    _log(alice, "exercise_validated", _utc(2025, 10, 27, 10, 15))
    _log(bob, "exercise_rejected", _utc(2025, 10, 27, 12, 30))

    buckets = summarize_activity(
        _utc(2025, 10, 27, 10), _utc(2025, 10, 27, 13), granularity="hour", tz="UTC", user_id=alice.pk,
    )
    assert [b["total"] for b in buckets] == [1, 0, 0]


@pytest.mark.django_db
def test_monthly_activity(alice):
    _log(alice, "exercise_validated", _utc(2025, 2, 10, 12))
    _log(alice, "exercise_validated", _utc(2025, 2, 11, 12))
    buckets = summarize_activity("2025-01-01T00:00:00Z", "2025-04-01T00:00:00Z", granularity="month", tz="UTC")
    assert [b["total"] for b in buckets] == [0, 2, 0]


def test_activity_rejects_bad_input():
    with pytest.raises(ValueError):
        summarize_activity("yesterday", "2025-01-01T00:00:00Z", granularity="day", tz="UTC")
    with pytest.raises(ValueError):
        summarize_activity("2025-01-01T00:00:00Z", "2025-01-02T00:00:00Z", granularity="week", tz="UTC")


@pytest.mark.django_db
def test_activity_bucket_count_is_capped(settings):
    settings.REVIEW_ACTIVITY_MAX_BUCKETS = 24
    day = summarize_activity(_utc(2025, 3, 1), _utc(2025, 3, 2), granularity="hour", tz="UTC")
    assert len(day) == 24

    with pytest.raises(ValueError, match="more than 24 hour buckets"):
        summarize_activity(_utc(2025, 3, 1), _utc(2025, 3, 2, 1), granularity="hour", tz="UTC")


def test_ten_years_of_hours_is_refused_before_allocating():
    with pytest.raises(ValueError, match="more than 1000 hour buckets"):
        summarize_activity(_utc(2015, 1, 1), _utc(2025, 1, 1), granularity="hour", tz="UTC")


def test_export_filename():
    assert exports.export_filename("csv", dt.date(2025, 10, 19)) == "exercices_valides_2025-10-19.csv"
    assert exports.export_filename("json", dt.date(2025, 1, 2)) == "exercices_valides_2025-01-02.json"


@pytest.mark.django_db
def test_csv_export_doubles_embedded_quotes(alice):
    ex = _exercise(ExerciseStatus.VALIDATED, alice, question='Combien font "2+2" ?')
    _exercise(ExerciseStatus.PENDING, question="ignored")

    body = exports.render("csv")
    assert body == f'{ex.pk},"Addition","CE2","Combien font ""2+2"" ?"\n'
    assert list(csv.reader(io.StringIO(body))) == [[str(ex.pk), "Addition", "CE2", 'Combien font "2+2" ?']]


@pytest.mark.django_db
def test_json_export_lists_validated_exercises(alice):
    ex = _exercise(ExerciseStatus.VALIDATED, alice, level="6ème")
    _exercise(ExerciseStatus.REJECTED, alice)

    body = exports.render("json")
    assert "6ème" in body
    data = json.loads(body)
    assert [row["id"] for row in data] == [ex.pk]
    assert data[0]["content"]["level"] == "6ème"
    assert data[0]["validated_by"] == alice.pk


def test_render_unknown_format():
    with pytest.raises(ValueError):
        exports.render("xlsx", exercises=[])

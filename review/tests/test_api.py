# review/tests/test_api.py
import datetime as dt

import pytest
from django.utils import timezone

from review.models import AuditLogEntry, EditingLock, Exercise, ExerciseStatus
from review.notifications import UPDATE, reset_hub
from conftest import client_for, content, redis_client


def _save(c, pk, status, version, key=None, **extra):
    payload = {"status": status, "content": content(), "version": version}
    payload.update(extra)
    headers = {"HTTP_IDEMPOTENCY_KEY": key} if key else {}
    return c.post(f"/api/exercises/{pk}/transition", payload, format="json", **headers)


@pytest.mark.django_db
def test_roster_lists_exercises_with_lock_info(alice_client, bob_client, exercise42):
    Exercise.objects.create(content=content(question="10-3", answer="7", topic="Soustraction"))
    assert bob_client.post("/api/exercises/42/lock").status_code == 200

    r = alice_client.get("/api/exercises")
    assert r.status_code == 200
    rows = r.json()["results"]
    assert [row["id"] for row in rows][0] == 42
    assert rows[0]["lock"]["holder_name"] == "Bob Durand"
    assert rows[0]["lock"]["is_mine"] is False
    assert rows[0]["lock"]["state"] == "active"
    assert rows[1]["lock"] is None

    only = alice_client.get("/api/exercises?q=10-3").json()["results"]
    assert [row["topic"] for row in only] == ["Soustraction"]
    assert alice_client.get("/api/exercises?status=validated").json()["results"] == []
    assert alice_client.get("/api/exercises?status=archived").status_code == 400
    assert alice_client.get("/api/exercises?limit=abc").status_code == 400


@pytest.mark.django_db
def test_exercise_detail(alice_client, exercise42):
    r = alice_client.get("/api/exercises/42")
    assert r.status_code == 200
    body = r.json()
    assert body["content"]["question"] == "2+2"
    assert body["status"] == "pending"
    assert body["version"] == 1
    assert body["validated_by"] is None

    assert alice_client.get("/api/exercises/404").status_code == 404


@pytest.mark.django_db
def test_lock_acquire_conflict_and_release(alice_client, bob_client, alice, exercise42):
    r1 = alice_client.post("/api/exercises/42/lock")
    assert r1.status_code == 200
    grant = r1.json()
    assert grant["holder"] == alice.pk
    assert grant["heartbeat_seconds"] == 30
    assert grant["stale_after_seconds"] == 120

    r2 = bob_client.post("/api/exercises/42/lock")
    assert r2.status_code == 409
    assert r2.json()["holder"] == {"id": alice.pk, "full_name": "Alice Martin"}

    # Only the holder releases.
    assert bob_client.delete("/api/exercises/42/lock").status_code == 409
    assert alice_client.delete("/api/exercises/42/lock").status_code == 204
    assert bob_client.post("/api/exercises/42/lock").status_code == 200

    assert alice_client.post("/api/exercises/404/lock").status_code == 404


@pytest.mark.django_db
def test_stale_lock_taken_over_over_http(alice_client, bob_client, alice, exercise42):
    assert alice_client.post("/api/exercises/42/lock").status_code == 200
    EditingLock.objects.filter(exercise_id=42).update(claimed_at=timezone.now() - dt.timedelta(minutes=5))

    r = bob_client.post("/api/exercises/42/lock")
    assert r.status_code == 200
    assert r.json()["taken_over_from"] == alice.pk

    # The previous holder learns it on its next heartbeat.
    hb = alice_client.post("/api/exercises/42/lock/heartbeat")
    assert hb.status_code == 409


@pytest.mark.django_db
def test_heartbeat_and_beacon(alice_client, bob_client, exercise42):
    assert alice_client.post("/api/exercises/42/lock/heartbeat").status_code == 404
    alice_client.post("/api/exercises/42/lock")
    hb = alice_client.post("/api/exercises/42/lock/heartbeat")
    assert hb.status_code == 200
    assert hb.json()["renewed"] is True

    # Beacon from a non-holder is ignored, from the holder it releases.
    assert bob_client.post("/api/exercises/42/lock/beacon").status_code == 204
    assert EditingLock.objects.filter(exercise_id=42).exists()
    assert alice_client.post("/api/exercises/42/lock/beacon").status_code == 204
    assert not EditingLock.objects.filter(exercise_id=42).exists()
    assert alice_client.post("/api/exercises/42/lock/beacon").status_code == 204


@pytest.mark.django_db
def test_admin_force_release(admin_api, alice_client, bob_client, exercise42):
    alice_client.post("/api/exercises/42/lock")
    assert bob_client.delete("/api/exercises/42/lock?force=true").status_code == 409
    assert admin_api.delete("/api/exercises/42/lock?force=true").status_code == 204
    assert not EditingLock.objects.filter(exercise_id=42).exists()


@pytest.mark.django_db
def test_transition_over_http(alice_client, alice, exercise42):
    assert _save(alice_client, 42, "validated", 1).status_code == 409  # no lock yet

    alice_client.post("/api/exercises/42/lock")
    r = _save(alice_client, 42, "validated", 1)
    assert r.status_code == 200
    body = r.json()
    assert body["status"] == "validated"
    assert body["validated_by"] == alice.pk
    assert body["version"] == 2
    assert body["replayed"] is False
    assert body["lock_released"] is False

    stale = _save(alice_client, 42, "rejected", 1)
    assert stale.status_code == 409
    assert stale.json()["current_version"] == 2

    assert AuditLogEntry.objects.filter(target_id=42, action="exercise_validated").count() == 1


@pytest.mark.django_db
def test_transition_idempotency_key_header(alice_client, exercise42):
    alice_client.post("/api/exercises/42/lock")
    r1 = _save(alice_client, 42, "rejected", 1, key="tab-1-save-1")
    r2 = _save(alice_client, 42, "rejected", 1, key="tab-1-save-1")
    assert r1.status_code == 200 and r2.status_code == 200
    assert r2.json()["replayed"] is True
    assert r2.json()["version"] == 2
    assert AuditLogEntry.objects.count() == 1

    r3 = _save(alice_client, 42, "validated", 2, key="tab-1-save-1")
    assert r3.status_code == 409
    assert "Idempotency-Key reused" in r3.json()["detail"]


@pytest.mark.django_db
def test_transition_with_release_lock(alice_client, exercise42):
    alice_client.post("/api/exercises/42/lock")
    r = _save(alice_client, 42, "validated", 1, release_lock=True)
    assert r.status_code == 200
    assert r.json()["lock_released"] is True
    assert not EditingLock.objects.filter(exercise_id=42).exists()


@pytest.mark.django_db
def test_transition_payload_validation(alice_client, exercise42):
    alice_client.post("/api/exercises/42/lock")
    missing_version = alice_client.post(
        "/api/exercises/42/transition", {"status": "validated", "content": content()}, format="json",
    )
    assert missing_version.status_code == 400
    assert "version" in missing_version.json()["errors"]

    assert _save(alice_client, 42, "archived", 1).status_code == 400

    bad_content = alice_client.post(
        "/api/exercises/42/transition",
        {"status": "validated", "content": {"question": "2+2"}, "version": 1},
        format="json",
    )
    assert bad_content.status_code == 400
    assert set(bad_content.json()["errors"]) == {"answer", "level", "topic"}
    assert Exercise.objects.get(pk=42).version == 1


@pytest.mark.django_db
def test_lock_list(alice_client, alice, exercise42):
    assert alice_client.get("/api/locks").json() == []
    alice_client.post("/api/exercises/42/lock")
    rows = alice_client.get("/api/locks").json()
    assert len(rows) == 1
    assert rows[0]["exercise_id"] == 42
    assert rows[0]["holder"] == alice.pk
    assert rows[0]["state"] == "active"


@pytest.mark.django_db
def test_change_feed(alice_client, bob_client, exercise42, django_capture_on_commit_callbacks):
    empty = alice_client.get("/api/changes?cursor=0&timeout=0").json()
    assert empty == {"cursor": 0, "reset": False, "events": [], "roster": None}

    with django_capture_on_commit_callbacks(execute=True):
        bob_client.post("/api/exercises/42/lock")

    feed = alice_client.get("/api/changes?cursor=0&timeout=0").json()
    assert feed["cursor"] == 1
    assert [(e["table"], e["event"], e["pk"]) for e in feed["events"]] == [("locks", "INSERT", 42)]
    assert feed["roster"][0]["lock"]["holder_name"] == "Bob Durand"

    caught_up = alice_client.get(f"/api/changes?cursor={feed['cursor']}&timeout=0").json()
    assert caught_up["events"] == []
    assert caught_up["roster"] is None

    assert alice_client.get("/api/changes?cursor=x").status_code == 400


@pytest.mark.django_db
def test_change_feed_resets_cursor_ahead_of_feed(
    alice_client, bob_client, exercise42, django_capture_on_commit_callbacks
):
    # Alice's tab kept cursor 7 across a restart; the feed is back at 1.
    with django_capture_on_commit_callbacks(execute=True):
        bob_client.post("/api/exercises/42/lock")

    feed = alice_client.get("/api/changes?cursor=7&timeout=5").json()
    assert feed["reset"] is True
    assert feed["cursor"] == 1
    assert feed["events"] == []
    assert feed["roster"][0]["lock"]["holder_name"] == "Bob Durand"

    resumed = alice_client.get(f"/api/changes?cursor={feed['cursor']}&timeout=0").json()
    assert resumed["reset"] is False
    assert resumed["roster"] is None


@pytest.mark.django_db
def test_change_feed_resets_cursor_older_than_backlog(settings, alice_client, exercise42):
    settings.REVIEW_CHANGE_BACKLOG = 2
    hub = reset_hub()
    for _ in range(4):
        hub.publish("exercises", UPDATE, 42)

    lost = alice_client.get("/api/changes?cursor=1&timeout=0").json()
    assert lost["reset"] is True
    assert lost["cursor"] == 4
    assert lost["roster"][0]["id"] == 42

    kept = alice_client.get("/api/changes?cursor=2&timeout=0").json()
    assert kept["reset"] is False
    assert [e["seq"] for e in kept["events"]] == [3, 4]


@pytest.mark.django_db
def test_change_feed_crosses_workers_through_redis(
    redis_server, alice_client, bob_client, exercise42, django_capture_on_commit_callbacks
):
    # Bob's request is served by one worker...
    reset_hub(client=redis_client(redis_server))
    with django_capture_on_commit_callbacks(execute=True):
        bob_client.post("/api/exercises/42/lock")

    # ...and Alice's poll by another one sharing the same Redis.
    reset_hub(client=redis_client(redis_server))
    feed = alice_client.get("/api/changes?cursor=0&timeout=0").json()
    assert feed["reset"] is False
    assert feed["cursor"] == 1
    assert [(e["table"], e["event"], e["pk"]) for e in feed["events"]] == [("locks", "INSERT", 42)]
    assert feed["roster"][0]["lock"]["holder_name"] == "Bob Durand"


@pytest.mark.django_db
def test_change_feed_answers_503_when_redis_is_down(redis_server, alice_client):
    reset_hub(client=redis_client(redis_server))
    redis_server.connected = False
    r = alice_client.get("/api/changes?cursor=0&timeout=0")
    assert r.status_code == 503


@pytest.mark.django_db
def test_stats_and_audit_logs(alice_client, alice, exercise42):
    alice_client.post("/api/exercises/42/lock")
    _save(alice_client, 42, "validated", 1)
    _save(alice_client, 42, "rejected", 2)

    stats = alice_client.get("/api/stats").json()
    assert stats["total"] == 1
    assert stats["rejected"] == 1
    assert stats["progress"] == 0.0

    logs = alice_client.get("/api/audit-logs?limit=1").json()
    assert len(logs) == 1
    assert logs[0]["action"] == "exercise_rejected"
    assert logs[0]["user"] == alice.pk
    assert len(alice_client.get("/api/audit-logs?target_id=42").json()) == 2
    assert alice_client.get("/api/audit-logs?target_id=other").status_code == 400


@pytest.mark.django_db
def test_activity_endpoint(alice_client, alice):
    AuditLogEntry.objects.create(
        user=alice, action="exercise_validated", target_id=1, details={},
        timestamp=dt.datetime(2025, 10, 27, 9, 30, tzinfo=dt.timezone.utc),
    )
    qs = "from=2025-10-27T00:00:00Z&to=2025-10-28T00:00:00Z&granularity=day&tz=UTC"
    r = alice_client.get(f"/api/activity?{qs}")
    assert r.status_code == 200
    data = r.json()
    assert data["total"] == 1
    assert data["buckets"][0]["actions"] == {"exercise_validated": 1}

    assert alice_client.get("/api/activity?from=2025-10-27T00:00:00Z").status_code == 400
    assert alice_client.get(f"/api/activity?{qs}&user_id=abc").status_code == 400
    bad_tz = "from=2025-10-27T00:00:00Z&to=2025-10-28T00:00:00Z&tz=Mars/Olympus"
    assert alice_client.get(f"/api/activity?{bad_tz}").status_code == 400
    bad_gran = "from=2025-10-27T00:00:00Z&to=2025-10-28T00:00:00Z&granularity=week"
    assert alice_client.get(f"/api/activity?{bad_gran}").status_code == 400
    decade = "from=2015-01-01T00:00:00Z&to=2025-01-01T00:00:00Z&granularity=hour&tz=UTC"
    too_wide = alice_client.get(f"/api/activity?{decade}")
    assert too_wide.status_code == 400
    assert "buckets" in too_wide.json()["detail"]


@pytest.mark.django_db
def test_export_download(alice_client, alice, exercise42):
    Exercise.objects.filter(pk=42).update(status=ExerciseStatus.VALIDATED, validated_by=alice)

    r = alice_client.get("/api/exports/validated?format=csv")
    assert r.status_code == 200
    assert r["Content-Type"].startswith("text/csv")
    assert r["Content-Disposition"].startswith('attachment; filename="exercices_valides_')
    assert r.content.decode("utf-8") == '42,"Addition","CE2","2+2"\n'

    j = alice_client.get("/api/exports/validated?format=json")
    assert j.status_code == 200
    assert j["Content-Disposition"].endswith('.json"')

    assert alice_client.get("/api/exports/validated?format=xlsx").status_code == 400


@pytest.mark.django_db
def test_unapproved_session_cannot_use_review_api(pending_user, exercise42):
    c = client_for(pending_user)
    assert c.get("/api/exercises").status_code == 403
    assert c.post("/api/exercises/42/lock").status_code == 403
    assert not EditingLock.objects.exists()

# review/views.py
from __future__ import annotations

import pytz
from django.conf import settings
from django.http import HttpResponse
from rest_framework import status
from rest_framework.response import Response
from rest_framework.views import APIView

from . import exports, locks, services
from .exceptions import ReviewError, translate_store_errors
from .models import AuditLogEntry, ExerciseStatus
from .notifications import get_hub
from .roster import DEFAULT_LIMIT, build_roster
from .serializers import (
    AuditLogEntrySerializer,
    AwareDateTimeField,
    ExerciseSerializer,
    LockSerializer,
    RosterEntrySerializer,
    TransitionSerializer,
)
from .stats import GRANULARITIES, exercise_counts, summarize_activity


def _error(exc: ReviewError) -> Response:
    return Response(exc.as_payload(), status=exc.status_code)


def _int_param(request, name: str, default: int, lo: int, hi: int) -> int:
    raw = request.query_params.get(name)
    if raw in (None, ''):
        return default
    value = int(raw)  # ValueError handled by callers
    return max(lo, min(hi, value))


def _lock_payload(grant: locks.LockGrant) -> dict:
    data = grant.as_dict()
    data['claimed_at'] = AwareDateTimeField().to_representation(grant.claimed_at)
    return data


class ExerciseListView(APIView):
    """
    GET /api/exercises
      ?status=pending|validated|rejected
      &q=<text in question>
      &limit=50
    Roster: exercises ordered by id with their editing lock.
    """
    def get(self, request):
        st = request.query_params.get('status') or None
        if st is not None and st not in ExerciseStatus.values:
            return Response({'detail': 'status must be pending|validated|rejected.'}, status=400)
        try:
            limit = _int_param(request, 'limit', DEFAULT_LIMIT, 1, 500)
        except ValueError:
            return Response({'detail': 'limit must be an integer.'}, status=400)
        try:
            with translate_store_errors('load roster'):
                rows = build_roster(request.user, status=st, query=request.query_params.get('q') or None, limit=limit)
        except ReviewError as e:
            return _error(e)
        return Response({
            'cursor': get_hub().cursor,
            'results': RosterEntrySerializer(rows, many=True).data,
        })


class ExerciseDetailView(APIView):
    """GET /api/exercises/{id}"""
    def get(self, request, pk: int):
        try:
            exercise = services.get_exercise(pk)
        except ReviewError as e:
            return _error(e)
        return Response(ExerciseSerializer(exercise).data)


class ExerciseLockView(APIView):
    """
    POST   /api/exercises/{id}/lock          acquire (409 when held by someone else)
    DELETE /api/exercises/{id}/lock?force=1  release (holder, or admin with force)
    """
    def post(self, request, pk: int):
        try:
            grant = locks.acquire(pk, request.user)
        except ReviewError as e:
            return _error(e)
        return Response(_lock_payload(grant), status=status.HTTP_200_OK)

    def delete(self, request, pk: int):
        force = request.query_params.get('force', 'false').lower() in ('1', 'true')
        try:
            locks.release(pk, request.user, force=force)
        except ReviewError as e:
            return _error(e)
        return Response(status=status.HTTP_204_NO_CONTENT)


class ExerciseLockHeartbeatView(APIView):
    """POST /api/exercises/{id}/lock/heartbeat"""
    def post(self, request, pk: int):
        try:
            grant = locks.heartbeat(pk, request.user)
        except ReviewError as e:
            return _error(e)
        return Response(_lock_payload(grant))


class ExerciseLockBeaconView(APIView):
    """POST /api/exercises/{id}/lock/beacon (page unload; best-effort, always 204)."""
    def post(self, request, pk: int):
        locks.release_quietly(pk, request.user)
        return Response(status=status.HTTP_204_NO_CONTENT)


class ExerciseTransitionView(APIView):
    """
    POST /api/exercises/{id}/transition
      body: {status, content, version, release_lock?}
      header: Idempotency-Key (optional; replays return 200 without writing)
    """
    def post(self, request, pk: int):
        ser = TransitionSerializer(data=request.data or {})
        if not ser.is_valid():
            return Response({'detail': 'Invalid payload.', 'errors': ser.errors}, status=400)
        data = ser.validated_data
        idem = request.headers.get('Idempotency-Key') or data.get('idempotency_key')

        try:
            result = services.transition(
                pk,
                data['status'],
                request.user,
                data['content'],
                expected_version=data['version'],
                idempotency_key=idem,
                release_lock=data['release_lock'],
            )
        except ReviewError as e:
            return _error(e)

        body = ExerciseSerializer(result.exercise).data
        body['replayed'] = result.replayed
        body['lock_released'] = result.lock_released
        return Response(body, status=status.HTTP_200_OK)


class LockListView(APIView):
    """GET /api/locks"""
    def get(self, request):
        try:
            with translate_store_errors('list locks'):
                active = locks.list_active_locks()
        except ReviewError as e:
            return _error(e)
        rows = [dict(info, exercise_id=ex_id) for ex_id, info in active.items()]
        return Response(LockSerializer(rows, many=True).data)


class ChangeFeedView(APIView):
    """
    GET /api/changes?cursor=N&timeout=S
    Long-poll: waits up to S seconds for exercise/lock changes after cursor N.
    When something changed, the full roster is re-fetched and returned.

    A cursor the feed cannot continue from (ahead of it after a restart, or
    older than the backlog) gets `reset: true`, the current cursor and a
    fresh roster; the client replaces its state and polls from there.
    """
    def get(self, request):
        try:
            cursor = _int_param(request, 'cursor', 0, 0, 2**62)
            timeout = _int_param(request, 'timeout', 0, 0, settings.REVIEW_CHANGE_MAX_WAIT)
        except ValueError:
            return Response({'detail': 'cursor and timeout must be integers.'}, status=400)

        hub = get_hub()
        try:
            with translate_store_errors('read change feed'):
                reset = hub.needs_reset(cursor)
                if reset:
                    events, cursor = [], hub.cursor
                else:
                    events = hub.wait_for_events(cursor, timeout)
            body = {
                'cursor': events[-1].seq if events else cursor,
                'reset': reset,
                'events': [e.as_dict() for e in events],
                'roster': None,
            }
            if events or reset:
                with translate_store_errors('load roster'):
                    rows = build_roster(request.user)
                body['roster'] = RosterEntrySerializer(rows, many=True).data
        except ReviewError as e:
            return _error(e)
        return Response(body)


class StatsView(APIView):
    """GET /api/stats"""
    def get(self, request):
        try:
            with translate_store_errors('compute stats'):
                counts = exercise_counts()
        except ReviewError as e:
            return _error(e)
        return Response(counts)


class ActivityView(APIView):
    """
    GET /api/activity
      ?from=ISO
      &to=ISO
      &granularity=hour|day|month
      &tz=Europe/Paris
      &user_id=<id>   (optional)
    Review actions per bucket; empty buckets included.
    """
    def get(self, request):
        dt_from = request.query_params.get('from')
        dt_to = request.query_params.get('to')
        gran = request.query_params.get('granularity', 'day')
        tzname = request.query_params.get('tz', settings.TIME_ZONE)
        user_id = request.query_params.get('user_id')

        if not dt_from or not dt_to:
            return Response({'detail': 'from and to are required (ISO-8601).'}, status=400)

        # Tolerate a space where '+' should be (query string not URL-encoded).
        if ' ' in dt_from and ('Z' not in dt_from):
            dt_from = dt_from.replace(' ', '+', 1)
        if ' ' in dt_to and ('Z' not in dt_to):
            dt_to = dt_to.replace(' ', '+', 1)

        if gran not in GRANULARITIES:
            return Response({'detail': 'granularity must be hour|day|month.'}, status=400)
        try:
            pytz.timezone(tzname)
        except pytz.UnknownTimeZoneError:
            return Response({'detail': 'invalid tz.'}, status=400)
        if user_id is not None and not user_id.isdigit():
            return Response({'detail': 'user_id must be an integer.'}, status=400)

        try:
            with translate_store_errors('summarize activity'):
                buckets = summarize_activity(
                    dt_from, dt_to, granularity=gran, tz=tzname,
                    user_id=int(user_id) if user_id is not None else None,
                )
        except ValueError as e:
            return Response({'detail': str(e)}, status=400)
        except ReviewError as e:
            return _error(e)

        return Response({
            'from': dt_from,
            'to': dt_to,
            'granularity': gran,
            'tz': tzname,
            'total': sum(b['total'] for b in buckets),
            'buckets': buckets,
        }, status=status.HTTP_200_OK)


class AuditLogListView(APIView):
    """GET /api/audit-logs?limit=20&target_id=<exercise id>  (most recent first)"""
    def get(self, request):
        try:
            limit = _int_param(request, 'limit', 20, 1, 200)
        except ValueError:
            return Response({'detail': 'limit must be an integer.'}, status=400)
        target = request.query_params.get('target_id')
        qs = AuditLogEntry.objects.order_by('-timestamp', '-id')
        if target:
            if not target.isdigit():
                return Response({'detail': 'target_id must be an integer.'}, status=400)
            qs = qs.filter(target_id=int(target))
        try:
            with translate_store_errors('load audit log'):
                entries = list(qs[:limit])
        except ReviewError as e:
            return _error(e)
        return Response(AuditLogEntrySerializer(entries, many=True).data)


class ValidatedExportView(APIView):
    """GET /api/exports/validated?format=json|csv  (file download)"""
    def get(self, request):
        fmt = request.query_params.get('format', 'json').lower()
        if fmt not in exports.FORMATS:
            return Response({'detail': 'format must be json|csv.'}, status=400)
        try:
            with translate_store_errors('export'):
                body = exports.render(fmt)
        except ReviewError as e:
            return _error(e)
        resp = HttpResponse(body, content_type=f"{exports.FORMATS[fmt]}; charset=utf-8")
        resp['Content-Disposition'] = f'attachment; filename="{exports.export_filename(fmt)}"'
        return resp

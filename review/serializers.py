# review/serializers.py
import datetime as dt

from django.utils import timezone
from rest_framework import serializers

from .models import AuditLogEntry, Exercise, ExerciseStatus


class AwareDateTimeField(serializers.DateTimeField):
    """
    Datetime field that ensures tz-aware UTC datetimes.
    - Accepts ISO strings with/without timezone; if naive → assume UTC.
    - Always outputs ISO in UTC (Z).
    """
    def default_timezone(self):
        return dt.timezone.utc

    def to_internal_value(self, value):
        d = super().to_internal_value(value)
        if d is None:
            return None
        if timezone.is_naive(d):
            d = timezone.make_aware(d, dt.timezone.utc)
        return d.astimezone(dt.timezone.utc)

    def to_representation(self, value):
        if value is None:
            return None
        if timezone.is_naive(value):
            value = timezone.make_aware(value, dt.timezone.utc)
        return super().to_representation(value.astimezone(dt.timezone.utc))


class ExerciseSerializer(serializers.ModelSerializer):
    """
    Read-only exercise snapshot.
    `version` must be echoed back on save (optimistic concurrency).
    """
    created_at = AwareDateTimeField(read_only=True)
    updated_at = AwareDateTimeField(read_only=True)

    class Meta:
        model = Exercise
        fields = (
            "id",
            "content",
            "status",
            "validated_by",
            "version",
            "created_at",
            "updated_at",
        )
        read_only_fields = fields


class TransitionSerializer(serializers.Serializer):
    """
    Save payload for POST /api/exercises/{id}/transition.
    Notes:
      - content is the complete record (question, answer, explanation, level, topic);
        its shape is checked by services.validate_content.
      - version is the one returned when the exercise was loaded.
      - Idempotency-Key may come from the header (handled in the view) or the body.
    """
    status = serializers.ChoiceField(choices=ExerciseStatus.choices)
    content = serializers.DictField()
    version = serializers.IntegerField(min_value=1)
    release_lock = serializers.BooleanField(required=False, default=False)
    idempotency_key = serializers.CharField(required=False, allow_blank=False, max_length=64)


class AuditLogEntrySerializer(serializers.ModelSerializer):
    timestamp = AwareDateTimeField(read_only=True)

    class Meta:
        model = AuditLogEntry
        fields = ("id", "user", "action", "target_id", "details", "timestamp")
        read_only_fields = fields


class LockSerializer(serializers.Serializer):
    exercise_id = serializers.IntegerField()
    holder = serializers.IntegerField()
    holder_name = serializers.CharField()
    claimed_at = AwareDateTimeField()
    state = serializers.CharField()


class RosterEntrySerializer(serializers.Serializer):
    id = serializers.IntegerField()
    question = serializers.CharField()
    level = serializers.CharField()
    topic = serializers.CharField()
    status = serializers.CharField()
    version = serializers.IntegerField()
    updated_at = AwareDateTimeField()
    lock = serializers.SerializerMethodField()

    def get_lock(self, obj):
        lock = obj.get("lock")
        if lock is None:
            return None
        return dict(lock, claimed_at=AwareDateTimeField().to_representation(lock["claimed_at"]))

from django.conf import settings
from django.db import models
from django.utils import timezone


class ExerciseStatus(models.TextChoices):
    PENDING = "pending", "Pending"
    VALIDATED = "validated", "Validated"
    REJECTED = "rejected", "Rejected"


class ExerciseLevel(models.TextChoices):
    CE2 = "CE2", "CE2"
    CM1 = "CM1", "CM1"
    CM2 = "CM2", "CM2"
    SIXIEME = "6ème", "6ème"
    CINQUIEME = "5ème", "5ème"


class Exercise(models.Model):
    content = models.JSONField(default=dict)                       # question / answer / explanation / level / topic
    status = models.CharField(
        max_length=16, choices=ExerciseStatus.choices,
        default=ExerciseStatus.PENDING, db_index=True,
    )
    validated_by = models.ForeignKey(                              # set iff status != pending
        settings.AUTH_USER_MODEL, null=True, blank=True,
        on_delete=models.PROTECT, related_name="validated_exercises",
    )
    version = models.PositiveIntegerField(default=1)               # bumped by every transition
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = "exercises"
        ordering = ["id"]
        constraints = [
            models.CheckConstraint(
                condition=(
                    models.Q(status=ExerciseStatus.PENDING, validated_by__isnull=True)
                    | (~models.Q(status=ExerciseStatus.PENDING) & models.Q(validated_by__isnull=False))
                ),
                name="ck_exercise_validated_by_status",
            ),
        ]

    def __str__(self):
        return f"Exercise {self.pk} [{self.status}]"

    @property
    def question(self) -> str:
        return (self.content or {}).get("question", "")


class EditingLock(models.Model):
    """Advisory editing claim; at most one row per exercise. Does not block writes."""
    exercise = models.OneToOneField(Exercise, on_delete=models.CASCADE, related_name="lock")
    holder = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name="editing_locks")
    claimed_at = models.DateTimeField(default=timezone.now)      # re-asserted by heartbeats

    class Meta:
        db_table = "locks"

    def __str__(self):
        return f"Lock exercise={self.exercise_id} holder={self.holder_id}"


class AuditLogEntry(models.Model):
    """Append-only trail of status transitions."""
    user = models.ForeignKey(
        settings.AUTH_USER_MODEL, null=True,
        on_delete=models.SET_NULL, related_name="audit_entries",
    )
    action = models.CharField(max_length=64)                      # exercise_<status>
    target_id = models.BigIntegerField()                           # exercise id
    details = models.JSONField(default=dict)                       # content snapshot at time of action
    idempotency_key = models.CharField(max_length=64, null=True, blank=True)
    timestamp = models.DateTimeField(default=timezone.now, db_index=True)

    class Meta:
        db_table = "audit_logs"
        ordering = ["-timestamp", "-id"]
        constraints = [
            models.UniqueConstraint(fields=["user", "idempotency_key"],
                                    name="uq_audit_user_idempotency"),
        ]
        indexes = [
            models.Index(fields=["target_id", "timestamp"], name="idx_audit_target_ts"),
            models.Index(fields=["action", "timestamp"], name="idx_audit_action_ts"),
        ]

    def __str__(self):
        return f"{self.action} exercise={self.target_id} by={self.user_id}"

# review/services.py
"""
Review state machine.

Every status is reachable from every other one; the machine only guarantees
that a transition is applied by the lock holder, against the version the
caller loaded, together with exactly one audit entry, in one transaction.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional

from django.db import IntegrityError, transaction

from . import locks
from .exceptions import Conflict, InvalidContent, LockDenied, NotFound, translate_store_errors
from .models import AuditLogEntry, Exercise, ExerciseLevel, ExerciseStatus

logger = logging.getLogger(__name__)

CONTENT_FIELDS = ("question", "answer", "explanation", "level", "topic")
REQUIRED_CONTENT_FIELDS = ("question", "answer", "level", "topic")


@dataclass
class TransitionResult:
    exercise: Exercise
    audit_entry: Optional[AuditLogEntry]
    replayed: bool = False          # same Idempotency-Key seen before: nothing written
    lock_released: bool = False


def audit_action(status: str) -> str:
    return f"exercise_{status}"


def is_legal_transition(current: str, target: str) -> bool:
    """No forward-only ordering: any known status may follow any other."""
    return current in ExerciseStatus.values and target in ExerciseStatus.values


def validate_content(content: Any) -> Dict[str, str]:
    """
    Check a full content record and return it normalized.
    Partial records are refused: the whole content object is replaced on save.
    """
    if not isinstance(content, Mapping):
        raise InvalidContent(detail="content must be an object.")

    errors: Dict[str, str] = {}
    for key in content:
        if key not in CONTENT_FIELDS:
            errors[key] = "Unknown field."
    for field in REQUIRED_CONTENT_FIELDS:
        value = content.get(field)
        if not isinstance(value, str) or not value.strip():
            errors[field] = "This field is required."
    explanation = content.get("explanation")
    if explanation is not None and not isinstance(explanation, str):
        errors["explanation"] = "Must be text."
    level = content.get("level")
    if "level" not in errors and level not in ExerciseLevel.values:
        errors["level"] = f"Must be one of {', '.join(ExerciseLevel.values)}."
    if errors:
        raise InvalidContent(errors)

    return {
        "question": content["question"],
        "answer": content["answer"],
        "explanation": explanation or "",
        "level": level,
        "topic": content["topic"],
    }


def get_exercise(exercise_id: int) -> Exercise:
    with translate_store_errors("load exercise"):
        exercise = Exercise.objects.select_related("validated_by").filter(pk=exercise_id).first()
    if exercise is None:
        raise NotFound(f"Exercise {exercise_id} not found.")
    return exercise


def _replay(acting_user, key: str, exercise_id: int, action: str, content: Dict) -> Optional[TransitionResult]:
    """Same key + same payload: return the stored outcome. Same key + other payload: Conflict."""
    entry = AuditLogEntry.objects.filter(user=acting_user, idempotency_key=key).first()
    if entry is None:
        return None
    if entry.target_id != exercise_id or entry.action != action or entry.details != content:
        raise Conflict("Idempotency-Key reused with different payload.")
    logger.info("TRANSITION_REPLAYED exercise=%s user=%s key=%s", exercise_id, acting_user.pk, key)
    return TransitionResult(exercise=Exercise.objects.get(pk=exercise_id), audit_entry=entry, replayed=True)


def transition(
    exercise_id: int,
    new_status: str,
    acting_user,
    edited_content: Mapping,
    *,
    expected_version: int,
    idempotency_key: Optional[str] = None,
    release_lock: bool = False,
) -> TransitionResult:
    """
    Save an edited exercise with a new status.

    - Requires the caller to hold the editing lock.
    - Rejects stale writes: expected_version must equal the stored version.
    - Content, status, validated_by, updated_at, version and the audit entry
      are written in one transaction; a store failure leaves nothing behind.
    """
    content = validate_content(edited_content)
    action = audit_action(new_status)

    with translate_store_errors("save exercise"):
        if idempotency_key:
            replay = _replay(acting_user, idempotency_key, exercise_id, action, content)
            if replay is not None:
                return replay

        try:
            with transaction.atomic():
                exercise = Exercise.objects.select_for_update().filter(pk=exercise_id).first()
                if exercise is None:
                    raise NotFound(f"Exercise {exercise_id} not found.")

                lock = locks.holder_of(exercise_id)
                if lock is None:
                    raise LockDenied("Acquire the editing lock before saving.")
                if lock.holder_id != acting_user.pk:
                    raise locks.denied(lock)

                if not is_legal_transition(exercise.status, new_status):
                    raise InvalidContent({"status": f"Must be one of {', '.join(ExerciseStatus.values)}."})

                if exercise.version != expected_version:
                    raise Conflict(current_version=exercise.version)

                previous = exercise.status
                exercise.content = content
                exercise.status = new_status
                exercise.validated_by = acting_user if new_status != ExerciseStatus.PENDING else None
                exercise.version += 1
                exercise.save()

                entry = AuditLogEntry.objects.create(
                    user=acting_user,
                    action=action,
                    target_id=exercise.pk,
                    details=content,
                    idempotency_key=idempotency_key or None,
                )
        except IntegrityError:
            # Concurrent request with the same Idempotency-Key won the insert.
            if idempotency_key:
                replay = _replay(acting_user, idempotency_key, exercise_id, action, content)
                if replay is not None:
                    return replay
            raise

    logger.info(
        "TRANSITION exercise=%s %s->%s by=%s version=%s",
        exercise.pk, previous, new_status, acting_user.pk, exercise.version,
    )

    released = False
    if release_lock:
        released = locks.release_quietly(exercise_id, acting_user)
    return TransitionResult(exercise=exercise, audit_entry=entry, lock_released=released)

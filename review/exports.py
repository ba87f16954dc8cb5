# review/exports.py
from __future__ import annotations

import csv
import datetime as dt
import io
import json
from typing import Iterable, Optional

from django.core.serializers.json import DjangoJSONEncoder
from django.utils import timezone

from .models import Exercise, ExerciseStatus
from .serializers import ExerciseSerializer

FORMATS = {
    "json": "application/json",
    "csv": "text/csv",
}


def validated_exercises():
    return Exercise.objects.filter(status=ExerciseStatus.VALIDATED).order_by("id")


def export_filename(fmt: str, today: Optional[dt.date] = None) -> str:
    today = today or timezone.localdate()
    return f"exercices_valides_{today.isoformat()}.{fmt}"


def to_json(exercises: Iterable[Exercise]) -> str:
    data = ExerciseSerializer(list(exercises), many=True).data
    return json.dumps(data, indent=2, ensure_ascii=False, cls=DjangoJSONEncoder)


def to_csv(exercises: Iterable[Exercise]) -> str:
    """One row per exercise: id,"topic","level","question" (embedded quotes doubled)."""
    buf = io.StringIO()
    writer = csv.writer(buf, quoting=csv.QUOTE_NONNUMERIC, lineterminator="\n")
    for ex in exercises:
        content = ex.content or {}
        writer.writerow([ex.pk, content.get("topic", ""), content.get("level", ""), content.get("question", "")])
    return buf.getvalue()


def render(fmt: str, exercises: Optional[Iterable[Exercise]] = None) -> str:
    if fmt not in FORMATS:
        raise ValueError("format must be json|csv")
    exercises = validated_exercises() if exercises is None else exercises
    return to_json(exercises) if fmt == "json" else to_csv(exercises)

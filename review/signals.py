# review/signals.py
from django.db import transaction
from django.db.models.signals import post_delete, post_save
from django.dispatch import receiver

from .models import EditingLock, Exercise
from .notifications import DELETE, INSERT, UPDATE, get_hub


def _publish_on_commit(table: str, event: str, pk) -> None:
    transaction.on_commit(lambda: get_hub().publish(table, event, pk))


@receiver(post_save, sender=Exercise)
def exercise_saved(sender, instance: Exercise, created: bool, **kwargs):
    _publish_on_commit("exercises", INSERT if created else UPDATE, instance.pk)


@receiver(post_delete, sender=Exercise)
def exercise_deleted(sender, instance: Exercise, **kwargs):
    _publish_on_commit("exercises", DELETE, instance.pk)


# Lock events are keyed by exercise id: one lock row per exercise.
@receiver(post_save, sender=EditingLock)
def lock_saved(sender, instance: EditingLock, created: bool, **kwargs):
    _publish_on_commit("locks", INSERT if created else UPDATE, instance.exercise_id)


@receiver(post_delete, sender=EditingLock)
def lock_deleted(sender, instance: EditingLock, **kwargs):
    _publish_on_commit("locks", DELETE, instance.exercise_id)

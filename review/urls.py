from django.urls import path
from .views import (
    ActivityView,
    AuditLogListView,
    ChangeFeedView,
    ExerciseDetailView,
    ExerciseListView,
    ExerciseLockBeaconView,
    ExerciseLockHeartbeatView,
    ExerciseLockView,
    ExerciseTransitionView,
    LockListView,
    StatsView,
    ValidatedExportView,
)

urlpatterns = [
    path("exercises", ExerciseListView.as_view(), name="exercise-list"),
    path("exercises/<int:pk>", ExerciseDetailView.as_view(), name="exercise-detail"),
    path("exercises/<int:pk>/lock", ExerciseLockView.as_view(), name="exercise-lock"),
    path("exercises/<int:pk>/lock/heartbeat", ExerciseLockHeartbeatView.as_view(), name="exercise-lock-heartbeat"),
    path("exercises/<int:pk>/lock/beacon", ExerciseLockBeaconView.as_view(), name="exercise-lock-beacon"),
    path("exercises/<int:pk>/transition", ExerciseTransitionView.as_view(), name="exercise-transition"),
    path("locks", LockListView.as_view(), name="lock-list"),
    path("changes", ChangeFeedView.as_view(), name="change-feed"),
    path("stats", StatsView.as_view(), name="stats"),
    path("activity", ActivityView.as_view(), name="activity"),
    path("audit-logs", AuditLogListView.as_view(), name="audit-log-list"),
    path("exports/validated", ValidatedExportView.as_view(), name="export-validated"),
]

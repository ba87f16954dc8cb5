from django.contrib import admin

from .models import AuditLogEntry, EditingLock, Exercise


@admin.register(Exercise)
class ExerciseAdmin(admin.ModelAdmin):
    list_display = ("id", "question", "status", "validated_by", "version", "updated_at")
    list_filter = ("status",)
    readonly_fields = ("version", "created_at", "updated_at")


@admin.register(EditingLock)
class EditingLockAdmin(admin.ModelAdmin):
    list_display = ("exercise", "holder", "claimed_at")


@admin.register(AuditLogEntry)
class AuditLogEntryAdmin(admin.ModelAdmin):
    list_display = ("timestamp", "action", "target_id", "user")
    list_filter = ("action",)

    def has_change_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False

from django.contrib import admin

from .models import Profile


@admin.register(Profile)
class ProfileAdmin(admin.ModelAdmin):
    list_display = ("user", "full_name", "role", "is_approved", "created_at")
    list_filter = ("role", "is_approved")
    search_fields = ("full_name", "user__email")

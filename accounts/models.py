# accounts/models.py
from django.conf import settings
from django.db import models


class Role(models.TextChoices):
    ADMIN = "admin", "Admin"
    VALIDATOR = "validator", "Validator"


class Profile(models.Model):
    """
    Workspace profile attached to a Django user.
    - Created unapproved at sign-up; only an admin flips is_approved or role.
    - Keyed by the user id (table `profiles`).
    """
    user = models.OneToOneField(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        primary_key=True,
        related_name="profile",
    )
    full_name = models.CharField(max_length=150, blank=True)
    role = models.CharField(max_length=16, choices=Role.choices, default=Role.VALIDATOR)
    is_approved = models.BooleanField(default=False)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = "profiles"
        ordering = ["-created_at"]

    def __str__(self):
        return f"{self.full_name or self.user.get_username()} ({self.role})"

    @property
    def is_admin(self) -> bool:
        return self.role == Role.ADMIN


def profile_of(user):
    """Return the user's Profile, or None (anonymous user or no profile row)."""
    if user is None or not user.is_authenticated:
        return None
    return getattr(user, "profile", None)


def is_approved(user) -> bool:
    if user is not None and user.is_authenticated and user.is_superuser:
        return True
    profile = profile_of(user)
    return bool(profile and profile.is_approved)


def is_admin(user) -> bool:
    if user is not None and user.is_authenticated and user.is_superuser:
        return True
    profile = profile_of(user)
    return bool(profile and profile.is_admin)


def display_name(user) -> str:
    profile = profile_of(user)
    if profile and profile.full_name:
        return profile.full_name
    return user.get_username()

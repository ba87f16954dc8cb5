# accounts/services.py
from __future__ import annotations

import logging
from typing import Optional

from django.contrib.auth import authenticate, get_user_model, login, logout
from django.db import IntegrityError, transaction

from review.exceptions import AuthError, BadRequest, NotFound, translate_store_errors

from .models import Profile, Role, is_admin, profile_of

logger = logging.getLogger(__name__)

PENDING_APPROVAL = "pending approval"
DUPLICATE_EMAIL = "An account with this email already exists."


def normalize_email(email: str) -> str:
    return (email or "").strip().lower()


def register(email: str, password: str, full_name: str) -> Profile:
    """Create a user and its unapproved validator profile."""
    email = normalize_email(email)
    User = get_user_model()
    with translate_store_errors("sign-up"):
        try:
            with transaction.atomic():
                user = User.objects.create_user(username=email, email=email, password=password)
                profile = Profile.objects.create(user=user, full_name=(full_name or "").strip())
        except IntegrityError:
            # Lost a race with a concurrent sign-up past the serializer check.
            raise BadRequest(DUPLICATE_EMAIL)
    logger.info("SIGNUP user=%s email=%s awaiting approval", user.pk, email)
    return profile


def sign_in(request, email: str, password: str) -> Profile:
    """
    Authenticate and open a session.
    An unapproved account gets its session created and immediately terminated.
    """
    user = authenticate(request, username=normalize_email(email), password=password)
    if user is None:
        logger.info("SIGNIN_FAILED email=%s", normalize_email(email))
        raise AuthError("invalid credentials")

    login(request, user)
    profile = profile_of(user)
    if profile is None or not profile.is_approved:
        logout(request)
        logger.info("SIGNIN_REJECTED user=%s reason=unapproved", user.pk)
        raise AuthError(PENDING_APPROVAL, status_code=403)

    logger.info("SIGNIN user=%s role=%s", user.pk, profile.role)
    return profile


def sign_out(request) -> None:
    user = getattr(request, "user", None)
    logout(request)
    if user is not None and user.is_authenticated:
        logger.info("SIGNOUT user=%s", user.pk)


def get_profile(profile_id: int) -> Profile:
    profile = Profile.objects.select_related("user").filter(pk=profile_id).first()
    if profile is None:
        raise NotFound(f"Profile {profile_id} not found.")
    return profile


def update_profile(
    acting_user,
    profile_id: int,
    *,
    is_approved: Optional[bool] = None,
    role: Optional[str] = None,
) -> Profile:
    """Admin-only approval / role change. Nobody edits their own account this way."""
    if not is_admin(acting_user):
        raise AuthError("admin role required", status_code=403)
    if profile_id == acting_user.pk:
        raise AuthError("you cannot change your own role or approval", status_code=403)
    if role is not None and role not in Role.values:
        raise BadRequest(f"unknown role {role!r}")

    with translate_store_errors("update profile"), transaction.atomic():
        profile = Profile.objects.select_for_update().filter(pk=profile_id).first()
        if profile is None:
            raise NotFound(f"Profile {profile_id} not found.")
        changed = []
        if is_approved is not None and profile.is_approved != is_approved:
            profile.is_approved = is_approved
            changed.append("is_approved")
        if role is not None and profile.role != role:
            profile.role = role
            changed.append("role")
        if changed:
            profile.save(update_fields=changed)

    if changed:
        logger.info(
            "PROFILE_UPDATED profile=%s by=%s fields=%s approved=%s role=%s",
            profile.pk, acting_user.pk, ",".join(changed), profile.is_approved, profile.role,
        )
    return profile

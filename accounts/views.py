# accounts/views.py
from __future__ import annotations

from rest_framework import status
from rest_framework.permissions import AllowAny
from rest_framework.response import Response
from rest_framework.views import APIView

from review.exceptions import ReviewError

from . import services
from .models import Profile, profile_of
from .permissions import IsAdminRole
from .serializers import (
    LoginSerializer,
    ProfileSerializer,
    ProfileUpdateSerializer,
    RegisterSerializer,
)


def _error(exc: ReviewError) -> Response:
    return Response(exc.as_payload(), status=exc.status_code)


class RegisterView(APIView):
    """POST /api/auth/register (account starts unapproved)."""
    permission_classes = [AllowAny]

    def post(self, request):
        ser = RegisterSerializer(data=request.data or {})
        ser.is_valid(raise_exception=True)
        try:
            profile = services.register(**ser.validated_data)
        except ReviewError as e:
            return _error(e)
        return Response(ProfileSerializer(profile).data, status=status.HTTP_201_CREATED)


class LoginView(APIView):
    """POST /api/auth/login (401 bad credentials, 403 pending approval)."""
    permission_classes = [AllowAny]

    def post(self, request):
        ser = LoginSerializer(data=request.data or {})
        ser.is_valid(raise_exception=True)
        try:
            profile = services.sign_in(request, **ser.validated_data)
        except ReviewError as e:
            return _error(e)
        return Response(ProfileSerializer(profile).data, status=status.HTTP_200_OK)


class LogoutView(APIView):
    permission_classes = [AllowAny]

    def post(self, request):
        services.sign_out(request)
        return Response(status=status.HTTP_204_NO_CONTENT)


class MeView(APIView):
    """GET /api/auth/me"""

    def get(self, request):
        profile = profile_of(request.user)
        if profile is None:
            # Superuser operating without a workspace profile.
            return Response({
                'id': request.user.pk,
                'email': request.user.email,
                'full_name': request.user.get_username(),
                'role': 'admin',
                'is_approved': True,
                'created_at': None,
            })
        return Response(ProfileSerializer(profile).data)


class ProfileListView(APIView):
    """GET /api/profiles (admin only, newest first)."""
    permission_classes = [IsAdminRole]

    def get(self, request):
        qs = Profile.objects.select_related("user").order_by("-created_at", "-user_id")
        return Response(ProfileSerializer(qs, many=True).data)


class ProfileDetailView(APIView):
    """
    GET   /api/profiles/{id}
    PATCH /api/profiles/{id}  body: {is_approved?, role?}
    """
    permission_classes = [IsAdminRole]

    def get(self, request, pk: int):
        try:
            profile = services.get_profile(pk)
        except ReviewError as e:
            return _error(e)
        return Response(ProfileSerializer(profile).data)

    def patch(self, request, pk: int):
        ser = ProfileUpdateSerializer(data=request.data or {})
        ser.is_valid(raise_exception=True)
        try:
            profile = services.update_profile(request.user, pk, **ser.validated_data)
        except ReviewError as e:
            return _error(e)
        return Response(ProfileSerializer(profile).data)

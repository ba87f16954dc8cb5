# accounts/serializers.py
from django.contrib.auth import get_user_model
from django.contrib.auth.password_validation import validate_password
from rest_framework import serializers

from review.serializers import AwareDateTimeField

from .models import Profile, Role
from .services import DUPLICATE_EMAIL, normalize_email


class RegisterSerializer(serializers.Serializer):
    """
    Sign-up payload.
    Notes:
      - email doubles as the username (stored lower-cased).
      - the resulting profile is an unapproved validator.
    """
    email = serializers.EmailField(max_length=150)
    password = serializers.CharField(write_only=True, trim_whitespace=False)
    full_name = serializers.CharField(max_length=150, allow_blank=True, required=False, default="")

    def validate_email(self, v: str):
        v = normalize_email(v)
        if get_user_model().objects.filter(username=v).exists():
            raise serializers.ValidationError(DUPLICATE_EMAIL)
        return v

    def validate(self, attrs):
        User = get_user_model()
        candidate = User(username=attrs["email"], email=attrs["email"])
        validate_password(attrs["password"], user=candidate)
        return attrs


class LoginSerializer(serializers.Serializer):
    email = serializers.CharField()
    password = serializers.CharField(write_only=True, trim_whitespace=False)


class ProfileSerializer(serializers.ModelSerializer):
    id = serializers.IntegerField(source="user_id", read_only=True)
    email = serializers.EmailField(source="user.email", read_only=True)
    created_at = AwareDateTimeField(read_only=True)

    class Meta:
        model = Profile
        fields = ("id", "email", "full_name", "role", "is_approved", "created_at")
        read_only_fields = fields


class ProfileUpdateSerializer(serializers.Serializer):
    is_approved = serializers.BooleanField(required=False)
    role = serializers.ChoiceField(choices=Role.choices, required=False)

    def validate(self, attrs):
        if not attrs:
            raise serializers.ValidationError("Provide is_approved and/or role.")
        return attrs

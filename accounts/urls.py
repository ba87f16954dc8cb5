from django.urls import path
from .views import (
    LoginView,
    LogoutView,
    MeView,
    ProfileDetailView,
    ProfileListView,
    RegisterView,
)

urlpatterns = [
    path("auth/register", RegisterView.as_view(), name="auth-register"),
    path("auth/login", LoginView.as_view(), name="auth-login"),
    path("auth/logout", LogoutView.as_view(), name="auth-logout"),
    path("auth/me", MeView.as_view(), name="auth-me"),
    path("profiles", ProfileListView.as_view(), name="profile-list"),
    path("profiles/<int:pk>", ProfileDetailView.as_view(), name="profile-detail"),
]

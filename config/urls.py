from django.contrib import admin
from django.urls import include, path

urlpatterns = [
    # =========================
    # Admin (out-of-band exercise management)
    # =========================
    path("admin/", admin.site.urls),

    # =========================
    # API
    # =========================
    path("api/", include("accounts.urls")),
    path("api/", include("review.urls")),
]

"""URL routing for loyalty points."""

from __future__ import annotations

from django.urls import include, path  # type: ignore
from rest_framework.routers import DefaultRouter  # type: ignore

from .views import LoyaltyViewSet

router = DefaultRouter()
router.register(r"", LoyaltyViewSet, basename="loyalty")

urlpatterns = [
    path("", include(router.urls)),
]

"""URL configuration for the booking core.

Routes the admin site and the versioned API of each domain app.
"""
from django.contrib import admin  # type: ignore
from django.urls import path, include  # type: ignore

urlpatterns = [
    path('admin/', admin.site.urls),
    path('api/v1/bookings/', include('apps.bookings.urls')),
    path('api/v1/payments/', include('apps.payments.urls')),
    path('api/v1/providers/', include('apps.providers.urls')),
    path('api/v1/loyalty/', include('apps.loyalty.urls')),
]

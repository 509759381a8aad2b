"""URL routes for the providers app."""

from django.urls import path

from .views import DuffelWebhookView, OfferSearchView

urlpatterns = [
    path("search/", OfferSearchView.as_view(), name="offer-search"),
    path("duffel/webhook/", DuffelWebhookView.as_view(), name="duffel-webhook"),
]

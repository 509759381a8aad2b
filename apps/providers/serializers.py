"""Serializers for offer search."""

from __future__ import annotations

from rest_framework import serializers

from shared.domain.value_objects import SUPPORTED_CURRENCIES

from .choices import Provider


class OfferSearchSerializer(serializers.Serializer):
    provider = serializers.ChoiceField(choices=Provider.choices)
    currency = serializers.ChoiceField(choices=[(code, code) for code in SUPPORTED_CURRENCIES])
    criteria = serializers.DictField(default=dict)

    def to_internal_value(self, data):
        if hasattr(data, "copy"):
            data = data.copy()
            if isinstance(data.get("currency"), str):
                data["currency"] = data["currency"].upper()
        return super().to_internal_value(data)

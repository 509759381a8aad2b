"""Request serializers for the loyalty endpoints."""

from __future__ import annotations

from rest_framework import serializers  # type: ignore

from .models import LoyaltyTransaction
from .services import MAX_PAGE_SIZE


class TransactionHistoryQuerySerializer(serializers.Serializer):
    page = serializers.IntegerField(min_value=1, default=1)
    limit = serializers.IntegerField(min_value=1, max_value=MAX_PAGE_SIZE, default=20)
    type = serializers.ChoiceField(choices=LoyaltyTransaction.Type.choices, required=False)


class RedeemSerializer(serializers.Serializer):
    reward_rule_id = serializers.UUIDField()


class AdjustPointsSerializer(serializers.Serializer):
    user_id = serializers.CharField(max_length=64)
    points = serializers.IntegerField()
    reason = serializers.CharField(max_length=200)

    def validate_points(self, value: int) -> int:
        if value == 0:
            raise serializers.ValidationError("Points adjustment cannot be 0.")
        return value

"""API views for loyalty points and rewards."""

from __future__ import annotations

from dataclasses import asdict

from rest_framework import permissions, status, viewsets  # type: ignore
from rest_framework.decorators import action  # type: ignore
from rest_framework.response import Response  # type: ignore

from .serializers import AdjustPointsSerializer, RedeemSerializer, TransactionHistoryQuerySerializer
from .services import LoyaltyService


class LoyaltyViewSet(viewsets.ViewSet):
    """The signed-in customer's points; ``adjust`` is staff only."""

    permission_classes = [permissions.IsAuthenticated]
    service_class = LoyaltyService

    def get_service(self):
        return self.service_class()

    def list(self, request):
        return Response(self.get_service().get_summary(request.user.pk))

    @action(detail=False, methods=["get"])
    def transactions(self, request):  # type: ignore
        serializer = TransactionHistoryQuerySerializer(data=request.query_params)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data
        return Response(
            self.get_service().transaction_history(
                request.user.pk,
                page=data["page"],
                limit=data["limit"],
                transaction_type=data.get("type"),
            )
        )

    @action(detail=False, methods=["get"], url_path="available-rewards")
    def available_rewards(self, request):  # type: ignore
        rewards = self.get_service().available_rewards(request.user.pk)
        return Response({"count": len(rewards), "results": rewards})

    @action(detail=False, methods=["post"])
    def redeem(self, request):  # type: ignore
        serializer = RedeemSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        redeemed = self.get_service().redeem_points_for_voucher(
            request.user.pk, serializer.validated_data["reward_rule_id"]
        )
        return Response(asdict(redeemed), status=status.HTTP_201_CREATED)

    @action(detail=False, methods=["post"], permission_classes=[permissions.IsAdminUser])
    def adjust(self, request):  # type: ignore
        serializer = AdjustPointsSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data
        account = self.get_service().admin_adjust_points(
            data["user_id"], data["points"], data["reason"], request.user.pk
        )
        return Response(
            {"user_id": account.user_id, "balance": account.balance, "tier": account.tier},
            status=status.HTTP_200_OK,
        )

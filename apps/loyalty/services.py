"""Loyalty points: earning from bookings, redemption for vouchers and admin adjustments."""

from __future__ import annotations

import logging
import math
import secrets
import string
from dataclasses import dataclass
from datetime import timedelta
from decimal import ROUND_FLOOR, Decimal

from django.core.exceptions import ValidationError  # type: ignore
from django.db import IntegrityError, transaction  # type: ignore
from django.utils import timezone  # type: ignore

from apps.bookings.exceptions import InvalidState, NotFound
from apps.vouchers.models import Voucher

from .models import (
    TIER_ORDER,
    LoyaltyAccount,
    LoyaltyTierConfig,
    LoyaltyTransaction,
    PointsEarningRule,
    RewardRule,
    tier_rank,
)

logger = logging.getLogger(__name__)

VOUCHER_CODE_PREFIX = "EBT-V-"
VOUCHER_CODE_ALPHABET = string.ascii_uppercase + string.digits
RECENT_TRANSACTIONS = 20
MAX_PAGE_SIZE = 100


@dataclass(frozen=True)
class PointsEarned:
    points_earned: int
    new_balance: int


@dataclass(frozen=True)
class RedeemedVoucher:
    voucher_id: str
    voucher_code: str
    points_spent: int
    new_balance: int


def _floor(value: Decimal) -> int:
    return int(value.to_integral_value(rounding=ROUND_FLOOR))


def generate_voucher_code() -> str:
    return VOUCHER_CODE_PREFIX + "".join(secrets.choice(VOUCHER_CODE_ALPHABET) for _ in range(8))


def _transaction_payload(entry: LoyaltyTransaction) -> dict:
    return {
        "id": str(entry.pk),
        "type": entry.type,
        "points": entry.points,
        "balance": entry.balance,
        "description": entry.description,
        "reference_type": entry.reference_type or None,
        "reference_id": entry.reference_id or None,
        "created_at": entry.created_at.isoformat(),
    }


class LoyaltyService:
    def get_or_create_account(self, user_id) -> LoyaltyAccount:
        account, created = LoyaltyAccount.objects.get_or_create(user_id=str(user_id))
        if created:
            logger.info(f"Created loyalty account for user {user_id}")
        return account

    def _locked_account(self, user_id) -> LoyaltyAccount:
        self.get_or_create_account(user_id)
        return LoyaltyAccount.objects.select_for_update().get(user_id=str(user_id))

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_summary(self, user_id) -> dict:
        account = self.get_or_create_account(user_id)
        tier_config = LoyaltyTierConfig.objects.filter(tier=account.tier).first()

        next_tier = None
        rank = tier_rank(account.tier)
        if rank < len(TIER_ORDER) - 1:
            next_config = LoyaltyTierConfig.objects.filter(tier=TIER_ORDER[rank + 1]).first()
            if next_config is not None:
                next_tier = {
                    "tier": next_config.tier,
                    "points_required": next_config.min_points,
                    "points_to_go": max(0, next_config.min_points - account.total_earned),
                }

        recent = LoyaltyTransaction.objects.filter(user_id=account.user_id)[:RECENT_TRANSACTIONS]
        return {
            "account": {
                "balance": account.balance,
                "total_earned": account.total_earned,
                "tier": account.tier,
                "tier_benefits": tier_config.benefits if tier_config else [],
                "tier_description": (tier_config.description or None) if tier_config else None,
                "points_multiplier": str(tier_config.points_multiplier) if tier_config else "1.00",
            },
            "next_tier": next_tier,
            "recent_transactions": [_transaction_payload(entry) for entry in recent],
        }

    def transaction_history(
        self, user_id, *, page: int = 1, limit: int = 20, transaction_type: str | None = None
    ) -> dict:
        page = max(page, 1)
        limit = min(max(limit, 1), MAX_PAGE_SIZE)

        entries = LoyaltyTransaction.objects.filter(user_id=str(user_id))
        if transaction_type:
            entries = entries.filter(type=transaction_type)

        total = entries.count()
        offset = (page - 1) * limit
        return {
            "data": [_transaction_payload(entry) for entry in entries[offset:offset + limit]],
            "meta": {
                "total": total,
                "page": page,
                "limit": limit,
                "total_pages": math.ceil(total / limit),
            },
        }

    def available_rewards(self, user_id) -> list[dict]:
        """Active rewards the user's tier unlocks, cheapest first."""
        account = self.get_or_create_account(user_id)
        rank = tier_rank(account.tier)

        rewards = []
        for rule in RewardRule.objects.filter(is_active=True):
            if rule.required_tier and tier_rank(rule.required_tier) > rank:
                continue
            rewards.append({
                "id": str(rule.pk),
                "name": rule.name,
                "description": rule.description,
                "points_required": rule.points_required,
                "discount_type": rule.discount_type,
                "discount_value": str(rule.discount_value),
                "currency": rule.currency or None,
                "max_discount_amount": str(rule.max_discount_amount) if rule.max_discount_amount else None,
                "applicable_products": rule.applicable_products,
                "required_tier": rule.required_tier or None,
                "can_redeem": account.balance >= rule.points_required,
            })
        return rewards

    # ------------------------------------------------------------------
    # Ledger
    # ------------------------------------------------------------------

    def _credit(self, account: LoyaltyAccount, points: int, entry_type: str, description: str,
                reference_type: str = "", reference_id: str = "") -> LoyaltyAccount:
        account.balance += points
        account.total_earned += points
        account.save(update_fields=["balance", "total_earned", "updated_at"])
        LoyaltyTransaction.objects.create(
            user_id=account.user_id,
            type=entry_type,
            points=points,
            balance=account.balance,
            description=description,
            reference_type=reference_type,
            reference_id=reference_id,
        )
        self._update_tier(account)
        return account

    def _debit(self, account: LoyaltyAccount, points: int, entry_type: str, description: str,
               reference_type: str = "", reference_id: str = "") -> LoyaltyAccount:
        if account.balance < points:
            raise InvalidState("Insufficient points balance.")
        account.balance -= points
        account.save(update_fields=["balance", "updated_at"])
        LoyaltyTransaction.objects.create(
            user_id=account.user_id,
            type=entry_type,
            points=-points,
            balance=account.balance,
            description=description,
            reference_type=reference_type,
            reference_id=reference_id,
        )
        return account

    def _update_tier(self, account: LoyaltyAccount) -> None:
        config = (
            LoyaltyTierConfig.objects.filter(min_points__lte=account.total_earned)
            .order_by("-min_points")
            .first()
        )
        if config is None or config.tier == account.tier:
            return
        previous = account.tier
        account.tier = config.tier
        account.save(update_fields=["tier", "updated_at"])
        logger.info(f"User {account.user_id} tier updated: {previous} -> {account.tier}")

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    def earn_points_from_booking(
        self,
        user_id,
        booking_id,
        product_type: str,
        total_amount,
        currency: str,
    ) -> PointsEarned:
        """
        Credit points for a paid booking.

        ``floor(total * points_per_unit) + bonus_points``, then scaled by the
        tier multiplier when it is above one. A booking earns at most once.
        """
        rule = PointsEarningRule.objects.filter(product_type=product_type, is_active=True).first()
        if rule is None:
            logger.info(f"No active earning rule for {product_type}, skipping points")
            return PointsEarned(0, 0)

        total_amount = Decimal(str(total_amount))
        if rule.min_booking_amount and total_amount < rule.min_booking_amount:
            logger.info(
                f"Booking amount {total_amount} {currency} below minimum {rule.min_booking_amount} for points"
            )
            return PointsEarned(0, 0)

        points = _floor(total_amount * rule.points_per_unit) + rule.bonus_points
        readable = product_type.replace("_", " ").lower()

        try:
            with transaction.atomic():
                account = self._locked_account(user_id)
                already_earned = LoyaltyTransaction.objects.filter(
                    type=LoyaltyTransaction.Type.EARN,
                    reference_type=LoyaltyTransaction.ReferenceType.BOOKING,
                    reference_id=str(booking_id),
                ).exists()
                if already_earned:
                    logger.info(f"Booking {booking_id} already earned points")
                    return PointsEarned(0, account.balance)

                tier_config = LoyaltyTierConfig.objects.filter(tier=account.tier).first()
                if tier_config and tier_config.points_multiplier > 1:
                    points = _floor(points * tier_config.points_multiplier)
                if points <= 0:
                    return PointsEarned(0, account.balance)

                account = self._credit(
                    account,
                    points,
                    LoyaltyTransaction.Type.EARN,
                    f"Points earned from {readable} booking",
                    LoyaltyTransaction.ReferenceType.BOOKING,
                    str(booking_id),
                )
        except IntegrityError:
            # Concurrent delivery of the same payment credited first
            logger.info(f"Booking {booking_id} already earned points")
            return PointsEarned(0, self.get_or_create_account(user_id).balance)

        logger.info(
            f"User {user_id} earned {points} points from booking {booking_id}. New balance: {account.balance}"
        )
        return PointsEarned(points, account.balance)

    def redeem_points_for_voucher(self, user_id, reward_rule_id) -> RedeemedVoucher:
        user_id = str(user_id)
        with transaction.atomic():
            try:
                rule = RewardRule.objects.select_for_update().get(pk=reward_rule_id, is_active=True)
            except (RewardRule.DoesNotExist, ValueError, ValidationError):
                raise NotFound("Reward not found or inactive.") from None
            account = self._locked_account(user_id)

            if rule.required_tier and tier_rank(account.tier) < tier_rank(rule.required_tier):
                raise InvalidState(
                    f"This reward requires {rule.required_tier} tier. Your current tier is {account.tier}."
                )
            if account.balance < rule.points_required:
                raise InvalidState(
                    f"Insufficient points. You have {account.balance} but need {rule.points_required}."
                )
            if rule.max_usage_per_user:
                redeemed = Voucher.objects.filter(user_id=user_id, reward_rule_id=str(rule.pk)).count()
                if redeemed >= rule.max_usage_per_user:
                    raise InvalidState("You have reached the maximum redemption limit for this reward.")
            if rule.max_total_usage and rule.current_usage_count >= rule.max_total_usage:
                raise InvalidState("This reward has reached its maximum total redemptions.")

            voucher = Voucher.objects.create(
                code=generate_voucher_code(),
                user_id=user_id,
                reward_rule_id=str(rule.pk),
                discount_type=rule.discount_type,
                discount_value=rule.discount_value,
                currency=rule.currency,
                max_discount_amount=rule.max_discount_amount,
                applicable_products=rule.applicable_products,
                min_booking_amount=rule.min_booking_amount,
                expires_at=timezone.now() + timedelta(days=rule.validity_days),
            )
            rule.current_usage_count += 1
            rule.save(update_fields=["current_usage_count"])

            account = self._debit(
                account,
                rule.points_required,
                LoyaltyTransaction.Type.REDEEM,
                f"Redeemed for voucher: {rule.name}",
                LoyaltyTransaction.ReferenceType.VOUCHER_REDEMPTION,
                str(voucher.pk),
            )

        logger.info(f"User {user_id} redeemed {rule.points_required} points for voucher {voucher.code}")
        return RedeemedVoucher(
            voucher_id=str(voucher.pk),
            voucher_code=voucher.code,
            points_spent=rule.points_required,
            new_balance=account.balance,
        )

    def admin_adjust_points(self, user_id, points: int, reason: str, admin_id) -> LoyaltyAccount:
        if points == 0:
            raise InvalidState("Points adjustment cannot be 0.")

        description = f"Admin adjustment: {reason}"
        with transaction.atomic():
            account = self._locked_account(user_id)
            if points > 0:
                account = self._credit(
                    account, points, LoyaltyTransaction.Type.ADMIN_CREDIT, description,
                    LoyaltyTransaction.ReferenceType.ADMIN_ADJUSTMENT, str(admin_id),
                )
            else:
                account = self._debit(
                    account, -points, LoyaltyTransaction.Type.ADMIN_DEBIT, description,
                    LoyaltyTransaction.ReferenceType.ADMIN_ADJUSTMENT, str(admin_id),
                )

        logger.info(f"Admin {admin_id} adjusted points of user {user_id} by {points:+d}")
        return account

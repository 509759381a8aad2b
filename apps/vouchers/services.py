"""Voucher validation and discount calculation."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal

from django.utils import timezone  # type: ignore

from apps.bookings.exceptions import InvalidState, NotFound
from shared.domain.value_objects import quantize_amount

from .models import Voucher

logger = logging.getLogger(__name__)


class InvalidVoucher(InvalidState):
    default_message = "Invalid voucher."


@dataclass(frozen=True)
class VoucherValidation:
    is_valid: bool
    voucher: Voucher | None = None
    error: str = ""


@dataclass(frozen=True)
class VoucherDiscount:
    original_amount: Decimal
    discount_amount: Decimal
    final_amount: Decimal
    currency: str
    voucher_id: str
    voucher_code: str


class VoucherService:
    def validate_voucher(
        self,
        code: str,
        user_id: str,
        product_type: str,
        amount: Decimal,
        currency: str,
    ) -> VoucherValidation:
        voucher = Voucher.objects.filter(code=code.strip().upper()).first()
        if voucher is None:
            return VoucherValidation(False, error="Voucher code not found")

        if voucher.user_id != str(user_id):
            return VoucherValidation(False, error="This voucher does not belong to you")

        if voucher.status != Voucher.Status.ACTIVE:
            return VoucherValidation(False, error=f"Voucher is {voucher.status.lower()}")

        if voucher.is_expired:
            Voucher.objects.filter(pk=voucher.pk, status=Voucher.Status.ACTIVE).update(
                status=Voucher.Status.EXPIRED
            )
            return VoucherValidation(False, error="Voucher has expired")

        if voucher.min_booking_amount and amount < voucher.min_booking_amount:
            return VoucherValidation(
                False,
                error=(
                    f"Minimum booking amount of {voucher.min_booking_amount} "
                    f"{voucher.currency or currency} required"
                ),
            )

        if voucher.applicable_products and product_type not in voucher.applicable_products:
            readable = product_type.replace("_", " ").lower()
            return VoucherValidation(False, error=f"This voucher is not applicable to {readable} bookings")

        if (
            voucher.discount_type == Voucher.DiscountType.FIXED_AMOUNT
            and voucher.currency
            and voucher.currency.upper() != currency.upper()
        ):
            return VoucherValidation(False, error=f"This voucher is only valid for {voucher.currency} bookings")

        return VoucherValidation(True, voucher=voucher)

    @staticmethod
    def calculate_discount(voucher: Voucher, amount: Decimal, currency: str) -> Decimal:
        if voucher.discount_type == Voucher.DiscountType.PERCENTAGE:
            discount = amount * voucher.discount_value / Decimal("100")
            if voucher.max_discount_amount:
                discount = min(discount, voucher.max_discount_amount)
        else:
            discount = voucher.discount_value

        return quantize_amount(min(discount, amount), currency)

    def apply_voucher(
        self,
        code: str,
        user_id: str,
        product_type: str,
        amount,
        currency: str,
    ) -> VoucherDiscount:
        amount = Decimal(str(amount))
        validation = self.validate_voucher(code, user_id, product_type, amount, currency)
        if not validation.is_valid or validation.voucher is None:
            raise InvalidVoucher(validation.error or None)

        voucher = validation.voucher
        discount = self.calculate_discount(voucher, amount, currency)
        return VoucherDiscount(
            original_amount=amount,
            discount_amount=discount,
            final_amount=amount - discount,
            currency=currency.upper(),
            voucher_id=str(voucher.pk),
            voucher_code=voucher.code,
        )

    def mark_voucher_as_used(self, voucher_id: str, booking_id: str) -> None:
        updated = Voucher.objects.filter(pk=voucher_id).update(
            status=Voucher.Status.USED,
            used_at=timezone.now(),
            used_on_booking_id=str(booking_id),
        )
        if not updated:
            raise NotFound("Voucher not found.")
        logger.info(f"Voucher {voucher_id} marked as used for booking {booking_id}")

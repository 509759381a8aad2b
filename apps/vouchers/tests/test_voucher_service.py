"""Tests for voucher validation and discounts."""

from datetime import timedelta
from decimal import Decimal

import pytest
from django.utils import timezone

from apps.providers.choices import ProductType
from apps.vouchers.models import Voucher
from apps.vouchers.services import InvalidVoucher, VoucherService
from apps.vouchers.tasks import expire_vouchers


def make_voucher(**overrides) -> Voucher:
    data = {
        "code": "SAVE10",
        "user_id": "user-1",
        "discount_type": Voucher.DiscountType.PERCENTAGE,
        "discount_value": Decimal("10"),
        "expires_at": timezone.now() + timedelta(days=30),
    }
    data.update(overrides)
    return Voucher.objects.create(**data)


@pytest.mark.django_db
def test_percentage_voucher_discount():
    make_voucher()

    result = VoucherService().apply_voucher("save10", "user-1", ProductType.HOTEL, Decimal("500.00"), "GBP")

    assert result.discount_amount == Decimal("50.00")
    assert result.final_amount == Decimal("450.00")
    assert result.voucher_code == "SAVE10"


@pytest.mark.django_db
def test_percentage_voucher_is_capped():
    make_voucher(max_discount_amount=Decimal("20.00"))

    result = VoucherService().apply_voucher("SAVE10", "user-1", ProductType.HOTEL, Decimal("500.00"), "GBP")

    assert result.discount_amount == Decimal("20.00")


@pytest.mark.django_db
def test_fixed_voucher_never_exceeds_amount():
    make_voucher(
        code="FLAT100",
        discount_type=Voucher.DiscountType.FIXED_AMOUNT,
        discount_value=Decimal("100.00"),
        currency="GBP",
    )

    result = VoucherService().apply_voucher("FLAT100", "user-1", ProductType.HOTEL, Decimal("60.00"), "GBP")

    assert result.discount_amount == Decimal("60.00")
    assert result.final_amount == Decimal("0.00")


@pytest.mark.django_db
def test_fixed_voucher_requires_matching_currency():
    make_voucher(
        code="FLAT10",
        discount_type=Voucher.DiscountType.FIXED_AMOUNT,
        discount_value=Decimal("10.00"),
        currency="USD",
    )

    with pytest.raises(InvalidVoucher, match="only valid for USD"):
        VoucherService().apply_voucher("FLAT10", "user-1", ProductType.HOTEL, Decimal("60.00"), "GBP")


@pytest.mark.django_db
@pytest.mark.parametrize(
    "overrides, user_id, product_type, amount, message",
    [
        ({}, "someone-else", ProductType.HOTEL, Decimal("100"), "does not belong to you"),
        ({"status": Voucher.Status.USED}, "user-1", ProductType.HOTEL, Decimal("100"), "Voucher is used"),
        ({"min_booking_amount": Decimal("200")}, "user-1", ProductType.HOTEL, Decimal("100"), "Minimum booking amount"),
        ({"applicable_products": ["HOTEL"]}, "user-1", ProductType.CAR_RENTAL, Decimal("100"), "car rental"),
    ],
)
def test_voucher_rejections(overrides, user_id, product_type, amount, message):
    make_voucher(**overrides)

    with pytest.raises(InvalidVoucher, match=message):
        VoucherService().apply_voucher("SAVE10", user_id, product_type, amount, "GBP")


@pytest.mark.django_db
def test_unknown_code_is_rejected():
    with pytest.raises(InvalidVoucher, match="not found"):
        VoucherService().apply_voucher("NOPE", "user-1", ProductType.HOTEL, Decimal("100"), "GBP")


@pytest.mark.django_db
def test_expired_voucher_is_marked_expired():
    voucher = make_voucher(expires_at=timezone.now() - timedelta(minutes=1))

    validation = VoucherService().validate_voucher("SAVE10", "user-1", ProductType.HOTEL, Decimal("100"), "GBP")

    assert validation.is_valid is False
    voucher.refresh_from_db()
    assert voucher.status == Voucher.Status.EXPIRED


@pytest.mark.django_db
def test_mark_voucher_as_used():
    voucher = make_voucher()

    VoucherService().mark_voucher_as_used(str(voucher.pk), "booking-1")

    voucher.refresh_from_db()
    assert voucher.status == Voucher.Status.USED
    assert voucher.used_on_booking_id == "booking-1"
    assert voucher.used_at is not None


@pytest.mark.django_db
def test_expire_vouchers_task():
    make_voucher(code="OLD", expires_at=timezone.now() - timedelta(days=1))
    make_voucher(code="FRESH")

    assert expire_vouchers() == 1
    assert Voucher.objects.get(code="FRESH").status == Voucher.Status.ACTIVE

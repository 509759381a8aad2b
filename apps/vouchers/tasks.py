"""Celery tasks for vouchers."""

from __future__ import annotations

import logging

from celery import shared_task
from django.utils import timezone

from .models import Voucher

logger = logging.getLogger(__name__)


@shared_task(name="vouchers.expire_vouchers")
def expire_vouchers() -> int:
    expired = Voucher.objects.filter(
        status=Voucher.Status.ACTIVE,
        expires_at__lt=timezone.now(),
    ).update(status=Voucher.Status.EXPIRED)
    if expired:
        logger.info(f"Expired {expired} vouchers")
    return expired

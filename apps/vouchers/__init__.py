"""Vouchers app package.

Loyalty vouchers owned by a single user. A voucher's discount is computed
once, frozen onto the booking when the payment intent is issued and
consumed when the payment succeeds.
"""

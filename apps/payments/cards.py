"""Canonical card payload and its vault round trip."""

from __future__ import annotations

from dataclasses import dataclass

from shared.infrastructure.encryption import get_card_vault


@dataclass(frozen=True)
class CardDetails:
    """
    A payment card as the providers need it.

    ``expiry_date`` is ``YYYY-MM``. Instances must never be logged; use
    ``masked()`` for anything user- or operator-facing.
    """
    vendor_code: str
    card_number: str
    expiry_date: str
    holder_name: str
    security_code: str = ""

    def __repr__(self) -> str:
        return f"CardDetails({self.masked()})"

    __str__ = __repr__

    @property
    def last4(self) -> str:
        digits = "".join(ch for ch in self.card_number if ch.isdigit())
        return digits[-4:]

    def masked(self) -> str:
        return f"{self.vendor_code} ****{self.last4} exp {self.expiry_date}"

    def to_payload(self) -> dict:
        return {
            "vendorCode": self.vendor_code,
            "cardNumber": self.card_number.replace(" ", ""),
            "expiryDate": self.expiry_date,
            "holderName": self.holder_name,
            "securityCode": self.security_code,
        }

    @classmethod
    def from_payload(cls, payload: dict) -> "CardDetails":
        return cls(
            vendor_code=payload.get("vendorCode", ""),
            card_number=payload.get("cardNumber", ""),
            expiry_date=payload.get("expiryDate", ""),
            holder_name=payload.get("holderName", ""),
            security_code=payload.get("securityCode", ""),
        )


def encrypt_card(card: CardDetails) -> str:
    return get_card_vault().encrypt_json(card.to_payload())


def decrypt_card(token: str) -> CardDetails:
    return CardDetails.from_payload(get_card_vault().decrypt_json(token))


def stored_card_blob(card: CardDetails) -> dict:
    """The shape kept under ``booking_data["payment_card_info"]`` until the order exists."""
    return {"encrypted": encrypt_card(card), "cardLast4": card.last4, "vendorCode": card.vendor_code}

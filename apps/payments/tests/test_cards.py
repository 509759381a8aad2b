"""Tests for card handling and the agency card."""

import pytest

from apps.payments.agency_card import AgencyCardNotConfigured, load_agency_card
from apps.payments.cards import CardDetails, decrypt_card, encrypt_card, stored_card_blob

CARD = CardDetails(
    vendor_code="VI",
    card_number="4151289722471370",
    expiry_date="2030-08",
    holder_name="ADA LOVELACE",
    security_code="123",
)


def test_repr_is_masked():
    assert "4151289722471370" not in repr(CARD)
    assert "4151289722471370" not in f"{CARD}"
    assert repr(CARD) == "CardDetails(VI ****1370 exp 2030-08)"


def test_card_round_trip_through_vault():
    token = encrypt_card(CARD)

    assert "4151289722471370" not in token
    assert decrypt_card(token) == CARD


def test_stored_blob_keeps_only_last_four_in_clear():
    blob = stored_card_blob(CARD)

    assert blob["cardLast4"] == "1370"
    assert blob["vendorCode"] == "VI"
    assert "4151289722471370" not in str(blob)


def test_agency_card_is_loaded_from_settings(settings):
    settings.AMADEUS_AGENCY_CARD_ENCRYPTED = encrypt_card(CARD)

    assert load_agency_card() == CARD


def test_missing_agency_card(settings):
    settings.AMADEUS_AGENCY_CARD_ENCRYPTED = ""

    with pytest.raises(AgencyCardNotConfigured):
        load_agency_card()

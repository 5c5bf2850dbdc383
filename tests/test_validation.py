from __future__ import annotations

import pytest

from fuelportal.validation import FORM_ERROR_KEY, validate_registration

VALID = {
    "stationName": "Shell North",
    "contactPerson": "Jane Doe",
    "phone": "+94771234567",
    "email": "jane@shell.lk",
    "address": "123 Main Street, Colombo",
    "operatingHours": "6 AM - 10 PM",
}


def _with(**overrides: object) -> dict:
    payload = dict(VALID)
    payload.update(overrides)
    return payload


def test_valid_submission_is_accepted_unchanged() -> None:
    result = validate_registration(VALID)

    assert result.ok
    assert result.errors == {}
    assert result.data is not None
    assert result.data.to_dict() == VALID


def test_short_phone_reports_minimum_length() -> None:
    result = validate_registration(_with(phone="12345"))

    assert not result.ok
    assert result.data is None
    assert "Phone number must be at least 10 digits." in result.errors["phone"]


def test_bad_email_reports_format() -> None:
    result = validate_registration(_with(email="not-an-email"))

    assert result.errors == {"email": ["Invalid email address."]}


def test_all_failures_are_reported_together() -> None:
    result = validate_registration(_with(phone="12345", email="not-an-email"))

    assert set(result.errors) == {"phone", "email"}


def test_every_rule_of_a_field_is_checked() -> None:
    result = validate_registration(_with(phone="12345"))

    assert result.errors["phone"] == [
        "Phone number must be at least 10 digits.",
        "Invalid phone number format. Expected format like +1 1234567890 or 1234567890.",
    ]


@pytest.mark.parametrize("phone", ["1234567890", "+1 1234567890", "+94-7712345678", "+947712345678"])
def test_accepted_phone_formats(phone: str) -> None:
    assert validate_registration(_with(phone=phone)).ok


@pytest.mark.parametrize("phone", ["12345678901", "+1  1234567890", "123-456-7890", "abcdefghij"])
def test_rejected_phone_formats(phone: str) -> None:
    assert "phone" in validate_registration(_with(phone=phone)).errors


def test_station_name_length_boundary() -> None:
    assert validate_registration(_with(stationName="ABC")).ok
    result = validate_registration(_with(stationName="AB"))
    assert result.errors == {"stationName": ["Station name must be at least 3 characters long."]}


def test_length_rules_for_remaining_fields() -> None:
    result = validate_registration(_with(contactPerson="Jo", address="Short", operatingHours="9-5"))

    assert result.errors == {
        "contactPerson": ["Contact person name must be at least 3 characters long."],
        "address": ["Address must be at least 10 characters long."],
        "operatingHours": ["Operating hours must be at least 5 characters. E.g., 9 AM - 5 PM"],
    }


def test_missing_and_non_string_fields() -> None:
    payload = _with(phone=771234567)
    del payload["address"]

    result = validate_registration(payload)

    assert result.errors == {"address": ["Required"], "phone": ["Expected string."]}


def test_unknown_keys_are_dropped() -> None:
    result = validate_registration(_with(extra="ignored"))

    assert result.ok
    assert result.data is not None
    assert "extra" not in result.data.to_dict()


@pytest.mark.parametrize("payload", [None, "stationName=Shell", ["Shell North"], 42])
def test_non_mapping_input_is_rejected(payload: object) -> None:
    result = validate_registration(payload)

    assert result.errors == {FORM_ERROR_KEY: ["Expected an object."]}

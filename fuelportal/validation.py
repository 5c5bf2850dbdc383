"""Validation for fuel-station registration submissions.

Each field maps to a list of ``(predicate, message)`` rules. Every rule of
every field runs in a single pass so a submission reports all of its problems
at once.
"""
from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Mapping, Optional, Tuple

from .models import FuelStationRegistrationData

Predicate = Callable[[str], bool]
Rule = Tuple[Predicate, str]

FORM_ERROR_KEY = "form"
REQUIRED_MESSAGE = "Required"
EXPECTED_STRING_MESSAGE = "Expected string."
EXPECTED_OBJECT_MESSAGE = "Expected an object."

PHONE_PATTERN = re.compile(r"^(\+\d{1,3}[- ]?)?\d{10}$", re.ASCII)
EMAIL_PATTERN = re.compile(
    r"^(?!\.)(?!.*\.\.)([A-Z0-9_'+\-.]*)[A-Z0-9_+-]@([A-Z0-9][A-Z0-9\-]*\.)+[A-Z]{2,}$",
    re.IGNORECASE | re.ASCII,
)


def min_length(size: int) -> Predicate:
    return lambda value: len(value) >= size


def matches(pattern: re.Pattern[str]) -> Predicate:
    return lambda value: pattern.fullmatch(value) is not None


@dataclass(frozen=True)
class FieldSpec:
    attribute: str
    rules: Tuple[Rule, ...]


REGISTRATION_RULES: Dict[str, FieldSpec] = {
    "stationName": FieldSpec(
        "station_name",
        ((min_length(3), "Station name must be at least 3 characters long."),),
    ),
    "contactPerson": FieldSpec(
        "contact_person",
        ((min_length(3), "Contact person name must be at least 3 characters long."),),
    ),
    "phone": FieldSpec(
        "phone",
        (
            (min_length(10), "Phone number must be at least 10 digits."),
            (
                matches(PHONE_PATTERN),
                "Invalid phone number format. Expected format like +1 1234567890 or 1234567890.",
            ),
        ),
    ),
    "email": FieldSpec(
        "email",
        ((matches(EMAIL_PATTERN), "Invalid email address."),),
    ),
    "address": FieldSpec(
        "address",
        ((min_length(10), "Address must be at least 10 characters long."),),
    ),
    "operatingHours": FieldSpec(
        "operating_hours",
        ((min_length(5), "Operating hours must be at least 5 characters. E.g., 9 AM - 5 PM"),),
    ),
}


@dataclass(frozen=True)
class ValidationResult:
    data: Optional[FuelStationRegistrationData] = None
    errors: Dict[str, List[str]] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return self.data is not None and not self.errors


def _check_field(value: object, spec: FieldSpec) -> List[str]:
    if value is None:
        return [REQUIRED_MESSAGE]
    if not isinstance(value, str):
        return [EXPECTED_STRING_MESSAGE]
    return [message for predicate, message in spec.rules if not predicate(value)]


def validate_registration(data: object) -> ValidationResult:
    """Validate an untyped registration payload keyed by the form field names."""

    if not isinstance(data, Mapping):
        return ValidationResult(errors={FORM_ERROR_KEY: [EXPECTED_OBJECT_MESSAGE]})

    errors: Dict[str, List[str]] = {}
    values: Dict[str, str] = {}
    for name, spec in REGISTRATION_RULES.items():
        value = data.get(name)
        messages = _check_field(value, spec)
        if messages:
            errors[name] = messages
        else:
            values[spec.attribute] = value  # type: ignore[assignment]

    if errors:
        return ValidationResult(errors=errors)
    return ValidationResult(data=FuelStationRegistrationData(**values))


__all__ = [
    "FORM_ERROR_KEY",
    "REGISTRATION_RULES",
    "FieldSpec",
    "ValidationResult",
    "validate_registration",
]

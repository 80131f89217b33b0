"""Phone number helpers for mobile-money requests."""

from __future__ import annotations

import re

from ma3pay.utils.errors import InvalidInputError

_SEPARATORS = re.compile(r"[\s\-]")
_ACCEPTED_PREFIXES = ("254", "07", "01")


def normalise_phone(phone: str) -> str:
    """Return ``phone`` in the ``2547XXXXXXXX`` form the payment gateway expects."""
    cleaned = _SEPARATORS.sub("", phone)
    if cleaned.startswith("+"):
        cleaned = cleaned[1:]
    if cleaned.startswith("07") or cleaned.startswith("01"):
        cleaned = "254" + cleaned[1:]
    if not cleaned.startswith("254"):
        cleaned = "254" + cleaned
    return cleaned


def validate_mobile_money_phone(phone: str) -> str:
    """Validate a phone entered for an STK push and return it normalised.

    Raises:
        InvalidInputError: if the number is empty, has a foreign prefix, or
            is not 12 digits once normalised.
    """
    cleaned = _SEPARATORS.sub("", phone or "").lstrip("+")
    if not cleaned:
        raise InvalidInputError("Enter phone number to receive STK push.")
    if not cleaned.startswith(_ACCEPTED_PREFIXES):
        raise InvalidInputError("Please enter a valid phone number")

    normalised = normalise_phone(cleaned)
    if not normalised.isdigit() or len(normalised) != 12:
        raise InvalidInputError("Please enter a valid phone number")
    return normalised

"""
Phone number helpers - shape detection with the phonenumbers library.

Shape detection is looser than validation: the provider reports caller ids
verbatim, and a number that merely *looks* like a phone number is enough to
classify a call as a telephone call.
"""
import re
from typing import Optional

import phonenumbers

_DIGITS_ONLY = re.compile(r"\D")
# Digits plus the separators people and carriers put between them
_PHONE_CHARS = re.compile(r"^\+?[\d\s\-().]+$")


def digit_count(value: str) -> int:
    """Number of digits in a string, ignoring every other character."""
    return len(_DIGITS_ONLY.sub("", value))


def has_phone_shape(value: Optional[str], min_digits: int = 7, default_region: str = "US") -> bool:
    """
    True when the value looks like a telephone number.

    Accepts:
    - +14155551234, +44 20 7946 0958 → leading "+" and at least min_digits digits
    - 4155551234, (415) 555-1234     → possible number in default_region

    Letters anywhere in the value reject it outright, so vanity numbers and
    placeholder strings such as "unknown-format" never count as phones.
    """
    if not value or not value.strip():
        return False

    cleaned = value.strip()
    if not _PHONE_CHARS.match(cleaned):
        return False

    if cleaned.startswith("+") and digit_count(cleaned) >= min_digits:
        return True

    try:
        parsed = phonenumbers.parse(cleaned, default_region)
    except phonenumbers.NumberParseException:
        return False
    return phonenumbers.is_possible_number(parsed)


def mask_phone_for_log(phone: Optional[str]) -> str:
    """Mask phone for logging: show first 6 characters + ***."""
    if not phone:
        return ""
    if len(phone) > 6:
        return phone[:6] + "***"
    return phone

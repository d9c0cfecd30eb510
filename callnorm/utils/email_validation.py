"""
Email format validation.
Only the syntactic check is needed here: the normalizer decides whether a
metadata field is email-shaped, it never talks to mail servers.
"""
import re
from typing import Any, Optional

# RFC 5322 simplified - covers 99%+ of valid emails
EMAIL_REGEX = re.compile(
    r"^[a-zA-Z0-9.!#$%&'*+/=?^_`{|}~-]+@[a-zA-Z0-9]"
    r"(?:[a-zA-Z0-9-]{0,61}[a-zA-Z0-9])?(?:\.[a-zA-Z0-9]"
    r"(?:[a-zA-Z0-9-]{0,61}[a-zA-Z0-9])?)*\.[a-zA-Z]{2,}$"
)


def is_valid_email_format(email: Any) -> bool:
    """
    Check if email matches a valid format (RFC 5322 simplified).

    Args:
        email: Candidate value; anything that is not a string is rejected

    Returns:
        True if format is valid
    """
    if not isinstance(email, str) or not email or len(email) > 254:
        return False
    return bool(EMAIL_REGEX.match(email.strip()))


def clean_email(email: Any) -> Optional[str]:
    """Return the stripped email if it is well formed, else None."""
    if not is_valid_email_format(email):
        return None
    return email.strip()

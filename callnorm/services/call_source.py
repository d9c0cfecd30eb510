"""
Call source classification - phone vs internet vs unknown.

Decision order (first match wins):
1. Caller id missing on an identified call, the "internal" sentinel,
   or a web-ish call type                   → internet
2. Caller id shaped like a phone number     → phone
3. Anything else                            → unknown

Total and pure: every CallMetadata maps to exactly one CallSource.
"""
import logging
from typing import Optional

from callnorm.config import get_settings
from callnorm.schemas.normalized_webhook import CallMetadata, CallSource, ContactInfo
from callnorm.utils.email_validation import clean_email
from callnorm.utils.phone import has_phone_shape, mask_phone_for_log

logger = logging.getLogger(__name__)


def _contact_or_none(
    phone_number: Optional[str] = None,
    name: Optional[str] = None,
    email: Optional[str] = None,
) -> Optional[ContactInfo]:
    """Only build a ContactInfo when at least one field is known."""
    contact = ContactInfo(phone_number=phone_number, name=name, email=email)
    return None if contact.is_empty() else contact


def _is_identified_call(metadata: CallMetadata) -> bool:
    """True when the envelope told us anything about the call itself."""
    return bool(metadata.conversation_id or metadata.agent_id or metadata.call_type_hint)


def is_internet_call(metadata: CallMetadata) -> bool:
    settings = get_settings()
    caller_id = (metadata.caller_id or "").strip()
    if not caller_id:
        # An envelope with no call facts at all is unknown, not a web session
        return _is_identified_call(metadata)
    if caller_id.lower() == settings.internal_caller_sentinel.lower():
        return True
    hint = (metadata.call_type_hint or "").strip().lower()
    return hint in {t.lower() for t in settings.internet_call_types}


def classify_call_source(metadata: CallMetadata) -> tuple[CallSource, Optional[ContactInfo]]:
    """
    Derive the call source and, when possible, who called.

    Internet calls only ever carry an email-based contact (the caller id is a
    session marker, not a person). Phone calls always carry the caller id as
    the contact's phone number.
    """
    settings = get_settings()
    email = clean_email(metadata.caller_email)

    if is_internet_call(metadata):
        contact = _contact_or_none(name=metadata.caller_name, email=email) if email else None
        logger.debug("Classified call as internet (email=%s)", bool(email))
        return CallSource.INTERNET, contact

    if has_phone_shape(
        metadata.caller_id,
        min_digits=settings.min_phone_digits,
        default_region=settings.default_phone_region,
    ):
        logger.debug("Classified call as phone from %s", mask_phone_for_log(metadata.caller_id))
        return CallSource.PHONE, _contact_or_none(
            phone_number=metadata.caller_id,
            name=metadata.caller_name,
            email=email,
        )

    logger.debug("Call source unknown for caller id %s", mask_phone_for_log(metadata.caller_id))
    return CallSource.UNKNOWN, None

"""
Envelope format detection.
Looks only at key presence near the top of the envelope; never raises.
"""
import logging
from typing import Any, Optional

from callnorm.schemas.webhook_payloads import (
    DATA_METADATA_KEY,
    DATA_WRAPPER_KEY,
    LEGACY_CLIENT_DATA_KEY,
    LEGACY_DYNAMIC_VARS_KEY,
    PayloadVersion,
)

logger = logging.getLogger(__name__)


def _child(container: Any, key: str) -> Optional[dict]:
    """Return container[key] if both are dicts, else None."""
    if not isinstance(container, dict):
        return None
    value = container.get(key)
    return value if isinstance(value, dict) else None


def detect_payload_version(envelope: Any) -> PayloadVersion:
    """
    Classify the envelope.

    Legacy wins when both shapes are present: a legacy envelope never carries a
    "data" block of its own, so finding dynamic variables is the stronger signal.
    """
    client_data = _child(envelope, LEGACY_CLIENT_DATA_KEY)
    if _child(client_data, LEGACY_DYNAMIC_VARS_KEY) is not None:
        return PayloadVersion.LEGACY_DYNAMIC_VARS

    data = _child(envelope, DATA_WRAPPER_KEY)
    if data is not None and (
        _child(data, DATA_METADATA_KEY) is not None or "conversation_id" in data
    ):
        return PayloadVersion.DATA_WRAPPED

    logger.debug("Unrecognized webhook envelope shape")
    return PayloadVersion.UNRECOGNIZED

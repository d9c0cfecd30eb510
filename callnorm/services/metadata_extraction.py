"""
Call metadata extraction - pulls ids, numbers, duration, start time and the
transcript out of whichever envelope shape the provider used.

Every coercion here is total: a field that is missing or unusable becomes
None (or 0 for durations) and, when the provider did send *something*, a
metadata warning explains what was dropped.
"""
import logging
import math
import re
from datetime import datetime, timezone
from typing import Any, Optional

from dateutil import parser as date_parser
from pydantic import ValidationError

from callnorm.schemas.normalized_webhook import CallMetadata
from callnorm.schemas.webhook_payloads import (
    DATA_FIELD_KEYS,
    DATA_METADATA_KEY,
    DATA_WRAPPER_KEY,
    LEGACY_CLIENT_DATA_KEY,
    LEGACY_DYNAMIC_VARS_KEY,
    LEGACY_FIELD_KEYS,
    LEGACY_CONTACT_FALLBACK_KEYS,
    SCAN_FIELD_KEYS,
    PayloadVersion,
    PhoneCallDetails,
    TranscriptEntry,
)

logger = logging.getLogger(__name__)

_STRING_FIELDS = (
    "conversation_id",
    "agent_id",
    "caller_id",
    "called_number",
    "call_type_hint",
    "status",
    "caller_email",
    "caller_name",
)

# Digit strings this long are unix seconds (1973 onward); shorter ones such as
# "2025" are left to dateutil
_EPOCH_STRING_RE = re.compile(r"^\s*\d{9,}(?:\.\d+)?\s*$")

# Fills the parts dateutil finds missing, so "2025" is 2025-01-01 not today's date
_PARSE_DEFAULT = datetime(2000, 1, 1)


# ---------------------------------------------------------------------------
# Coercion helpers
# ---------------------------------------------------------------------------


def _as_dict(value: Any) -> dict:
    return value if isinstance(value, dict) else {}


def _coerce_str(value: Any) -> Optional[str]:
    """Strings are stripped, integers stringified, everything else dropped."""
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return str(value)
    if isinstance(value, str):
        stripped = value.strip()
        return stripped or None
    return None


def _coerce_number(value: Any) -> Optional[float]:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        number = float(value)
    elif isinstance(value, str):
        try:
            number = float(value.strip())
        except ValueError:
            return None
    else:
        return None
    if math.isnan(number) or math.isinf(number):
        return None
    return number


def coerce_duration(value: Any, warnings: list[str]) -> int:
    """Seconds as a non-negative int. Missing → 0; unusable → 0 with a warning."""
    if value is None:
        return 0
    number = _coerce_number(value)
    if number is None:
        warnings.append(f"metadata: call duration {value!r} is not numeric; defaulted to 0")
        return 0
    if number < 0:
        warnings.append(f"metadata: negative call duration {value!r}; defaulted to 0")
        return 0
    return int(number)


def coerce_timestamp(value: Any, warnings: list[str]) -> Optional[datetime]:
    """Unix seconds (a number or a 9+ digit string) or a date string → aware UTC datetime."""
    if value is None or value == "":
        return None

    number = None
    if not isinstance(value, str) or _EPOCH_STRING_RE.match(value):
        number = _coerce_number(value)
    if number is not None:
        try:
            return datetime.fromtimestamp(number, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            warnings.append(f"metadata: start time {value!r} is out of range; ignored")
            return None

    if isinstance(value, str):
        try:
            parsed = date_parser.parse(value, default=_PARSE_DEFAULT)
        except (ValueError, OverflowError):
            warnings.append(f"metadata: start time {value!r} could not be parsed; ignored")
            return None
        if parsed.tzinfo is None:
            return parsed.replace(tzinfo=timezone.utc)
        return parsed.astimezone(timezone.utc)

    warnings.append(f"metadata: start time of type {type(value).__name__} ignored")
    return None


def extract_transcript(raw: Any) -> tuple[TranscriptEntry, ...]:
    """
    Accepts the list-of-turns format and the older {segments: [...]} format.
    Turns that are not objects are skipped.
    """
    if isinstance(raw, dict):
        segments = raw.get("segments")
        if not isinstance(segments, list):
            return ()
        turns = [
            {"role": seg.get("speaker"), "message": seg.get("text"), "time": seg.get("timestamp")}
            for seg in segments
            if isinstance(seg, dict)
        ]
    elif isinstance(raw, list):
        turns = [
            {"role": turn.get("role"), "message": turn.get("message"), "time": turn.get("time_in_call_secs")}
            for turn in raw
            if isinstance(turn, dict)
        ]
    else:
        return ()

    entries = []
    for turn in turns:
        message = turn["message"]
        entries.append(
            TranscriptEntry(
                role=_coerce_str(turn["role"]) or "unknown",
                message=message if isinstance(message, str) else "",
                time_in_call_secs=max(_coerce_number(turn["time"]) or 0.0, 0.0),
            )
        )
    return tuple(entries)


# ---------------------------------------------------------------------------
# Per-version field collection
# ---------------------------------------------------------------------------


def _collect_legacy(envelope: dict) -> dict[str, Any]:
    dynamic_vars = _as_dict(
        _as_dict(envelope.get(LEGACY_CLIENT_DATA_KEY)).get(LEGACY_DYNAMIC_VARS_KEY)
    )
    raw = {field: dynamic_vars.get(key) for field, key in LEGACY_FIELD_KEYS.items()}
    for field, keys in LEGACY_CONTACT_FALLBACK_KEYS.items():
        if raw.get(field) is None:
            raw[field] = next((dynamic_vars[k] for k in keys if dynamic_vars.get(k) is not None), None)

    # Some legacy senders repeat ids at the top level
    for field in ("conversation_id", "agent_id", "status"):
        if raw.get(field) is None:
            raw[field] = envelope.get(field)
    raw["transcript"] = envelope.get("transcript")
    return raw


def _collect_data_wrapped(envelope: dict, warnings: list[str]) -> dict[str, Any]:
    data = _as_dict(envelope.get(DATA_WRAPPER_KEY))
    meta = _as_dict(data.get(DATA_METADATA_KEY))

    raw: dict[str, Any] = {field: meta.get(key) for field, key in DATA_FIELD_KEYS.items()}
    raw["conversation_id"] = data.get("conversation_id")
    raw["agent_id"] = data.get("agent_id")
    raw["status"] = data.get("status")
    raw["called_number"] = meta.get("called_number")
    raw["transcript"] = data.get("transcript")

    phone_call = meta.get("phone_call")
    if isinstance(phone_call, dict):
        try:
            details = PhoneCallDetails.model_validate(phone_call)
        except ValidationError:
            warnings.append("metadata: phone_call block is malformed; ignored")
        else:
            if raw["caller_id"] is None:
                raw["caller_id"] = details.external_number
            if raw["called_number"] is None:
                raw["called_number"] = details.agent_number

    # Newer envelopes nest the legacy dynamic variables inside data
    nested_vars = _as_dict(
        _as_dict(data.get(LEGACY_CLIENT_DATA_KEY)).get(LEGACY_DYNAMIC_VARS_KEY)
    )
    for field, key in LEGACY_FIELD_KEYS.items():
        if raw.get(field) is None and nested_vars.get(key) is not None:
            raw[field] = nested_vars[key]
    return raw


def _collect_by_scan(envelope: Any) -> dict[str, Any]:
    """Look for known field names on the top level, then one level down."""
    if not isinstance(envelope, dict):
        return {}
    levels = [envelope] + [value for value in envelope.values() if isinstance(value, dict)]

    raw: dict[str, Any] = {}
    for field, candidates in SCAN_FIELD_KEYS.items():
        raw[field] = next(
            (
                level[key]
                for level in levels
                for key in candidates
                if level.get(key) is not None and not isinstance(level[key], (dict, list))
            ),
            None,
        )
    raw["transcript"] = next(
        (level["transcript"] for level in levels if level.get("transcript") is not None),
        None,
    )
    return raw


def extract_call_metadata(envelope: Any, version: PayloadVersion) -> tuple[CallMetadata, list[str]]:
    """
    Build CallMetadata for the given envelope.

    Returns:
        Tuple of (metadata, warnings). Never raises for malformed input.
    """
    warnings: list[str] = []

    if version == PayloadVersion.LEGACY_DYNAMIC_VARS:
        raw = _collect_legacy(envelope)
    elif version == PayloadVersion.DATA_WRAPPED:
        raw = _collect_data_wrapped(envelope, warnings)
    else:
        warnings.append(
            "structural: unrecognized envelope shape; metadata extracted by best-effort key scan"
        )
        raw = _collect_by_scan(envelope)

    fields: dict[str, Any] = {name: _coerce_str(raw.get(name)) for name in _STRING_FIELDS}
    fields["duration_seconds"] = coerce_duration(raw.get("duration_seconds"), warnings)
    fields["start_time"] = coerce_timestamp(raw.get("start_time"), warnings)
    fields["transcript"] = extract_transcript(raw.get("transcript"))

    metadata = CallMetadata(**fields)
    logger.debug(
        "Extracted call metadata (%s, %ss, %d transcript turns)",
        version.value, metadata.duration_seconds, len(metadata.transcript),
        extra={"conversation_id": metadata.conversation_id, "payload_version": version.value},
    )
    return metadata, warnings

"""
Webhook payload schemas - raw input shapes sent by the voice provider.

The provider has shipped two incompatible envelopes for the same
call-completion event. The key names of both live here so the extractors
never hard-code a path twice.
"""
from enum import Enum
from typing import Optional
from pydantic import BaseModel, ConfigDict, Field


class PayloadVersion(str, Enum):
    """Which envelope shape a webhook was delivered in."""
    LEGACY_DYNAMIC_VARS = "legacy_dynamic_vars"
    DATA_WRAPPED = "data_wrapped"
    UNRECOGNIZED = "unrecognized"


class TranscriptEntry(BaseModel):
    """One conversation turn from the data-wrapped transcript array."""
    model_config = ConfigDict(frozen=True)

    role: str = Field(default="unknown", description="agent or user")
    message: str = ""
    time_in_call_secs: float = 0.0


# Legacy: conversation_initiation_client_data.dynamic_variables.system__*
LEGACY_CLIENT_DATA_KEY = "conversation_initiation_client_data"
LEGACY_DYNAMIC_VARS_KEY = "dynamic_variables"
LEGACY_FIELD_KEYS = {
    "conversation_id": "system__conversation_id",
    "agent_id": "system__agent_id",
    "caller_id": "system__caller_id",
    "called_number": "system__called_number",
    "duration_seconds": "system__call_duration_secs",
    "start_time": "system__time_utc",
    "call_type_hint": "system__call_type",
    "caller_email": "system__caller_email",
    "caller_name": "system__caller_name",
}

# Dynamic variables are partly user-defined; plain contact keys are accepted too
LEGACY_CONTACT_FALLBACK_KEYS = {
    "caller_email": ("caller_email", "email", "user_email"),
    "caller_name": ("caller_name", "name", "user_name"),
}

# Data-wrapped: {type, event_timestamp, data: {conversation_id, agent_id, metadata, transcript}}
DATA_WRAPPER_KEY = "data"
DATA_METADATA_KEY = "metadata"
DATA_FIELD_KEYS = {
    "duration_seconds": "call_duration_secs",
    "caller_id": "phone_number",
    "start_time": "start_time_unix_secs",
    "call_type_hint": "call_type",
    "caller_email": "email",
    "caller_name": "name",
}

# Field names scanned for in envelopes of unknown shape, most specific first
SCAN_FIELD_KEYS = {
    "conversation_id": ("system__conversation_id", "conversation_id"),
    "agent_id": ("system__agent_id", "agent_id"),
    "caller_id": ("system__caller_id", "caller_id", "phone_number", "external_number"),
    "called_number": ("system__called_number", "called_number", "agent_number"),
    "duration_seconds": (
        "system__call_duration_secs", "call_duration_secs", "duration_seconds", "duration",
    ),
    "start_time": ("system__time_utc", "start_time_unix_secs", "start_time", "timestamp"),
    "call_type_hint": ("system__call_type", "call_type"),
    "status": ("status",),
    "caller_email": ("system__caller_email", "caller_email", "email"),
    "caller_name": ("system__caller_name", "caller_name", "name"),
}


class PhoneCallDetails(BaseModel):
    """Optional metadata.phone_call block present on telephony calls."""
    model_config = ConfigDict(extra="ignore")

    direction: Optional[str] = None
    external_number: Optional[str] = None
    agent_number: Optional[str] = None
    type: Optional[str] = None
    call_sid: Optional[str] = None

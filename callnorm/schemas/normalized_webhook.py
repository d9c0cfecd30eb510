"""
Normalized webhook - the single artifact handed to route handlers, billing,
analytics and CRM code. Every call-completion webhook, whatever envelope it
arrived in, is reduced to one of these.

All models are frozen: a NormalizedWebhook is assembled once and never edited.
"""
import math
from datetime import datetime
from enum import Enum
from typing import Optional
from pydantic import BaseModel, ConfigDict, Field, computed_field

from callnorm.schemas.webhook_payloads import PayloadVersion, TranscriptEntry


class CallSource(str, Enum):
    """Where the call originated."""
    PHONE = "phone"
    INTERNET = "internet"
    UNKNOWN = "unknown"


class CallMetadata(BaseModel):
    """Version-agnostic call facts pulled out of the envelope."""
    model_config = ConfigDict(frozen=True)

    conversation_id: Optional[str] = None
    agent_id: Optional[str] = None
    caller_id: Optional[str] = Field(default=None, description="Phone number, 'internal', or absent")
    called_number: Optional[str] = None
    duration_seconds: int = Field(default=0, ge=0)
    start_time: Optional[datetime] = None
    call_type_hint: Optional[str] = Field(default=None, description="phone, web, widget, ...")
    status: Optional[str] = None
    caller_email: Optional[str] = None
    caller_name: Optional[str] = None
    transcript: tuple[TranscriptEntry, ...] = ()

    @computed_field
    @property
    def duration_minutes(self) -> int:
        """Whole minutes, rounded down."""
        return self.duration_seconds // 60

    @computed_field
    @property
    def billing_minutes(self) -> int:
        """Minutes rounded up, the unit credits are charged in."""
        return math.ceil(self.duration_seconds / 60)

    @computed_field
    @property
    def display_duration(self) -> str:
        minutes, seconds = divmod(self.duration_seconds, 60)
        if minutes == 0:
            return f"{seconds} sec"
        if seconds == 0:
            return f"{minutes} min"
        return f"{minutes} min {seconds} sec"

    @computed_field
    @property
    def transcript_text(self) -> str:
        return "\n".join(f"{entry.role}: {entry.message}" for entry in self.transcript)


class ContactInfo(BaseModel):
    """Who was on the other end of the call, when anything is known."""
    model_config = ConfigDict(frozen=True)

    phone_number: Optional[str] = None
    name: Optional[str] = None
    email: Optional[str] = None

    def is_empty(self) -> bool:
        return not (self.phone_number or self.name or self.email)


class CtaInteractions(BaseModel):
    """Call-to-action flags reported by the provider's analysis model."""
    model_config = ConfigDict(frozen=True)

    pricing_clicked: bool = False
    demo_clicked: bool = False
    followup_clicked: bool = False
    sample_clicked: bool = False
    escalated_to_human: bool = False
    website_clicked: bool = False


class LeadExtraction(BaseModel):
    """Contact details the analysis model pulled out of the conversation."""
    model_config = ConfigDict(frozen=True)

    name: Optional[str] = None
    email_address: Optional[str] = None
    company_name: Optional[str] = None
    smart_notification: Optional[str] = Field(
        default=None, description="Short 4-5 word summary of the interaction"
    )


class AnalysisResult(BaseModel):
    """
    Typed lead analysis. Component scores are Optional on purpose:
    None means "not scored", 0 means "scored zero".
    """
    model_config = ConfigDict(frozen=True)

    lead_status_tag: str
    total_score: int
    intent_score: Optional[int] = None
    urgency_score: Optional[int] = None
    budget_score: Optional[int] = None
    fit_alignment_score: Optional[int] = None
    engagement_score: Optional[int] = None
    intent_level: Optional[str] = None
    urgency_level: Optional[str] = None
    budget_constraint: Optional[str] = None
    fit_alignment: Optional[str] = None
    engagement_health: Optional[str] = None
    reasoning: Optional[str] = None
    reasoning_details: dict[str, str] = Field(default_factory=dict)
    cta_interactions: CtaInteractions = Field(default_factory=CtaInteractions)
    extraction: Optional[LeadExtraction] = None
    demo_book_datetime: Optional[str] = None


class NormalizedWebhook(BaseModel):
    """
    The universal call-completion record. Callers decide whether to
    store-with-flags or reject based on is_valid.
    """
    model_config = ConfigDict(frozen=True)

    payload_version: PayloadVersion
    metadata: CallMetadata
    call_source: CallSource
    contact: Optional[ContactInfo] = None
    analysis: Optional[AnalysisResult] = None
    is_valid: bool
    errors: tuple[str, ...] = ()
    warnings: tuple[str, ...] = ()

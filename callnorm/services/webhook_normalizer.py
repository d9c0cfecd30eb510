"""
Call-completion webhook normalizer - the single entry point route handlers call.

Pipeline:
1. Detect the envelope shape
2. Extract call metadata (ids, numbers, duration, transcript)
3. Classify the call source and derive the contact
4. Locate the analysis literal
5. Parse it, normalize it into AnalysisResult, validate scores and tag
6. Assemble one NormalizedWebhook with every error and warning attached

Only a non-mapping envelope raises (TypeError). Anything else that goes wrong
becomes an entry in errors or warnings, so a webhook is never lost.
"""
import logging
from collections.abc import Mapping
from typing import Any, Callable, Optional, Sequence, TypeVar

from callnorm.schemas.normalized_webhook import (
    AnalysisResult,
    CallMetadata,
    CallSource,
    ContactInfo,
    NormalizedWebhook,
)
from callnorm.schemas.webhook_payloads import PayloadVersion
from callnorm.services.analysis_locator import locate_analysis_literal
from callnorm.services.analysis_normalizer import AnalysisNormalization, normalize_analysis
from callnorm.services.call_source import classify_call_source
from callnorm.services.format_detection import detect_payload_version
from callnorm.services.literal_parser import LiteralParseResult, parse_literal_dict
from callnorm.services.metadata_extraction import extract_call_metadata
from callnorm.services.score_validation import validate_analysis
from callnorm.utils.email_validation import clean_email
from callnorm.utils.logging import correlation_scope, get_correlation_id

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Sources whose contact may be completed from the analysis extraction
_ENRICHABLE_SOURCES = (CallSource.PHONE, CallSource.INTERNET)


def _guarded(
    stage: str,
    category: str,
    errors: list[str],
    fallback: T,
    func: Callable[..., T],
    *args: Any,
) -> T:
    """Run one pipeline stage; an unexpected exception becomes an error entry."""
    try:
        return func(*args)
    except Exception as e:
        logger.error("Webhook stage %s failed: %s", stage, str(e), exc_info=True)
        errors.append(f"{category}: {stage} failed unexpectedly ({type(e).__name__})")
        return fallback


def enrich_contact(
    call_source: CallSource,
    contact: Optional[ContactInfo],
    analysis: Optional[AnalysisResult],
) -> Optional[ContactInfo]:
    """
    Fill a missing contact name/email from what the analysis model extracted.
    Values already on the contact are never overwritten.
    """
    if call_source not in _ENRICHABLE_SOURCES or analysis is None or analysis.extraction is None:
        return contact

    extraction = analysis.extraction
    current = contact or ContactInfo()
    updates: dict[str, str] = {}
    if not current.name and extraction.name:
        updates["name"] = extraction.name
    email = clean_email(extraction.email_address)
    if not current.email and email:
        updates["email"] = email

    if not updates:
        return contact
    return current.model_copy(update=updates)


def assemble_result(
    payload_version: PayloadVersion,
    metadata: CallMetadata,
    call_source: CallSource,
    contact: Optional[ContactInfo],
    analysis: Optional[AnalysisResult],
    errors: Sequence[str] = (),
    warnings: Sequence[str] = (),
) -> NormalizedWebhook:
    """Merge stage outputs. is_valid is exactly "no errors were recorded"."""
    return NormalizedWebhook(
        payload_version=payload_version,
        metadata=metadata,
        call_source=call_source,
        contact=enrich_contact(call_source, contact, analysis),
        analysis=analysis,
        is_valid=not errors,
        errors=tuple(errors),
        warnings=tuple(warnings),
    )


def _normalize_analysis_block(
    envelope: dict,
    errors: list[str],
    warnings: list[str],
) -> Optional[AnalysisResult]:
    located = _guarded("analysis lookup", "analysis", errors, None, locate_analysis_literal, envelope)
    if located is None:
        logger.debug("No analysis block in webhook")
        return None

    parsed: Optional[LiteralParseResult] = _guarded(
        "literal parsing", "parse", errors, None, parse_literal_dict, located.literal,
    )
    if parsed is None:
        return None
    errors.extend(f"parse: {error}" for error in parsed.errors)
    # Nothing recovered from a broken literal; the parse errors already say why
    if not parsed.values and parsed.errors:
        return None

    normalization: AnalysisNormalization = _guarded(
        "analysis normalization", "analysis", errors, AnalysisNormalization(result=None),
        normalize_analysis, parsed.values,
    )
    errors.extend(normalization.errors)
    warnings.extend(normalization.warnings)
    if normalization.result is None:
        return None

    result, validation_warnings = _guarded(
        "score validation", "validation", errors, (normalization.result, []),
        validate_analysis, normalization.result,
    )
    warnings.extend(validation_warnings)
    return result


def normalize_webhook(envelope: Any) -> NormalizedWebhook:
    """
    Normalize one call-completion webhook body.

    Args:
        envelope: The decoded JSON body, unmodified.

    Returns:
        NormalizedWebhook. Always returned for any mapping input, valid or not.

    Raises:
        TypeError: envelope is None or not a mapping.
    """
    if not isinstance(envelope, Mapping):
        raise TypeError(f"webhook envelope must be a mapping, got {type(envelope).__name__}")
    if not isinstance(envelope, dict):
        envelope = dict(envelope)

    errors: list[str] = []
    warnings: list[str] = []

    version = _guarded(
        "format detection", "structural", errors, PayloadVersion.UNRECOGNIZED,
        detect_payload_version, envelope,
    )
    metadata, metadata_warnings = _guarded(
        "metadata extraction", "metadata", errors, (CallMetadata(), []),
        extract_call_metadata, envelope, version,
    )
    warnings.extend(metadata_warnings)

    with correlation_scope(metadata.conversation_id or get_correlation_id()):
        call_source, contact = _guarded(
            "call source classification", "metadata", errors, (CallSource.UNKNOWN, None),
            classify_call_source, metadata,
        )
        analysis = _normalize_analysis_block(envelope, errors, warnings)

        result = assemble_result(
            payload_version=version,
            metadata=metadata,
            call_source=call_source,
            contact=contact,
            analysis=analysis,
            errors=errors,
            warnings=warnings,
        )
        logger.info(
            "Webhook normalized: %s call, valid=%s",
            call_source.value, result.is_valid,
            extra={
                "conversation_id": metadata.conversation_id,
                "agent_id": metadata.agent_id,
                "payload_version": version.value,
                "call_source": call_source.value,
                "error_count": len(result.errors),
                "warning_count": len(result.warnings),
            },
        )
    return result

"""
Analysis normalizer - turns the parsed literal mapping into an AnalysisResult.

Key vocabulary is case-sensitive and matches what the provider's analysis
prompt emits. Unknown keys are ignored. total_score and lead_status_tag are
mandatory; without both there is no result.
"""
import logging
import math
from dataclasses import dataclass
from typing import Any, Optional

from callnorm.schemas.normalized_webhook import AnalysisResult, CtaInteractions, LeadExtraction

logger = logging.getLogger(__name__)

# Literal key → AnalysisResult field, first key present wins
COMPONENT_SCORE_KEYS: dict[str, tuple[str, ...]] = {
    "intent_score": ("intent_score",),
    "urgency_score": ("urgency_score",),
    "budget_score": ("budget_score",),
    "fit_alignment_score": ("fit_score", "fit_alignment_score"),
    "engagement_score": ("engagement_score",),
}

LEVEL_KEYS = ("intent_level", "urgency_level", "budget_constraint", "fit_alignment", "engagement_health")

CTA_KEYS = {
    "cta_pricing_clicked": "pricing_clicked",
    "cta_demo_clicked": "demo_clicked",
    "cta_followup_clicked": "followup_clicked",
    "cta_sample_clicked": "sample_clicked",
    "cta_escalated_to_human": "escalated_to_human",
    "cta_website_clicked": "website_clicked",
}

EXTRACTION_KEYS: dict[str, tuple[str, ...]] = {
    "name": ("name",),
    "email_address": ("email_address", "email"),
    "company_name": ("company_name",),
    "smart_notification": ("smartnotification", "smart_notification"),
}

_TRUE_WORDS = frozenset({"yes", "true", "1"})
_FALSE_WORDS = frozenset({"no", "false", "0"})

# The analysis model writes these as strings when it has nothing to report
_NULL_WORDS = frozenset({"", "null", "none", "n/a"})


@dataclass(frozen=True)
class AnalysisNormalization:
    result: Optional[AnalysisResult]
    errors: tuple[str, ...] = ()
    warnings: tuple[str, ...] = ()


# ---------------------------------------------------------------------------
# Coercion helpers
# ---------------------------------------------------------------------------


def coerce_score(value: Any) -> Optional[int]:
    """
    Integer score from an int, a float or a numeric string.
    Booleans, NaN and anything non-numeric give None. Fractions round half up.
    """
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        number = value
    elif isinstance(value, str):
        try:
            number = float(value.strip())
        except ValueError:
            return None
    else:
        return None
    if math.isnan(number) or math.isinf(number):
        return None
    return math.floor(number + 0.5)


def coerce_flag(value: Any) -> Optional[bool]:
    """Yes/No, true/false, 1/0 (any case) and real booleans. None when unrecognized."""
    if isinstance(value, bool):
        return value
    if isinstance(value, int) and value in (0, 1):
        return bool(value)
    if isinstance(value, str):
        word = value.strip().lower()
        if word in _TRUE_WORDS:
            return True
        if word in _FALSE_WORDS:
            return False
    return None


def coerce_text(value: Any) -> Optional[str]:
    """Stripped text; numbers are stringified; null-ish words become None."""
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return str(value)
    if isinstance(value, str):
        text = value.strip()
        return None if text.lower() in _NULL_WORDS else text
    return None


def _first_present(raw: dict, keys: tuple[str, ...]) -> tuple[Optional[str], Any]:
    for key in keys:
        if key in raw and raw[key] is not None:
            return key, raw[key]
    return None, None


# ---------------------------------------------------------------------------
# Sections
# ---------------------------------------------------------------------------


def _component_scores(raw: dict, warnings: list[str]) -> dict[str, int]:
    scores: dict[str, int] = {}
    for field, keys in COMPONENT_SCORE_KEYS.items():
        key, value = _first_present(raw, keys)
        if key is None:
            continue
        score = coerce_score(value)
        if score is None:
            warnings.append(f"analysis: {key} value {value!r} is not a number; omitted")
            continue
        scores[field] = score
    return scores


def _cta_interactions(raw: dict, warnings: list[str]) -> CtaInteractions:
    flags: dict[str, bool] = {}
    for key, field in CTA_KEYS.items():
        if raw.get(key) is None:
            continue
        flag = coerce_flag(raw[key])
        if flag is None:
            warnings.append(f"analysis: {key} value {raw[key]!r} not recognized; treated as false")
            flag = False
        flags[field] = flag
    return CtaInteractions(**flags)


def _reasoning(value: Any, warnings: list[str]) -> tuple[Optional[str], dict[str, str]]:
    """Free text, or a mapping of category → text (intent, urgency, budget, ...)."""
    if value is None:
        return None, {}
    if isinstance(value, dict):
        details = {}
        for category, text in value.items():
            coerced = coerce_text(text)
            if coerced is not None:
                details[str(category)] = coerced
        return None, details
    text = coerce_text(value)
    if text is None and not isinstance(value, str):
        warnings.append(f"analysis: reasoning of type {type(value).__name__} ignored")
    return text, {}


def _extraction(value: Any, warnings: list[str]) -> Optional[LeadExtraction]:
    if value is None:
        return None
    if not isinstance(value, dict):
        warnings.append(f"analysis: extraction of type {type(value).__name__} ignored")
        return None
    fields = {}
    for field, keys in EXTRACTION_KEYS.items():
        _, raw_value = _first_present(value, keys)
        text = coerce_text(raw_value)
        if text is not None:
            fields[field] = text
    return LeadExtraction(**fields) if fields else None


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------


def normalize_analysis(raw: dict[str, Any]) -> AnalysisNormalization:
    """
    Map the parsed literal onto AnalysisResult.

    Missing or unusable total_score / lead_status_tag are errors and produce
    no result. Unusable optional fields are dropped with a warning.
    """
    errors: list[str] = []
    warnings: list[str] = []

    total_score = None
    if raw.get("total_score") is None:
        errors.append("analysis: required field 'total_score' is missing")
    else:
        total_score = coerce_score(raw["total_score"])
        if total_score is None:
            errors.append(
                f"analysis: required field 'total_score' has unusable value {raw['total_score']!r}"
            )

    tag = coerce_text(raw.get("lead_status_tag"))
    if tag is None:
        if raw.get("lead_status_tag") is None:
            errors.append("analysis: required field 'lead_status_tag' is missing")
        else:
            errors.append(
                f"analysis: required field 'lead_status_tag' has unusable value {raw['lead_status_tag']!r}"
            )

    if errors:
        logger.info("Analysis missing mandatory fields: %s", "; ".join(errors))
        return AnalysisNormalization(result=None, errors=tuple(errors), warnings=tuple(warnings))

    reasoning, reasoning_details = _reasoning(raw.get("reasoning"), warnings)
    result = AnalysisResult(
        lead_status_tag=tag,
        total_score=total_score,
        **_component_scores(raw, warnings),
        **{key: coerce_text(raw.get(key)) for key in LEVEL_KEYS},
        reasoning=reasoning,
        reasoning_details=reasoning_details,
        cta_interactions=_cta_interactions(raw, warnings),
        extraction=_extraction(raw.get("extraction"), warnings),
        demo_book_datetime=coerce_text(raw.get("demo_book_datetime")),
    )
    return AnalysisNormalization(result=result, warnings=tuple(warnings))

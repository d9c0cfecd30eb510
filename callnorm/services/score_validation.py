"""
Score validation - range checks and tag vocabulary for AnalysisResult.

Validation never rejects: out-of-range scores are clamped to the nearest
bound and unknown tags pass through, each with a warning.
"""
import logging

from callnorm.config import get_settings
from callnorm.schemas.normalized_webhook import AnalysisResult

logger = logging.getLogger(__name__)

COMPONENT_SCORE_FIELDS = (
    "intent_score",
    "urgency_score",
    "budget_score",
    "fit_alignment_score",
    "engagement_score",
)


def clamp(value: int, low: int, high: int) -> int:
    return max(low, min(high, value))


def is_known_status_tag(tag: str) -> bool:
    known = {t.lower() for t in get_settings().lead_status_tags}
    return tag.strip().lower() in known


def validate_analysis(result: AnalysisResult) -> tuple[AnalysisResult, list[str]]:
    """
    Returns:
        Tuple of (possibly clamped copy of result, validation warnings).
    """
    settings = get_settings()
    warnings: list[str] = []
    updates: dict[str, int] = {}

    low, high = settings.total_score_range
    if not low <= result.total_score <= high:
        updates["total_score"] = clamp(result.total_score, low, high)
        warnings.append(
            f"validation: total_score {result.total_score} outside [{low}, {high}]; "
            f"clamped to {updates['total_score']}"
        )

    low, high = settings.component_score_range
    for field in COMPONENT_SCORE_FIELDS:
        score = getattr(result, field)
        if score is None or low <= score <= high:
            continue
        updates[field] = clamp(score, low, high)
        warnings.append(
            f"validation: {field} {score} outside [{low}, {high}]; clamped to {updates[field]}"
        )

    if not is_known_status_tag(result.lead_status_tag):
        warnings.append(f"validation: unrecognized lead_status_tag {result.lead_status_tag!r}; kept as-is")

    if warnings:
        logger.info("Analysis validation adjusted %d field(s)", len(warnings), extra={"warning_count": len(warnings)})
    return (result.model_copy(update=updates) if updates else result), warnings

"""
Normalize a captured call-completion webhook and print the result.

Usage:
    python scripts/normalize_webhook.py payload.json
    cat payload.json | python scripts/normalize_webhook.py
    python scripts/normalize_webhook.py payload.json --summary
"""
import argparse
import json
import logging
import sys

from callnorm.config import get_settings
from callnorm.services.webhook_normalizer import normalize_webhook
from callnorm.utils.logging import configure_structured_logging

logger = logging.getLogger(__name__)


def load_envelope(path: str | None) -> dict:
    """Read JSON from a file, or from stdin when no path (or "-") is given."""
    if path is None or path == "-":
        return json.load(sys.stdin)
    with open(path, encoding="utf-8") as f:
        return json.load(f)


def print_summary(result) -> None:
    analysis = result.analysis
    print(f"payload version: {result.payload_version.value}")
    print(f"call source:     {result.call_source.value}")
    print(f"conversation:    {result.metadata.conversation_id}")
    print(f"duration:        {result.metadata.display_duration}")
    if analysis is not None:
        print(f"lead:            {analysis.lead_status_tag} ({analysis.total_score}/100)")
    print(f"valid:           {result.is_valid}")
    for error in result.errors:
        print(f"  error:   {error}")
    for warning in result.warnings:
        print(f"  warning: {warning}")


def main() -> int:
    parser = argparse.ArgumentParser(description="Normalize a captured call-completion webhook")
    parser.add_argument("path", nargs="?", help="JSON file with the webhook body (default: stdin)")
    parser.add_argument("--summary", action="store_true", help="Print a short summary instead of JSON")
    parser.add_argument("--log-level", default=None, help="Override CALLNORM_LOG_LEVEL")
    args = parser.parse_args()

    configure_structured_logging(args.log_level or get_settings().log_level)

    try:
        envelope = load_envelope(args.path)
    except (OSError, json.JSONDecodeError) as e:
        logger.error("Could not read webhook body: %s", str(e))
        return 1

    try:
        result = normalize_webhook(envelope)
    except TypeError as e:
        logger.error("Not a webhook envelope: %s", str(e))
        return 1

    if args.summary:
        print_summary(result)
    else:
        print(result.model_dump_json(indent=2))
    return 0 if result.is_valid else 2


if __name__ == "__main__":
    sys.exit(main())

"""
Test configuration and fixtures.
Canonical webhook bodies for both envelope shapes, plus a settings cache reset
so tests that override CALLNORM_* env vars never leak into each other.
"""
import copy

import pytest

from callnorm.config import get_settings


# Python-dict-repr literal as emitted by the legacy analysis collection
LEGACY_ANALYSIS_LITERAL = (
    "{'intent_level': 'High', 'intent_score': 3, "
    "'urgency_level': 'Medium', 'urgency_score': 2, "
    "'budget_constraint': 'Low', 'budget_score': 3, "
    "'fit_alignment': 'High', 'fit_score': 3, "
    "'engagement_health': 'Good', 'engagement_score': 2, "
    "'cta_pricing_clicked': 'Yes', 'cta_demo_clicked': 'No', "
    "'cta_followup_clicked': 'No', 'cta_sample_clicked': 'No', "
    "'cta_escalated_to_human': 'No', "
    "'total_score': 85, 'lead_status_tag': 'Hot', "
    "'reasoning': \"Customer's budget is approved\"}"
)

# Strict JSON literal with nested reasoning / extraction objects
DATA_WRAPPED_ANALYSIS_LITERAL = (
    '{"total_score": 40, "lead_status_tag": "Warm", "intent_score": 2, '
    '"reasoning": {"intent": "Asked about pricing", "budget": "Not discussed"}, '
    '"extraction": {"name": "Jane Doe", "email_address": "null", '
    '"company_name": "Acme Roofing", "smartnotification": "Pricing question from Acme"}, '
    '"cta_pricing_clicked": true, "demo_book_datetime": null}'
)

_LEGACY_ENVELOPE = {
    "conversation_initiation_client_data": {
        "dynamic_variables": {
            "system__conversation_id": "conv_legacy_001",
            "system__agent_id": "agent_123",
            "system__caller_id": "+14155551234",
            "system__called_number": "+18005550100",
            "system__call_duration_secs": 185,
            "system__time_utc": "2025-01-15T10:30:00Z",
            "system__call_type": "phone",
        }
    },
    "analysis": {
        "data_collection_results": {
            "default": {"value": LEGACY_ANALYSIS_LITERAL},
        }
    },
}

_DATA_WRAPPED_ENVELOPE = {
    "type": "post_call_transcription",
    "event_timestamp": 1736937095,
    "data": {
        "agent_id": "agent_456",
        "conversation_id": "conv_wrapped_001",
        "status": "done",
        "transcript": [
            {"role": "agent", "message": "Hi, how can I help?", "time_in_call_secs": 0},
            {"role": "user", "message": "I need pricing", "time_in_call_secs": 3},
        ],
        "metadata": {
            "start_time_unix_secs": 1736937000,
            "call_duration_secs": 95,
            "call_type": "web",
            "email": "jane@example.com",
        },
        "analysis": {
            "data_collection_results": {
                "default": {"value": DATA_WRAPPED_ANALYSIS_LITERAL},
            }
        },
    },
}


@pytest.fixture(autouse=True)
def clear_settings_cache():
    """get_settings() is lru_cached; reset it around every test."""
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def legacy_envelope() -> dict:
    """Legacy dynamic-variables envelope for a phone call."""
    return copy.deepcopy(_LEGACY_ENVELOPE)


@pytest.fixture
def data_wrapped_envelope() -> dict:
    """Data-wrapped envelope for a web-widget call."""
    return copy.deepcopy(_DATA_WRAPPED_ENVELOPE)


@pytest.fixture
def legacy_analysis_literal() -> str:
    return LEGACY_ANALYSIS_LITERAL

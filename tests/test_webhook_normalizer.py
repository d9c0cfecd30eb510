"""
End-to-end webhook normalization tests.

Covers both envelope shapes, the valid/invalid contract, error and warning
ordering, contact enrichment, stage failure handling and idempotence.
"""
import copy
import logging
import sys
from types import MappingProxyType

import pytest

from callnorm.schemas.normalized_webhook import (
    AnalysisResult,
    CallMetadata,
    CallSource,
    ContactInfo,
    CtaInteractions,
    LeadExtraction,
)
from callnorm.schemas.webhook_payloads import PayloadVersion
from callnorm.services import webhook_normalizer
from callnorm.services.webhook_normalizer import assemble_result, enrich_contact, normalize_webhook
from callnorm.utils.logging import get_correlation_id


def _with_literal(envelope: dict, literal: str) -> dict:
    envelope["analysis"]["data_collection_results"]["default"]["value"] = literal
    return envelope


# ---------------------------------------------------------------------------
# Canonical envelopes
# ---------------------------------------------------------------------------


class TestLegacyWebhook:
    def test_phone_call_with_analysis(self, legacy_envelope):
        result = normalize_webhook(legacy_envelope)
        assert result.is_valid is True
        assert result.errors == ()
        assert result.warnings == ()
        assert result.payload_version == PayloadVersion.LEGACY_DYNAMIC_VARS
        assert result.call_source == CallSource.PHONE
        assert result.contact == ContactInfo(phone_number="+14155551234")
        assert result.metadata.conversation_id == "conv_legacy_001"
        assert result.metadata.billing_minutes == 4

        analysis = result.analysis
        assert analysis.total_score == 85
        assert analysis.lead_status_tag == "Hot"
        assert analysis.fit_alignment_score == 3
        assert analysis.reasoning == "Customer's budget is approved"
        assert analysis.cta_interactions == CtaInteractions(pricing_clicked=True)

    def test_no_analysis_block_is_valid(self, legacy_envelope):
        del legacy_envelope["analysis"]
        result = normalize_webhook(legacy_envelope)
        assert result.analysis is None
        assert result.is_valid is True
        assert result.errors == ()

    def test_envelope_not_mutated(self, legacy_envelope):
        before = copy.deepcopy(legacy_envelope)
        normalize_webhook(legacy_envelope)
        assert legacy_envelope == before


class TestDataWrappedWebhook:
    def test_web_call_with_enriched_contact(self, data_wrapped_envelope):
        result = normalize_webhook(data_wrapped_envelope)
        assert result.is_valid is True
        assert result.warnings == ()
        assert result.payload_version == PayloadVersion.DATA_WRAPPED
        assert result.call_source == CallSource.INTERNET
        assert result.contact == ContactInfo(name="Jane Doe", email="jane@example.com")
        assert len(result.metadata.transcript) == 2

        analysis = result.analysis
        assert analysis.total_score == 40
        assert analysis.lead_status_tag == "Warm"
        assert analysis.intent_score == 2
        assert analysis.reasoning_details == {"intent": "Asked about pricing", "budget": "Not discussed"}
        assert analysis.extraction == LeadExtraction(
            name="Jane Doe",
            company_name="Acme Roofing",
            smart_notification="Pricing question from Acme",
        )
        assert analysis.cta_interactions.pricing_clicked is True
        assert analysis.demo_book_datetime is None

    def test_basic_cta_collection(self, data_wrapped_envelope):
        collections = data_wrapped_envelope["data"]["analysis"]["data_collection_results"]
        collections["Basic CTA"] = collections.pop("default")
        result = normalize_webhook(data_wrapped_envelope)
        assert result.analysis.total_score == 40


# ---------------------------------------------------------------------------
# Validity contract
# ---------------------------------------------------------------------------


class TestValidityContract:
    def test_total_score_clamped_still_valid(self, legacy_envelope):
        result = normalize_webhook(_with_literal(legacy_envelope, "{'total_score': 150, 'lead_status_tag': 'Hot'}"))
        assert result.analysis.total_score == 100
        assert len(result.warnings) == 1
        assert result.warnings[0].startswith("validation:")
        assert result.is_valid is True

    def test_missing_total_score(self, legacy_envelope):
        result = normalize_webhook(_with_literal(legacy_envelope, "{'lead_status_tag': 'Hot'}"))
        assert result.analysis is None
        assert len(result.errors) == 1
        assert result.errors[0].startswith("analysis:")
        assert result.is_valid is False

    def test_malformed_envelope(self):
        result = normalize_webhook({"some_random_field": "value"})
        assert result.payload_version == PayloadVersion.UNRECOGNIZED
        assert result.call_source == CallSource.UNKNOWN
        assert result.contact is None
        assert result.analysis is None
        assert result.errors == ()
        assert result.is_valid is True
        assert result.warnings[0].startswith("structural:")

    def test_empty_envelope(self):
        result = normalize_webhook({})
        assert result.call_source == CallSource.UNKNOWN
        assert result.is_valid is True

    def test_unparseable_literal(self, legacy_envelope):
        result = normalize_webhook(_with_literal(legacy_envelope, "no dict here at all"))
        assert result.analysis is None
        assert result.is_valid is False
        assert result.errors
        assert all(error.startswith("parse:") for error in result.errors)

    def test_recovered_literal_keeps_analysis_but_is_invalid(self, legacy_envelope):
        literal = "{'total_score': 85, 'lead_status_tag': 'Hot', 'reasoning': 'Asked for de"
        result = normalize_webhook(_with_literal(legacy_envelope, literal))
        assert result.analysis.total_score == 85
        assert result.analysis.reasoning == "Asked for de"
        assert result.is_valid is False
        assert all(error.startswith("parse:") for error in result.errors)

    def test_truncated_literal_without_mandatory_fields(self, legacy_envelope):
        result = normalize_webhook(_with_literal(legacy_envelope, "{'total_score': 85, 'reasoning': 'cut"))
        assert result.analysis is None
        assert [e.split(":")[0] for e in result.errors] == ["parse", "parse", "analysis"]

    @pytest.mark.skipif(
        not hasattr(sys, "get_int_max_str_digits"), reason="interpreter has no int conversion limit"
    )
    def test_oversized_component_score_keeps_mandatory_fields(self, legacy_envelope):
        literal = "{'lead_status_tag': 'Hot', 'total_score': 85, 'intent_score': " + "9" * 5000 + "}"
        result = normalize_webhook(_with_literal(legacy_envelope, literal))
        assert result.analysis.total_score == 85
        assert result.analysis.intent_score is None
        assert len(result.errors) == 1
        assert result.errors[0].startswith("parse: numeric literal too long")
        assert result.is_valid is False

    def test_parser_crash_reports_only_the_crash(self, legacy_envelope, monkeypatch):
        def boom(text):
            raise RuntimeError("parser exploded")

        monkeypatch.setattr(webhook_normalizer, "parse_literal_dict", boom)
        result = normalize_webhook(legacy_envelope)
        assert result.analysis is None
        assert result.errors == ("parse: literal parsing failed unexpectedly (RuntimeError)",)

    def test_is_valid_iff_no_errors(self, legacy_envelope, data_wrapped_envelope):
        envelopes = [
            legacy_envelope,
            data_wrapped_envelope,
            {"some_random_field": "value"},
            _with_literal(copy.deepcopy(legacy_envelope), "{'lead_status_tag': 'Hot'}"),
            _with_literal(copy.deepcopy(legacy_envelope), "{'total_score': 'x', 'lead_status_tag': 'Odd'}"),
        ]
        for envelope in envelopes:
            result = normalize_webhook(envelope)
            assert result.is_valid == (len(result.errors) == 0)


class TestOrdering:
    def test_warning_categories_in_pipeline_order(self):
        envelope = {
            "analysis": {"value": "{'total_score': 150, 'lead_status_tag': 'Hot', 'intent_score': 'x'}"},
        }
        result = normalize_webhook(envelope)
        assert [w.split(":")[0] for w in result.warnings] == ["structural", "analysis", "validation"]
        assert result.is_valid is True


# ---------------------------------------------------------------------------
# Contact enrichment
# ---------------------------------------------------------------------------


class TestContactEnrichment:
    LITERAL = "{'total_score': 60, 'lead_status_tag': 'Warm', 'extraction': {'name': 'Sam Lee', 'email_address': 'sam@example.com'}}"

    def test_phone_contact_completed(self, legacy_envelope):
        result = normalize_webhook(_with_literal(legacy_envelope, self.LITERAL))
        assert result.contact == ContactInfo(phone_number="+14155551234", name="Sam Lee", email="sam@example.com")

    def test_existing_values_not_overwritten(self, legacy_envelope):
        dynamic_vars = legacy_envelope["conversation_initiation_client_data"]["dynamic_variables"]
        dynamic_vars["system__caller_name"] = "Samuel"
        result = normalize_webhook(_with_literal(legacy_envelope, self.LITERAL))
        assert result.contact.name == "Samuel"
        assert result.contact.email == "sam@example.com"

    def test_unknown_source_not_enriched(self):
        result = normalize_webhook({"analysis": {"value": self.LITERAL}})
        assert result.call_source == CallSource.UNKNOWN
        assert result.contact is None

    def test_internet_contact_created_from_extraction(self):
        analysis = AnalysisResult(
            total_score=10,
            lead_status_tag="Cold",
            extraction=LeadExtraction(name="Ana", email_address="not-an-email"),
        )
        assert enrich_contact(CallSource.INTERNET, None, analysis) == ContactInfo(name="Ana")

    def test_nothing_to_add(self):
        contact = ContactInfo(phone_number="+14155551234")
        analysis = AnalysisResult(total_score=10, lead_status_tag="Cold")
        assert enrich_contact(CallSource.PHONE, contact, analysis) is contact


# ---------------------------------------------------------------------------
# Totality and idempotence
# ---------------------------------------------------------------------------


class TestTotality:
    @pytest.mark.parametrize("envelope", [None, [], "body", 42, b"{}"])
    def test_non_mapping_raises_type_error(self, envelope):
        with pytest.raises(TypeError):
            normalize_webhook(envelope)

    def test_read_only_mapping_accepted(self, legacy_envelope):
        result = normalize_webhook(MappingProxyType(legacy_envelope))
        assert result == normalize_webhook(legacy_envelope)

    @pytest.mark.parametrize(
        "envelope",
        [
            {"data": None},
            {"data": {"metadata": {"call_duration_secs": "forever", "start_time_unix_secs": "yesterday"}}},
            {"conversation_initiation_client_data": {"dynamic_variables": {"system__caller_id": 14155551234}}},
            {"analysis": {"data_collection_results": {"default": {"value": "{{{{"}}}},
            {"analysis": {"value": {"total_score": 55, "lead_status_tag": "Warm"}}},
        ],
    )
    def test_odd_envelopes_never_raise(self, envelope):
        result = normalize_webhook(envelope)
        assert result.is_valid == (not result.errors)

    def test_stage_exception_becomes_error(self, legacy_envelope, monkeypatch):
        def boom(metadata):
            raise RuntimeError("classifier exploded")

        monkeypatch.setattr(webhook_normalizer, "classify_call_source", boom)
        result = normalize_webhook(legacy_envelope)
        assert result.call_source == CallSource.UNKNOWN
        assert result.errors == ("metadata: call source classification failed unexpectedly (RuntimeError)",)
        assert result.is_valid is False
        assert result.analysis is not None


class TestIdempotence:
    def test_same_input_same_output(self, legacy_envelope, data_wrapped_envelope):
        for envelope in (legacy_envelope, data_wrapped_envelope):
            first = normalize_webhook(envelope)
            second = normalize_webhook(envelope)
            assert first == second
            assert first.model_dump_json() == second.model_dump_json()


# ---------------------------------------------------------------------------
# Assembly and logging
# ---------------------------------------------------------------------------


class TestAssembleResult:
    def test_validity_follows_errors(self):
        result = assemble_result(
            payload_version=PayloadVersion.UNRECOGNIZED,
            metadata=CallMetadata(),
            call_source=CallSource.UNKNOWN,
            contact=None,
            analysis=None,
            errors=["parse: broken"],
            warnings=["structural: odd"],
        )
        assert result.is_valid is False
        assert result.errors == ("parse: broken",)
        assert result.warnings == ("structural: odd",)

    def test_result_is_frozen(self, legacy_envelope):
        result = normalize_webhook(legacy_envelope)
        with pytest.raises(Exception):
            result.is_valid = False


class TestLogging:
    def test_conversation_id_bound_during_normalization(self, legacy_envelope, monkeypatch):
        seen = []
        real_locate = webhook_normalizer.locate_analysis_literal

        def spy(envelope):
            seen.append(get_correlation_id())
            return real_locate(envelope)

        monkeypatch.setattr(webhook_normalizer, "locate_analysis_literal", spy)
        normalize_webhook(legacy_envelope)
        assert seen == ["conv_legacy_001"]
        assert get_correlation_id() is None

    def test_summary_line(self, legacy_envelope, caplog):
        with caplog.at_level(logging.INFO, logger="callnorm.services.webhook_normalizer"):
            normalize_webhook(legacy_envelope)
        record = next(r for r in caplog.records if r.getMessage().startswith("Webhook normalized"))
        assert record.payload_version == "legacy_dynamic_vars"
        assert record.call_source == "phone"
        assert record.error_count == 0
        assert record.warning_count == 0

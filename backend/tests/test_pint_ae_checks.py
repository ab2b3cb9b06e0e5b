"""Tests for pintae/engine/pint_ae_checks.py and the UC1 check pack.

Covers:
  - clean sample produces no findings; seeded sample produces exactly the seeded ones
  - field aliases and dataset routing
  - individual handlers (FX rate, due date, decimals, tax breakdown, lines)
  - runner isolation and case fields (owner, SLA, reference terms)
"""

import pytest
from unittest.mock import patch

from pintae.engine import pint_ae_checks
from pintae.engine.check_pack import UAE_UC1_CHECK_PACK, get_check_by_id
from pintae.engine.codelists import get_codelist_codes, is_code_in_codelist
from pintae.engine.pint_ae_checks import (
    count_decimals,
    dataset_for_field,
    run_all_pint_ae_checks,
    run_pint_ae_check,
)


# ═══════════════════════════════════════════════════
# HELPERS
# ═══════════════════════════════════════════════════

def _counts(exceptions) -> dict:
    out: dict[str, int] = {}
    for e in exceptions:
        out[e.check_id] = out.get(e.check_id, 0) + 1
    return out


def _run(check_id: str, data):
    return run_pint_ae_check(get_check_by_id(check_id), data)


# ═══════════════════════════════════════════════════
# Check pack
# ═══════════════════════════════════════════════════

class TestCheckPack:

    def test_pack_size_and_ids(self):
        ids = [c["check_id"] for c in UAE_UC1_CHECK_PACK]
        assert len(ids) == 37
        assert len(set(ids)) == 37
        assert ids[0] == "UAE-UC1-CHK-001"
        assert ids[-1] == "UAE-UC1-CHK-037"

    def test_every_check_references_terms(self):
        for check in UAE_UC1_CHECK_PACK:
            assert check["pint_reference_terms"], check["check_id"]

    def test_get_check_by_id(self):
        assert get_check_by_id("UAE-UC1-CHK-013")["rule_type"] == "Format"
        assert get_check_by_id("UAE-UC1-CHK-999") is None

    def test_codelists(self):
        assert "AED" in get_codelist_codes("ISO4217")
        assert is_code_in_codelist("TaxCategory", " s ")
        assert not is_code_in_codelist("UAESubdivision", "AE-XX")
        assert get_codelist_codes("Nope") == []


# ═══════════════════════════════════════════════════
# Sample datasets
# ═══════════════════════════════════════════════════

class TestSampleDatasets:

    def test_positive_sample_is_clean(self, positive_context):
        assert run_all_pint_ae_checks(UAE_UC1_CHECK_PACK, positive_context) == []

    def test_negative_sample_findings(self, negative_context):
        exceptions = run_all_pint_ae_checks(UAE_UC1_CHECK_PACK, negative_context)
        assert _counts(exceptions) == {
            "UAE-UC1-CHK-009": 1,
            "UAE-UC1-CHK-016": 1,
            "UAE-UC1-CHK-018": 1,
            "UAE-UC1-CHK-019": 1,
            "UAE-UC1-CHK-025": 1,
            "UAE-UC1-CHK-028": 1,
            "UAE-UC1-CHK-029": 2,
        }

    def test_negative_findings_locate_records(self, negative_context):
        by_id = {}
        for e in run_all_pint_ae_checks(UAE_UC1_CHECK_PACK, negative_context):
            by_id.setdefault(e.check_id, []).append(e)
        assert by_id["UAE-UC1-CHK-018"][0].buyer_id == "B002"
        assert by_id["UAE-UC1-CHK-019"][0].buyer_id == "B003"
        assert by_id["UAE-UC1-CHK-019"][0].field_name == "buyer_electronic_address"
        assert by_id["UAE-UC1-CHK-016"][0].observed_value == "AE-XX"
        assert by_id["UAE-UC1-CHK-028"][0].line_id == "L002"
        assert by_id["UAE-UC1-CHK-028"][0].invoice_number == "UAE-2025-0002"
        assert sorted(e.invoice_id for e in by_id["UAE-UC1-CHK-029"]) == ["INV002", "INV003"]


# ═══════════════════════════════════════════════════
# Field helpers
# ═══════════════════════════════════════════════════

class TestFieldHelpers:

    def test_dataset_routing(self, positive_context):
        assert dataset_for_field("buyer_endpoint", "Header", positive_context) is positive_context.buyers
        assert dataset_for_field("unit_of_measure", None, positive_context) is positive_context.lines
        assert dataset_for_field("seller_endpoint", "Party", positive_context) is positive_context.headers
        assert dataset_for_field("tax_category_code", "Lines", positive_context) is positive_context.lines
        assert dataset_for_field("spec_id", "Header", positive_context) is positive_context.headers

    @pytest.mark.parametrize("value,expected", [
        ("1050.00", 0), ("10.5", 1), ("10.123", 3), (7, 0), ("abc", 0), (None, 0),
    ])
    def test_count_decimals(self, value, expected):
        assert count_decimals(value) == expected


# ═══════════════════════════════════════════════════
# Handlers
# ═══════════════════════════════════════════════════

class TestHeaderHandlers:

    def test_fx_rate_required_for_foreign_currency(self, make_context):
        data = make_context(headers=[
            {"invoice_id": "I1", "currency": "USD"},
            {"invoice_id": "I2", "currency": "USD", "fx_rate": "3.6725"},
            {"invoice_id": "I3", "currency": "USD", "fx_rate": "n/a"},
            {"invoice_id": "I4", "currency": "AED"},
        ])
        out = _run("UAE-UC1-CHK-008", data)
        assert [e.invoice_id for e in out] == ["I1", "I3"]
        assert out[0].observed_value == "(empty)"
        assert out[1].observed_value == "n/a"

    def test_tax_currency(self, make_context):
        data = make_context(headers=[
            {"invoice_id": "I1", "currency": "USD"},
            {"invoice_id": "I2", "currency": "USD", "tax_currency": "AED"},
            {"invoice_id": "I3", "currency": "AED", "tax_currency": "EUR"},
        ])
        out = _run("UAE-UC1-CHK-007", data)
        assert [e.invoice_id for e in out] == ["I1", "I3"]

    def test_due_date_before_issue_date(self, make_context):
        data = make_context(headers=[
            {"invoice_id": "I1", "issue_date": "2025-02-01", "payment_due_date": "2025-01-01", "amount_due": "10"},
            {"invoice_id": "I2", "issue_date": "2025-02-01", "amount_due": "0"},
        ])
        out = _run("UAE-UC1-CHK-009", data)
        assert [e.invoice_id for e in out] == ["I1"]
        assert "earlier than issue date" in out[0].message

    def test_max_decimals(self, make_context):
        data = make_context(headers=[
            {"invoice_id": "I1", "total_excl_vat": "100.123"},
            {"invoice_id": "I2", "total_excl_vat": "100.12"},
        ])
        out = _run("UAE-UC1-CHK-022", data)
        assert [e.invoice_id for e in out] == ["I1"]

    def test_absent_subdivision_left_to_presence(self, make_context):
        data = make_context(headers=[{"invoice_id": "I1"}])
        assert _run("UAE-UC1-CHK-016", data) == []

    def test_seller_address_alias(self, make_context):
        data = make_context(headers=[{"invoice_id": "I1", "seller_city": "Dubai", "seller_country": "AE"}])
        out = _run("UAE-UC1-CHK-015", data)
        assert [e.field_name for e in out] == ["seller_address"]


class TestLineHandlers:

    def test_invoice_without_lines(self, make_context):
        data = make_context(headers=[{"invoice_id": "I1"}])
        out = _run("UAE-UC1-CHK-030", data)
        assert len(out) == 1
        assert out[0].observed_value == "0 lines"

    def test_tax_breakdown_required_when_taxable(self, make_context):
        data = make_context(
            headers=[{"invoice_id": "I1", "total_excl_vat": "100"}, {"invoice_id": "I2", "total_excl_vat": "0"}],
            lines=[{"invoice_id": "I1", "line_total_excl_vat": "100"}],
        )
        out = _run("UAE-UC1-CHK-027", data)
        assert [e.invoice_id for e in out] == ["I1"]

    def test_line_net_formula(self, make_context):
        data = make_context(
            headers=[{"invoice_id": "I1", "invoice_number": "N1"}],
            lines=[{"line_id": "L1", "invoice_id": "I1", "quantity": "3", "unit_price": "10", "line_total_excl_vat": "31"}],
        )
        out = _run("UAE-UC1-CHK-034", data)
        assert len(out) == 1
        assert out[0].invoice_number == "N1"

    def test_tax_category_codelist_on_lines(self, make_context):
        data = make_context(lines=[
            {"line_id": "L1", "tax_category_code": "S"},
            {"line_id": "L2", "tax_category_code": "X"},
        ])
        out = _run("UAE-UC1-CHK-036", data)
        assert [e.line_id for e in out] == ["L2"]


# ═══════════════════════════════════════════════════
# Runner
# ═══════════════════════════════════════════════════

class TestRunner:

    def test_case_fields_populated(self, negative_context):
        exc = _run("UAE-UC1-CHK-018", negative_context)[0]
        check = get_check_by_id("UAE-UC1-CHK-018")
        assert exc.severity == check["severity"]
        assert exc.owner_team == check["owner_team_default"]
        assert exc.pint_reference_terms == list(check["pint_reference_terms"])
        assert exc.case_status == "Open"
        assert exc.sla_target_hours is not None
        assert exc.to_dict()["check_id"] == "UAE-UC1-CHK-018"

    def test_disabled_checks_skipped(self, negative_context):
        checks = [dict(c, is_enabled=False) for c in UAE_UC1_CHECK_PACK]
        assert run_all_pint_ae_checks(checks, negative_context) == []

    def test_unknown_rule_type_yields_nothing(self, negative_context):
        check = {"check_id": "X-1", "rule_type": "Semantic", "is_enabled": True}
        assert run_pint_ae_check(check, negative_context) == []

    def test_failing_check_isolated(self, negative_context):
        def boom(check, params, data):
            raise RuntimeError("boom")
            yield {}

        handlers = dict(pint_ae_checks._CHECK_HANDLERS)
        handlers["UAE-UC1-CHK-018"] = boom
        with patch.object(pint_ae_checks, "_CHECK_HANDLERS", handlers):
            exceptions = run_all_pint_ae_checks(UAE_UC1_CHECK_PACK, negative_context)
        counts = _counts(exceptions)
        assert "UAE-UC1-CHK-018" not in counts
        assert counts["UAE-UC1-CHK-029"] == 2

"""Tests for pintae/coverage/conformance.py — traceability matrix and run readiness.

Covers:
  - coverage status precedence
  - matrix rows / gaps over the shipped catalog and a hand-built one
  - per-DR pass/fail from exceptions
  - readiness gate returns every unmet precondition at once
"""

from types import SimpleNamespace

import pytest

from pintae.coverage.catalog import build_catalog, get_default_catalog
from pintae.coverage.conformance import (
    check_run_readiness,
    compute_coverage_status,
    compute_traceability_matrix,
    exception_counts_by_dr,
)
from pintae.coverage.population import compute_all_dataset_populations, populations_from_dict
from pintae.coverage.spec_registry import SpecRegistryField
from pintae.engine.check_pack import UAE_UC1_CHECK_PACK
from pintae.engine.datasets import build_data_context
from pintae.engine.pint_ae_checks import run_all_pint_ae_checks


# ═══════════════════════════════════════════════════
# HELPERS
# ═══════════════════════════════════════════════════

def _rows_by_id(result) -> dict:
    return {r.dr_id: r for r in result.rows}


@pytest.fixture
def small_catalog():
    """Three DRs: one fully covered, one ruled but uncontrolled, one ASP-derived."""
    fields = [
        SpecRegistryField(dr_id="IBT-001", business_term="Invoice number",
                          pint_ae_cardinality="1..1", mandatory_flag_by_use_case="Mandatory (UC1)"),
        SpecRegistryField(dr_id="IBT-081", business_term="Payment means code",
                          pint_ae_cardinality="0..1", vat_law_status="New"),
        SpecRegistryField(dr_id="IBT-023", business_term="Business process type",
                          pint_ae_cardinality="1..1", mandatory_flag_by_use_case="Mandatory (UC1)"),
    ]
    pack = [
        {"check_id": "R1", "check_name": "Invoice number present", "pint_reference_terms": ["IBT-001"]},
        {"check_id": "R2", "check_name": "Payment means code", "pint_reference_terms": ["IBT-081"]},
    ]
    controls = [{"control_id": "C1", "control_name": "Header gate", "control_type": "preventive",
                 "covered_rule_ids": ["R1"]}]
    return build_catalog(fields, check_pack=pack, control_definitions=controls, spec_version="test")


# ═══════════════════════════════════════════════════
# Coverage status
# ═══════════════════════════════════════════════════

class TestCoverageStatus:

    @pytest.mark.parametrize("in_template,rules,controls,expected", [
        (False, 3, 2, "NOT_IN_TEMPLATE"),
        (True, 0, 5, "NO_RULE"),
        (True, 2, 0, "NO_CONTROL"),
        (True, 1, 1, "COVERED"),
    ])
    def test_precedence(self, in_template, rules, controls, expected):
        assert compute_coverage_status(in_template, rules, controls) == expected


# ═══════════════════════════════════════════════════
# Matrix
# ═══════════════════════════════════════════════════

class TestTraceabilityMatrix:

    def test_small_catalog_rows(self, small_catalog):
        result = compute_traceability_matrix([], None, small_catalog)
        rows = _rows_by_id(result)
        assert rows["IBT-001"].coverage_status == "COVERED"
        assert rows["IBT-001"].rule_ids == ("R1",)
        assert rows["IBT-001"].control_names == ("Header gate",)
        assert rows["IBT-081"].coverage_status == "NO_CONTROL"
        assert rows["IBT-081"].is_new_pint_field is True
        assert rows["IBT-023"].coverage_status == "NOT_IN_TEMPLATE"
        assert rows["IBT-023"].population_pct is None
        assert result.spec_version == "test"

    def test_small_catalog_gaps(self, small_catalog):
        gaps = compute_traceability_matrix([], None, small_catalog).gaps
        assert gaps.total_drs == 3
        assert gaps.mandatory_drs == 2
        assert gaps.mandatory_not_in_template == 1
        assert gaps.mandatory_unmapped == 0
        assert gaps.drs_with_no_rules == 1
        assert gaps.drs_with_no_controls == 2
        assert gaps.drs_covered == 1

    def test_population_and_low_population_gap(self, small_catalog):
        pops = populations_from_dict({"headers": {"invoice_number": 90.0}})
        result = compute_traceability_matrix(pops, None, small_catalog)
        assert _rows_by_id(result)["IBT-001"].population_pct == 90.0
        assert result.gaps.mandatory_low_population == 1

    def test_pass_rate_from_counts(self, small_catalog):
        counts = {"IBT-001": {"pass": 3, "fail": 1}, "IBT-081": {"pass": 0, "fail": 0}}
        rows = _rows_by_id(compute_traceability_matrix([], counts, small_catalog))
        assert rows["IBT-001"].last_run_pass_rate == 75.0
        assert rows["IBT-001"].exception_count == 1
        assert rows["IBT-081"].last_run_pass_rate == 100.0
        assert rows["IBT-023"].last_run_pass_rate is None

    def test_shipped_catalog_statuses(self):
        rows = _rows_by_id(compute_traceability_matrix([]))
        assert len(rows) == 50
        assert rows["IBT-023"].coverage_status == "NOT_IN_TEMPLATE"
        assert rows["IBT-024"].coverage_status == "NOT_IN_TEMPLATE"
        assert rows["IBT-081"].coverage_status == "NO_CONTROL"
        assert rows["IBT-151"].coverage_status == "NO_CONTROL"
        assert rows["IBT-116"].coverage_status == "NO_RULE"
        assert rows["IBT-153"].coverage_status == "NO_RULE"
        assert rows["IBT-001"].coverage_status == "COVERED"

    def test_shipped_catalog_gaps(self):
        gaps = compute_traceability_matrix([]).gaps
        assert gaps.total_drs == 50
        assert gaps.mandatory_drs == 39
        assert gaps.mandatory_not_in_template == 5
        assert gaps.mandatory_not_ingestible == 0

    def test_matrix_is_deterministic(self, sample_negative):
        pops = compute_all_dataset_populations(sample_negative)
        first = compute_traceability_matrix(pops)
        second = compute_traceability_matrix(pops)
        assert first == second
        assert first.to_dict() == second.to_dict()

    def test_row_to_dict_lists(self):
        row = compute_traceability_matrix([]).rows[0].to_dict()
        assert isinstance(row["rule_ids"], list)
        assert isinstance(row["internal_columns"], list)


# ═══════════════════════════════════════════════════
# Exception counts per DR
# ═══════════════════════════════════════════════════

class TestExceptionCounts:

    def test_counts_follow_rules(self, small_catalog):
        exceptions = [SimpleNamespace(check_id="R1"), SimpleNamespace(check_id="R1"), SimpleNamespace(check_id="X")]
        counts = exception_counts_by_dr(exceptions, 5, small_catalog)
        assert counts == {"IBT-001": {"pass": 3, "fail": 2}, "IBT-081": {"pass": 5, "fail": 0}}

    def test_pass_never_negative(self, small_catalog):
        exceptions = [SimpleNamespace(check_id="R1")] * 4
        assert exception_counts_by_dr(exceptions, 2, small_catalog)["IBT-001"] == {"pass": 0, "fail": 4}

    def test_from_pint_ae_run(self, sample_negative):
        data = build_data_context(**sample_negative)
        exceptions = run_all_pint_ae_checks(UAE_UC1_CHECK_PACK, data)
        counts = exception_counts_by_dr(exceptions, len(data.headers))
        catalog = get_default_catalog()
        failed = {dr for dr, c in counts.items() if c["fail"]}
        assert failed
        assert failed <= set(catalog.rules_by_dr)


# ═══════════════════════════════════════════════════
# Readiness gate
# ═══════════════════════════════════════════════════

class TestRunReadiness:

    def test_ready(self):
        result = check_run_readiness(True, 100.0, None)
        assert result.can_run is True
        assert result.reasons == ()

    def test_population_at_threshold_passes(self):
        assert check_run_readiness(True, 100.0, 99.0).can_run is True

    def test_all_reasons_reported(self):
        result = check_run_readiness(False, 80.0, 50.0)
        assert result.can_run is False
        messages = [r["message"] for r in result.reasons]
        assert messages == [
            "No active mapping profile found.",
            "Mandatory DR mapping coverage is 80% (required: 100%).",
            "Mandatory DR population coverage is 50% (required: 99%).",
        ]
        assert [r["link"] for r in result.reasons] == ["/mapping?tab=create", "/mapping", "/upload"]

    def test_to_dict(self):
        d = check_run_readiness(True, 50.0, None).to_dict()
        assert d["can_run"] is False
        assert d["reasons"][0]["link_label"] == "Fix Mapping"

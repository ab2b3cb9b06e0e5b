"""Tests for pintae/engine/custom_checks.py — user-defined rule configurations.

Covers:
  - load_check_config: validation of rule_type / dataset_scope / parameters
  - missing / duplicate / math / regex / custom_formula evaluators
  - condition gate and is_active handling
  - incomplete parameters skip the check instead of failing the run
"""

import pytest

from pintae.engine.custom_checks import (
    CheckConfigError,
    DuplicateParams,
    MathParams,
    load_check_config,
    load_check_configs,
    run_custom_check,
    run_custom_checks,
)


# ═══════════════════════════════════════════════════
# HELPERS
# ═══════════════════════════════════════════════════

def _check(rule_type: str, parameters: dict, scope: str = "header", **extra) -> dict:
    cfg = {
        "id": f"custom-{rule_type}",
        "name": f"Custom {rule_type}",
        "rule_type": rule_type,
        "dataset_scope": scope,
        "severity": "High",
        "parameters": parameters,
    }
    cfg.update(extra)
    return cfg


# ═══════════════════════════════════════════════════
# Config loading
# ═══════════════════════════════════════════════════

class TestLoadCheckConfig:

    def test_valid_config(self):
        check = load_check_config(_check("missing", {"field": "buyer_trn"}, scope="buyers"))
        assert check.rule_type == "missing"
        assert check.dataset_scope == "buyers"
        assert check.severity == "High"
        assert check.is_active is True

    def test_unknown_rule_type(self):
        with pytest.raises(CheckConfigError, match="rule_type"):
            load_check_config(_check("lookup", {}))

    def test_unknown_scope(self):
        with pytest.raises(CheckConfigError, match="dataset_scope"):
            load_check_config(_check("missing", {"field": "x"}, scope="payments"))

    def test_parameters_must_be_mapping(self):
        with pytest.raises(CheckConfigError, match="parameters"):
            load_check_config(_check("missing", ["field"]))

    def test_not_a_mapping(self):
        with pytest.raises(CheckConfigError):
            load_check_config("missing")

    def test_bad_tolerance(self):
        with pytest.raises(CheckConfigError, match="tolerance"):
            load_check_config(_check("math", {
                "left_expression": "{a}", "right_expression": "{b}",
                "operator": "=", "tolerance": "tight",
            }))

    def test_duplicate_fields_from_comma_string(self):
        check = load_check_config(_check("duplicate", {"fields": "seller_trn, invoice_number"}))
        assert isinstance(check.params, DuplicateParams)
        assert check.params.fields == ("seller_trn", "invoice_number")

    def test_math_default_tolerance(self):
        check = load_check_config(_check("math", {
            "left_expression": "{a}", "right_expression": "{b}", "operator": "=",
        }))
        assert isinstance(check.params, MathParams)
        assert check.params.tolerance == 0.01

    def test_is_enabled_alias(self):
        check = load_check_config(_check("missing", {"field": "x"}, is_enabled=False))
        assert check.is_active is False

    def test_condition_from_parameters(self):
        check = load_check_config(_check("missing", {"field": "x", "condition": '{currency} == "USD"'}))
        assert check.condition == '{currency} == "USD"'

    def test_load_many_fails_on_first_bad(self):
        with pytest.raises(CheckConfigError):
            load_check_configs([_check("missing", {"field": "x"}), _check("nope", {})])


# ═══════════════════════════════════════════════════
# missing
# ═══════════════════════════════════════════════════

class TestMissingRule:

    def test_flags_blank_values(self, make_context):
        data = make_context(buyers=[
            {"buyer_id": "B1", "buyer_trn": "100000000000003"},
            {"buyer_id": "B2", "buyer_trn": "  "},
            {"buyer_id": "B3"},
        ])
        check = _check("missing", {"field": "buyer_trn"}, scope="buyers",
                       message_template="Buyer {buyer_id} has no TRN")
        out = run_custom_check(check, data)
        assert [e.buyer_id for e in out] == ["B2", "B3"]
        assert out[0].message == "Buyer B2 has no TRN"
        assert out[0].check_id == "custom-missing"
        assert out[0].severity == "High"

    def test_missing_field_param_skips(self, make_context):
        data = make_context(buyers=[{"buyer_id": "B1"}])
        assert run_custom_check(_check("missing", {}, scope="buyers"), data) == []


# ═══════════════════════════════════════════════════
# duplicate
# ═══════════════════════════════════════════════════

class TestDuplicateRule:

    def test_every_member_of_group_flagged(self, make_context):
        headers = [
            {"invoice_id": f"I{i}", "invoice_number": "UAE-1", "seller_trn": "100000000000001"}
            for i in range(3)
        ] + [{"invoice_id": "I9", "invoice_number": "UAE-2", "seller_trn": "100000000000001"}]
        check = _check("duplicate", {"fields": ["seller_trn", "invoice_number"]},
                       message_template="{invoice_number} appears {count} times")
        out = run_custom_check(check, make_context(headers=headers))
        assert [e.invoice_id for e in out] == ["I0", "I1", "I2"]
        assert all(e.actual_value == "3 duplicates" for e in out)
        assert out[0].message == "UAE-1 appears 3 times"

    def test_numeric_keys_group_with_strings(self, make_context):
        headers = [
            {"invoice_id": "A", "invoice_number": 1050.0},
            {"invoice_id": "B", "invoice_number": "1050"},
        ]
        out = run_custom_check(_check("duplicate", {"fields": ["invoice_number"]}), make_context(headers=headers))
        assert len(out) == 2


# ═══════════════════════════════════════════════════
# math
# ═══════════════════════════════════════════════════

class TestMathRule:

    def _totals_check(self, **params):
        base = {
            "left_expression": "{total_incl_vat}",
            "right_expression": "{total_excl_vat} + {vat_total}",
            "operator": "=",
        }
        base.update(params)
        return _check("math", base, message_template="Total {left} vs {right}")

    def test_exact_total_passes(self, make_context):
        data = make_context(headers=[
            {"invoice_id": "I1", "total_excl_vat": "1000.00", "vat_total": "50.00", "total_incl_vat": "1050.00"},
        ])
        assert run_custom_check(self._totals_check(), data) == []

    def test_one_fil_over_fails(self, make_context):
        data = make_context(headers=[
            {"invoice_id": "I1", "total_excl_vat": "1000.00", "vat_total": "50.00", "total_incl_vat": "1050.01"},
        ])
        out = run_custom_check(self._totals_check(), data)
        assert len(out) == 1
        assert out[0].field == "{total_incl_vat}"
        assert out[0].expected_value == pytest.approx(1050.0)
        assert out[0].actual_value == pytest.approx(1050.01)
        assert out[0].message == "Total 1050.01 vs 1050"

    def test_unresolvable_record_skipped(self, make_context):
        data = make_context(headers=[{"invoice_id": "I1", "total_incl_vat": "10"}])
        assert run_custom_check(self._totals_check(), data) == []

    @pytest.mark.parametrize("operator,left,expected_count", [
        (">", "5", 0), (">", "1", 1), ("<", "1", 0), ("<=", "2", 0), (">=", "1", 1), ("!=", "2", 1),
    ])
    def test_operators(self, make_context, operator, left, expected_count):
        data = make_context(headers=[{"invoice_id": "I1", "a": left, "b": "2"}])
        check = _check("math", {"left_expression": "{a}", "right_expression": "{b}", "operator": operator})
        assert len(run_custom_check(check, data)) == expected_count

    def test_unknown_operator_flags(self, make_context):
        data = make_context(headers=[{"invoice_id": "I1", "a": "2", "b": "2"}])
        check = _check("math", {"left_expression": "{a}", "right_expression": "{b}", "operator": "~"})
        assert len(run_custom_check(check, data)) == 1


# ═══════════════════════════════════════════════════
# regex
# ═══════════════════════════════════════════════════

class TestRegexRule:

    def test_non_matching_values_flagged(self, make_context):
        data = make_context(buyers=[
            {"buyer_id": "B1", "buyer_trn": "100000000000003"},
            {"buyer_id": "B2", "buyer_trn": "INVALIDTRN"},
            {"buyer_id": "B3", "buyer_trn": ""},
        ])
        check = _check("regex", {"field": "buyer_trn", "pattern": r"^\d{15}$"}, scope="buyers")
        out = run_custom_check(check, data)
        assert [e.buyer_id for e in out] == ["B2"]
        assert out[0].expected_value == r"matches ^\d{15}$"

    def test_invalid_pattern_skips(self, make_context):
        data = make_context(buyers=[{"buyer_id": "B1", "buyer_trn": "x"}])
        check = _check("regex", {"field": "buyer_trn", "pattern": "(["}, scope="buyers")
        assert run_custom_check(check, data) == []


# ═══════════════════════════════════════════════════
# custom_formula
# ═══════════════════════════════════════════════════

class TestFormulaRule:

    def test_false_formula_flags(self, make_context):
        data = make_context(headers=[
            {"invoice_id": "I1", "amount_due": "100", "total_incl_vat": "100"},
            {"invoice_id": "I2", "amount_due": "150", "total_incl_vat": "100"},
        ])
        check = _check("custom_formula", {"formula": "{amount_due} <= {total_incl_vat}"})
        out = run_custom_check(check, data)
        assert [e.invoice_id for e in out] == ["I2"]

    def test_unevaluable_formula_fails_open(self, make_context):
        data = make_context(headers=[{"invoice_id": "I1", "a": 1}])
        check = _check("custom_formula", {"formula": "{a} <"})
        assert run_custom_check(check, data) == []


# ═══════════════════════════════════════════════════
# Scope, condition, activation
# ═══════════════════════════════════════════════════

class TestRunner:

    def test_condition_gates_records(self, make_context):
        data = make_context(headers=[
            {"invoice_id": "I1", "currency": "USD"},
            {"invoice_id": "I2", "currency": "AED"},
        ])
        check = _check("missing", {"field": "fx_rate"}, condition='{currency} != "AED"')
        out = run_custom_check(check, data)
        assert [e.invoice_id for e in out] == ["I1"]

    def test_broken_condition_keeps_every_record(self, make_context):
        data = make_context(headers=[{"invoice_id": "I1"}, {"invoice_id": "I2"}])
        check = _check("missing", {"field": "fx_rate"}, condition="{currency} ==")
        assert len(run_custom_check(check, data)) == 2

    def test_non_numeric_amount_fails_numeric_condition(self, make_context):
        data = make_context(headers=[
            {"invoice_id": "I1", "amount": "abc"},
            {"invoice_id": "I2", "amount": "10"},
        ])
        check = _check("missing", {"field": "payment_due_date"}, condition="{amount} > 0")
        assert [e.invoice_id for e in run_custom_check(check, data)] == ["I2"]

    def test_cross_file_scope_runs_on_headers(self, make_context):
        data = make_context(
            headers=[{"invoice_id": "I1"}],
            lines=[{"line_id": "L1", "invoice_id": "I1"}],
        )
        out = run_custom_check(_check("missing", {"field": "buyer_id"}, scope="cross-file"), data)
        assert [e.invoice_id for e in out] == ["I1"]
        assert out[0].line_id is None

    def test_lines_carry_header_coordinates(self, make_context):
        data = make_context(
            headers=[{"invoice_id": "I1", "invoice_number": "UAE-9", "seller_trn": "100000000000001"}],
            lines=[{"line_id": "L1", "invoice_id": "I1", "line_number": "1"}],
        )
        out = run_custom_check(_check("missing", {"field": "vat_amount"}, scope="lines"), data)
        assert out[0].invoice_number == "UAE-9"
        assert out[0].seller_trn == "100000000000001"
        assert out[0].line_id == "L1"

    def test_inactive_checks_skipped(self, make_context):
        data = make_context(headers=[{"invoice_id": "I1"}])
        checks = [
            _check("missing", {"field": "a"}, is_active=False),
            _check("missing", {"field": "b"}),
        ]
        out = run_custom_checks(checks, data)
        assert [e.field for e in out] == ["b"]

    def test_default_check_id(self, make_context):
        data = make_context(headers=[{"invoice_id": "I1"}])
        cfg = _check("missing", {"field": "a"})
        del cfg["id"]
        assert run_custom_check(cfg, data)[0].check_id == "custom"

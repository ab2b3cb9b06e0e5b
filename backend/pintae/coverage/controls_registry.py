"""Controls registry — controls → rules → DRs.

Each control covers a set of validation rules; the DRs a control protects
are derived from those rules' ``affected_dr_ids``.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Iterable

from pintae.coverage.rule_traceability import RuleTraceEntry

CONTROLS_DEFINITION: list[dict[str, Any]] = [
    # ── Preventive ──
    {
        "control_id": "CTRL-001",
        "control_name": "Header Mandatory Fields Gate",
        "control_type": "preventive",
        "description": "Blocks invoice submission when mandatory header identifiers are missing",
        "covered_rule_ids": ["UAE-UC1-CHK-001", "UAE-UC1-CHK-002", "UAE-UC1-CHK-004", "UAE-UC1-CHK-005"],
    },
    {
        "control_id": "CTRL-002",
        "control_name": "Date Format Enforcement",
        "control_type": "preventive",
        "description": "Ensures all dates conform to ISO 8601 YYYY-MM-DD format before processing",
        "covered_rule_ids": ["UAE-UC1-CHK-003"],
    },
    {
        "control_id": "CTRL-003",
        "control_name": "Currency Code Validation",
        "control_type": "preventive",
        "description": "Validates currency codes against ISO 4217 and enforces AED tax accounting",
        "covered_rule_ids": ["UAE-UC1-CHK-006", "UAE-UC1-CHK-007", "UAE-UC1-CHK-008"],
    },
    {
        "control_id": "CTRL-004",
        "control_name": "Seller Identity Verification",
        "control_type": "preventive",
        "description": "Ensures seller name, TRN, electronic address and postal address are complete and valid",
        "covered_rule_ids": ["UAE-UC1-CHK-012", "UAE-UC1-CHK-013", "UAE-UC1-CHK-014", "UAE-UC1-CHK-015"],
    },
    {
        "control_id": "CTRL-005",
        "control_name": "Buyer Identity Verification",
        "control_type": "preventive",
        "description": "Ensures buyer name, TRN format, electronic address and postal address are valid",
        "covered_rule_ids": ["UAE-UC1-CHK-017", "UAE-UC1-CHK-018", "UAE-UC1-CHK-019", "UAE-UC1-CHK-020"],
    },
    {
        "control_id": "CTRL-006",
        "control_name": "UAE Subdivision Code Gate",
        "control_type": "preventive",
        "description": "Validates emirate codes against the official UAE code list",
        "covered_rule_ids": ["UAE-UC1-CHK-016"],
    },
    {
        "control_id": "CTRL-007",
        "control_name": "ASP Metadata Enforcement",
        "control_type": "preventive",
        "description": "Validates ASP-derived fields: specification ID and business process type",
        "covered_rule_ids": ["UAE-UC1-CHK-010", "UAE-UC1-CHK-011"],
    },
    {
        "control_id": "CTRL-008",
        "control_name": "Transaction Type Code Validation",
        "control_type": "preventive",
        "description": "Validates BTUAE-02 transaction type code format and presence",
        # transaction type is checked together with the invoice type code
        "covered_rule_ids": ["UAE-UC1-CHK-004"],
    },
    # ── Detective ──
    {
        "control_id": "CTRL-009",
        "control_name": "Invoice Totals Reconciliation",
        "control_type": "detective",
        "description": "Detects mismatches between line sums and header totals",
        "covered_rule_ids": ["UAE-UC1-CHK-021", "UAE-UC1-CHK-025", "UAE-UC1-CHK-029"],
    },
    {
        "control_id": "CTRL-010",
        "control_name": "Decimal Precision Audit",
        "control_type": "detective",
        "description": "Detects monetary amounts exceeding 2 decimal places",
        "covered_rule_ids": ["UAE-UC1-CHK-022", "UAE-UC1-CHK-023", "UAE-UC1-CHK-024", "UAE-UC1-CHK-026"],
    },
    {
        "control_id": "CTRL-011",
        "control_name": "Tax Calculation Verification",
        "control_type": "detective",
        "description": "Verifies tax category amounts match the taxable base × rate formula",
        "covered_rule_ids": ["UAE-UC1-CHK-027", "UAE-UC1-CHK-028"],
    },
    {
        "control_id": "CTRL-012",
        "control_name": "Line Item Completeness Check",
        "control_type": "detective",
        "description": "Ensures every invoice has at least one line and each line has identifiers and quantities",
        "covered_rule_ids": ["UAE-UC1-CHK-030", "UAE-UC1-CHK-031", "UAE-UC1-CHK-032", "UAE-UC1-CHK-033"],
    },
    {
        "control_id": "CTRL-013",
        "control_name": "Line Net Amount Reconciliation",
        "control_type": "detective",
        "description": "Validates line net amount = (quantity × unit price) - discounts",
        "covered_rule_ids": ["UAE-UC1-CHK-034"],
    },
    {
        "control_id": "CTRL-014",
        "control_name": "Payment Terms Consistency",
        "control_type": "detective",
        "description": "Ensures payment due date is present when amount due > 0 and is not before issue date",
        "covered_rule_ids": ["UAE-UC1-CHK-009"],
    },
]


@dataclass(frozen=True)
class ControlEntry:
    control_id: str
    control_name: str
    control_type: str
    description: str
    covered_rule_ids: tuple[str, ...]
    covered_dr_ids: tuple[str, ...]

    def to_dict(self) -> dict[str, Any]:
        return {
            "control_id": self.control_id,
            "control_name": self.control_name,
            "control_type": self.control_type,
            "description": self.description,
            "covered_rule_ids": list(self.covered_rule_ids),
            "covered_dr_ids": list(self.covered_dr_ids),
        }


def build_controls_registry(
    rules: Iterable[RuleTraceEntry],
    definitions: Iterable[dict[str, Any]] = CONTROLS_DEFINITION,
) -> list[ControlEntry]:
    """Attach derived ``covered_dr_ids`` (first-seen order) to each control."""
    rule_map = {r.rule_id: r for r in rules}
    controls = []
    for ctrl in definitions:
        dr_ids: dict[str, None] = {}
        for rule_id in ctrl["covered_rule_ids"]:
            rule = rule_map.get(rule_id)
            if rule is None:
                continue
            for dr_id in rule.affected_dr_ids:
                dr_ids[dr_id] = None
        controls.append(ControlEntry(
            control_id=ctrl["control_id"],
            control_name=ctrl["control_name"],
            control_type=ctrl["control_type"],
            description=ctrl.get("description", ""),
            covered_rule_ids=tuple(ctrl["covered_rule_ids"]),
            covered_dr_ids=tuple(dr_ids),
        ))
    return controls


def get_controls_for_dr(dr_id: str, controls: Iterable[ControlEntry]) -> list[ControlEntry]:
    return [c for c in controls if dr_id in c.covered_dr_ids]


def get_controls_for_rule(rule_id: str, controls: Iterable[ControlEntry]) -> list[ControlEntry]:
    return [c for c in controls if rule_id in c.covered_rule_ids]


def get_drs_with_controls(controls: Iterable[ControlEntry]) -> set[str]:
    return {dr_id for c in controls for dr_id in c.covered_dr_ids}

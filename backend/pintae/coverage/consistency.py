"""Internal consistency of the catalog: registry, rules, controls and templates.

Runs before a traceability export.  Errors block the export, warnings do not.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Optional

from pintae.coverage.catalog import TraceabilityCatalog, get_default_catalog
from pintae.engine.datasets import utc_now_iso

logger = logging.getLogger(__name__)

# Group, meta and derived terms the check pack cites that are not customer DRs
NON_BLOCKING_RULE_REFERENCES = frozenset([
    "IBG-23", "IBG-25", "IBT-006", "IBT-007",
    "BTUAE-001", "BTUAE-002", "BTUAE-003", "BTUAE-004", "BTUAE-005",
])


@dataclass(frozen=True)
class ConsistencyIssue:
    level: str
    category: str
    message: str
    affected_ids: tuple[str, ...]

    def to_dict(self) -> dict[str, Any]:
        return {
            "level": self.level,
            "category": self.category,
            "message": self.message,
            "affected_ids": list(self.affected_ids),
        }


@dataclass(frozen=True)
class ConsistencyReport:
    issues: tuple[ConsistencyIssue, ...]
    passed: int
    failed: int
    timestamp: str

    @property
    def has_errors(self) -> bool:
        return any(i.level == "error" for i in self.issues)

    def to_dict(self) -> dict[str, Any]:
        return {
            "issues": [i.to_dict() for i in self.issues],
            "passed": self.passed,
            "failed": self.failed,
            "has_errors": self.has_errors,
            "timestamp": self.timestamp,
        }


def run_consistency_checks(catalog: Optional[TraceabilityCatalog] = None) -> ConsistencyReport:
    catalog = catalog or get_default_catalog()
    issues: list[ConsistencyIssue] = []
    passed = 0

    all_dr_ids = set(catalog.dr_by_id)
    mandatory = [e for e in catalog.drs if e.mandatory_for_default_use_case]

    # 1. Mandatory DRs present
    if mandatory:
        passed += 1

    # 2. Rule → DR references
    invalid, non_blocking = [], []
    for rule in catalog.rules:
        for dr_id in rule.affected_dr_ids:
            if dr_id in all_dr_ids:
                continue
            trace = f"{rule.rule_id} -> {dr_id}"
            (non_blocking if dr_id in NON_BLOCKING_RULE_REFERENCES else invalid).append(trace)
    if non_blocking:
        issues.append(ConsistencyIssue(
            "warning", "Rule-DR Integrity",
            f"{len(non_blocking)} rule reference(s) are outside the customer DR registry "
            f"(non-blocking meta/derived terms)",
            tuple(non_blocking),
        ))
    if invalid:
        issues.append(ConsistencyIssue(
            "error", "Rule-DR Integrity",
            f"{len(invalid)} rule(s) reference DR IDs not in registry",
            tuple(invalid),
        ))
    else:
        passed += 1

    # 3. Template columns → DRs
    orphans = [e.dr_id for e in catalog.drs if e.internal_column_names and e.dr_id not in all_dr_ids]
    if orphans:
        issues.append(ConsistencyIssue(
            "error", "Template-DR Integrity",
            f"{len(orphans)} template column mapping(s) reference invalid DR IDs",
            tuple(orphans),
        ))
    else:
        passed += 1

    # 4. DRs with rules but no control
    ruled = set(catalog.rules_by_dr)
    controlled = set(catalog.controls_by_dr)
    uncontrolled = [
        e.dr_id for e in catalog.drs
        if e.internal_column_names and e.dr_id in ruled and e.dr_id not in controlled
    ]
    if uncontrolled:
        issues.append(ConsistencyIssue(
            "warning", "Coverage Integrity",
            f"{len(uncontrolled)} DR(s) have rules but no control linked",
            tuple(uncontrolled),
        ))
    else:
        passed += 1

    # 5. Control → rule references
    rule_ids = set(catalog.rule_by_id)
    bad_refs = [
        f"{c.control_id} -> {rid}"
        for c in catalog.controls
        for rid in c.covered_rule_ids
        if rid not in rule_ids
    ]
    if bad_refs:
        issues.append(ConsistencyIssue(
            "error", "Control-Rule Integrity",
            f"{len(bad_refs)} control(s) reference rule IDs not in check pack",
            tuple(bad_refs),
        ))
    else:
        passed += 1

    # 6. Mandatory DRs without a rule
    no_rule = [e.dr_id for e in mandatory if e.dr_id not in ruled]
    if no_rule:
        issues.append(ConsistencyIssue(
            "warning", "Mandatory Coverage",
            f"{len(no_rule)} mandatory DR(s) have no validation rule",
            tuple(no_rule),
        ))
    else:
        passed += 1

    for issue in issues:
        logger.warning(f"Consistency [{issue.category}] {issue.level}: {issue.message}")

    return ConsistencyReport(
        issues=tuple(issues),
        passed=passed,
        failed=len(issues),
        timestamp=utc_now_iso(),
    )

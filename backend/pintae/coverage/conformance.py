"""
Conformance engine: DR traceability matrix, gap analysis and run readiness.

Combines the catalog (DRs, rules, controls) with column population stats and,
optionally, per-DR pass/fail counts from the last run.  Everything here is a
pure function of its inputs.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, asdict
from typing import Any, Iterable, Mapping, Optional, Sequence

from pintae.config import (
    MANDATORY_MAPPING_COVERAGE_THRESHOLD,
    MANDATORY_POPULATION_THRESHOLD,
    POPULATION_WARNING_THRESHOLD,
)
from pintae.coverage.catalog import TraceabilityCatalog, get_default_catalog
from pintae.coverage.dr_registry import is_dr_ingestible
from pintae.coverage.population import DatasetPopulation, get_column_population_pct

logger = logging.getLogger(__name__)

COVERAGE_STATUSES = ("NOT_IN_TEMPLATE", "NO_RULE", "NO_CONTROL", "COVERED")


def compute_coverage_status(in_template: bool, rule_count: int, control_count: int) -> str:
    if not in_template:
        return "NOT_IN_TEMPLATE"
    if rule_count == 0:
        return "NO_RULE"
    if control_count == 0:
        return "NO_CONTROL"
    return "COVERED"


# ═══════════════════════════════════════════════════
# RESULT TYPES
# ═══════════════════════════════════════════════════

@dataclass(frozen=True)
class TraceabilityRow:
    dr_id: str
    business_term: str
    mandatory: bool
    vat_law_status: str
    is_new_pint_field: bool
    dataset_file: Optional[str]
    internal_columns: tuple[str, ...]
    in_template: bool
    ingestible: bool
    population_pct: Optional[float]
    rule_ids: tuple[str, ...]
    rule_names: tuple[str, ...]
    control_ids: tuple[str, ...]
    control_names: tuple[str, ...]
    coverage_status: str
    last_run_pass_rate: Optional[float]
    category: str
    data_responsibility: str
    exception_count: int

    def to_dict(self) -> dict[str, Any]:
        d = asdict(self)
        for key in ("internal_columns", "rule_ids", "rule_names", "control_ids", "control_names"):
            d[key] = list(d[key])
        return d


@dataclass(frozen=True)
class GapsSummary:
    mandatory_not_in_template: int
    mandatory_not_ingestible: int
    mandatory_unmapped: int
    mandatory_low_population: int
    drs_with_no_rules: int
    drs_with_no_controls: int
    drs_covered: int
    total_drs: int
    mandatory_drs: int
    population_threshold: float

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class ConformanceResult:
    rows: tuple[TraceabilityRow, ...]
    gaps: GapsSummary
    spec_version: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "rows": [r.to_dict() for r in self.rows],
            "gaps": self.gaps.to_dict(),
            "spec_version": self.spec_version,
        }


@dataclass(frozen=True)
class ReadinessResult:
    can_run: bool
    reasons: tuple[dict[str, str], ...]

    def to_dict(self) -> dict[str, Any]:
        return {"can_run": self.can_run, "reasons": [dict(r) for r in self.reasons]}


# ═══════════════════════════════════════════════════
# TRACEABILITY MATRIX
# ═══════════════════════════════════════════════════

def _population_for(entry, populations: Sequence[DatasetPopulation]) -> Optional[float]:
    if not entry.internal_column_names or not entry.dataset_file or not populations:
        return None
    pcts = [
        p for p in (
            get_column_population_pct(populations, entry.dataset_file, col)
            for col in entry.internal_column_names
        )
        if p is not None
    ]
    if not pcts:
        return None
    return sum(pcts) / len(pcts)


def compute_traceability_matrix(
    populations: Sequence[DatasetPopulation],
    exception_counts_by_dr: Optional[Mapping[str, Mapping[str, int]]] = None,
    catalog: Optional[TraceabilityCatalog] = None,
) -> ConformanceResult:
    catalog = catalog or get_default_catalog()

    not_in_template = not_ingestible = low_population = 0
    no_rules = no_controls = covered = 0
    rows = []

    for entry in catalog.drs:
        rules = catalog.rules_for(entry.dr_id)
        controls = catalog.controls_for(entry.dr_id)
        in_template = len(entry.internal_column_names) > 0
        ingestible = is_dr_ingestible(entry)
        population_pct = _population_for(entry, populations)

        pass_rate = None
        exception_count = 0
        counts = (exception_counts_by_dr or {}).get(entry.dr_id)
        if counts:
            total = counts.get("pass", 0) + counts.get("fail", 0)
            pass_rate = counts.get("pass", 0) / total * 100 if total > 0 else 100.0
            exception_count = counts.get("fail", 0)

        status = compute_coverage_status(in_template, len(rules), len(controls))

        if entry.mandatory_for_default_use_case:
            if not in_template:
                not_in_template += 1
            if in_template and not ingestible:
                not_ingestible += 1
            if population_pct is not None and population_pct < POPULATION_WARNING_THRESHOLD:
                low_population += 1
        if not rules:
            no_rules += 1
        if not controls:
            no_controls += 1
        if status == "COVERED":
            covered += 1

        rows.append(TraceabilityRow(
            dr_id=entry.dr_id,
            business_term=entry.business_term,
            mandatory=entry.mandatory_for_default_use_case,
            vat_law_status=entry.vat_law_status,
            is_new_pint_field=entry.vat_law_status.lower() == "new",
            dataset_file=entry.dataset_file,
            internal_columns=entry.internal_column_names,
            in_template=in_template,
            ingestible=ingestible,
            population_pct=population_pct,
            rule_ids=tuple(r.rule_id for r in rules),
            rule_names=tuple(r.rule_name for r in rules),
            control_ids=tuple(c.control_id for c in controls),
            control_names=tuple(c.control_name for c in controls),
            coverage_status=status,
            last_run_pass_rate=pass_rate,
            category=entry.category,
            data_responsibility=entry.data_responsibility,
            exception_count=exception_count,
        ))

    gaps = GapsSummary(
        mandatory_not_in_template=not_in_template,
        mandatory_not_ingestible=not_ingestible,
        # every DR is bound through the static column map
        mandatory_unmapped=0,
        mandatory_low_population=low_population,
        drs_with_no_rules=no_rules,
        drs_with_no_controls=no_controls,
        drs_covered=covered,
        total_drs=len(catalog.drs),
        mandatory_drs=sum(1 for e in catalog.drs if e.mandatory_for_default_use_case),
        population_threshold=POPULATION_WARNING_THRESHOLD,
    )
    logger.info(
        f"Traceability matrix: {covered}/{len(catalog.drs)} DRs covered, "
        f"{not_in_template} mandatory not in template"
    )
    return ConformanceResult(rows=tuple(rows), gaps=gaps, spec_version=catalog.spec_version)


def exception_counts_by_dr(
    exceptions: Iterable[Any],
    record_count: int,
    catalog: Optional[TraceabilityCatalog] = None,
) -> dict[str, dict[str, int]]:
    """Per-DR ``{pass, fail}`` from exceptions of the last run.

    ``fail`` counts exceptions raised by any rule enforcing the DR; ``pass``
    is the remainder of ``record_count`` (never below zero).  Only DRs with
    at least one rule appear.
    """
    catalog = catalog or get_default_catalog()
    fails_by_rule: dict[str, int] = {}
    for exc in exceptions:
        fails_by_rule[exc.check_id] = fails_by_rule.get(exc.check_id, 0) + 1

    counts = {}
    for dr_id, rules in catalog.rules_by_dr.items():
        fail = sum(fails_by_rule.get(r.rule_id, 0) for r in rules)
        counts[dr_id] = {"pass": max(record_count - fail, 0), "fail": fail}
    return counts


# ═══════════════════════════════════════════════════
# RUN READINESS
# ═══════════════════════════════════════════════════

def check_run_readiness(
    has_mapping_profile: bool,
    mandatory_mapping_coverage: float,
    mandatory_population_pct: Optional[float],
) -> ReadinessResult:
    """Collect every unmet precondition; the run may start only when none are."""
    reasons = []

    if not has_mapping_profile:
        reasons.append({
            "message": "No active mapping profile found.",
            "link": "/mapping?tab=create",
            "link_label": "Create Mapping",
        })

    if mandatory_mapping_coverage < MANDATORY_MAPPING_COVERAGE_THRESHOLD:
        reasons.append({
            "message": (
                f"Mandatory DR mapping coverage is {mandatory_mapping_coverage:.0f}% "
                f"(required: {MANDATORY_MAPPING_COVERAGE_THRESHOLD:g}%)."
            ),
            "link": "/mapping",
            "link_label": "Fix Mapping",
        })

    if mandatory_population_pct is not None and mandatory_population_pct < MANDATORY_POPULATION_THRESHOLD:
        reasons.append({
            "message": (
                f"Mandatory DR population coverage is {mandatory_population_pct:.0f}% "
                f"(required: {MANDATORY_POPULATION_THRESHOLD:g}%)."
            ),
            "link": "/upload",
            "link_label": "Re-upload Data",
        })

    return ReadinessResult(can_run=not reasons, reasons=tuple(reasons))

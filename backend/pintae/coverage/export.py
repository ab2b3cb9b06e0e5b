"""DR traceability report as CSV."""

from __future__ import annotations

import csv
import io
from datetime import date
from typing import Iterable, Optional

from pintae.coverage.conformance import TraceabilityRow

REPORT_COLUMNS = [
    "dr_id",
    "business_term",
    "mandatory",
    "template",
    "column_names",
    "in_template",
    "ingestible",
    "population_pct",
    "rule_ids",
    "control_ids",
    "open_exception_count",
    "coverage_status",
]


def _yes_no(flag: bool) -> str:
    return "Yes" if flag else "No"


def export_traceability_csv(rows: Iterable[TraceabilityRow]) -> str:
    buf = io.StringIO()
    writer = csv.writer(buf, lineterminator="\n")
    writer.writerow(REPORT_COLUMNS)
    for row in rows:
        writer.writerow([
            row.dr_id,
            row.business_term,
            _yes_no(row.mandatory),
            row.dataset_file or "asp_derived",
            "; ".join(row.internal_columns),
            _yes_no(row.in_template),
            _yes_no(row.ingestible),
            f"{row.population_pct:.1f}" if row.population_pct is not None else "",
            "; ".join(row.rule_ids),
            "; ".join(row.control_ids),
            str(row.exception_count),
            row.coverage_status,
        ])
    return buf.getvalue()


def traceability_report_filename(on: Optional[date] = None) -> str:
    on = on or date.today()
    return f"DR_Traceability_Report_{on.isoformat()}.csv"

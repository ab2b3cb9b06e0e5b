"""Built-in check registry — the fixed baseline checks every run includes.

Each entry in ``BUILTIN_CHECKS`` defines:
  - id / name / description: identity shown in the check registry UI
  - severity: Critical | High | Medium | Low
  - category: buyer | header | line | cross-file — selects the record count
              that ``run_all_checks`` uses for the passed tally
  - run: ``fn(data: DataContext) -> list[CheckException]``

Arithmetic checks skip records whose numeric inputs are absent or
non-numeric; the missing value is reported by the presence checks instead.
"""

from __future__ import annotations

import re
import logging
from typing import Any, Mapping

from pintae.config import MONETARY_TOLERANCE, TRACE_ENABLED, TRN_PATTERN
from pintae.engine.datasets import (
    CheckException,
    CheckResult,
    DataContext,
    is_blank,
    record_coordinates,
    to_number,
    within_tolerance,
)

logger = logging.getLogger(__name__)


def _trace(msg: str):
    if TRACE_ENABLED:
        logger.debug(f"[TRACE] {msg}")


_TRN_RE = re.compile(TRN_PATTERN)

MANDATORY_HEADER_FIELDS = ["invoice_id", "invoice_number", "issue_date", "seller_trn", "currency"]


def _header_coordinates(header: Mapping[str, Any]) -> dict[str, Any]:
    return {
        "invoice_id": header.get("invoice_id"),
        "invoice_number": header.get("invoice_number"),
        "seller_trn": header.get("seller_trn"),
        "buyer_id": header.get("buyer_id"),
    }


# ═══════════════════════════════════════════════════
# 1. BUYER CHECKS
# ═══════════════════════════════════════════════════

def check_buyer_trn_missing(data: DataContext) -> list[CheckException]:
    out = []
    for buyer in data.buyers:
        trn = buyer.get("buyer_trn")
        if is_blank(trn):
            out.append(CheckException(
                check_id="buyer_trn_missing",
                check_name="Buyer TRN Missing",
                severity="Critical",
                message=f'Buyer "{buyer.get("buyer_name")}" (ID: {buyer.get("buyer_id")}) is missing TRN',
                buyer_id=buyer.get("buyer_id"),
                field="buyer_trn",
                actual_value=trn or "(empty)",
            ))
    return out


def check_buyer_trn_invalid_format(data: DataContext) -> list[CheckException]:
    out = []
    for buyer in data.buyers:
        trn = buyer.get("buyer_trn")
        if is_blank(trn) or _TRN_RE.match(str(trn)):
            continue
        out.append(CheckException(
            check_id="buyer_trn_invalid_format",
            check_name="Buyer TRN Invalid Format",
            severity="High",
            message=f'Buyer "{buyer.get("buyer_name")}" has invalid TRN format: {trn}',
            buyer_id=buyer.get("buyer_id"),
            field="buyer_trn",
            expected_value="15-digit number",
            actual_value=trn,
        ))
    return out


# ═══════════════════════════════════════════════════
# 2. HEADER CHECKS
# ═══════════════════════════════════════════════════

def check_duplicate_invoice_number(data: DataContext) -> list[CheckException]:
    """Every invoice sharing a seller TRN + invoice number is flagged."""
    groups: dict[str, list[Mapping[str, Any]]] = {}
    for header in data.headers:
        key = f"{header.get('seller_trn')}|{header.get('invoice_number')}"
        groups.setdefault(key, []).append(header)

    out = []
    for key, invoices in groups.items():
        if len(invoices) < 2:
            continue
        _trace(f"duplicate_invoice_number key={key!r} count={len(invoices)}")
        for invoice in invoices:
            out.append(CheckException(
                check_id="duplicate_invoice_number",
                check_name="Duplicate Invoice Number",
                severity="Critical",
                message=(
                    f'Duplicate invoice number "{invoice.get("invoice_number")}" '
                    f'for seller {invoice.get("seller_trn")}'
                ),
                invoice_id=invoice.get("invoice_id"),
                invoice_number=invoice.get("invoice_number"),
                seller_trn=invoice.get("seller_trn"),
                field="invoice_number",
                actual_value=f"{len(invoices)} occurrences",
            ))
    return out


def check_header_totals_mismatch(data: DataContext) -> list[CheckException]:
    out = []
    for header in data.headers:
        incl = to_number(header.get("total_incl_vat"))
        excl = to_number(header.get("total_excl_vat"))
        vat = to_number(header.get("vat_total"))
        if incl is None or excl is None or vat is None:
            continue
        expected = excl + vat
        if within_tolerance(incl, expected, MONETARY_TOLERANCE):
            continue
        out.append(CheckException(
            check_id="header_totals_mismatch",
            check_name="Header Totals Mismatch",
            severity="Critical",
            message=(
                f"Invoice {header.get('invoice_number')}: total_incl_vat ({incl}) != "
                f"total_excl_vat ({excl}) + vat_total ({vat})"
            ),
            **_header_coordinates(header),
            field="total_incl_vat",
            expected_value=expected,
            actual_value=incl,
        ))
    return out


def check_missing_mandatory_fields(data: DataContext) -> list[CheckException]:
    out = []
    for header in data.headers:
        for field in MANDATORY_HEADER_FIELDS:
            value = header.get(field)
            if not is_blank(value):
                continue
            label = header.get("invoice_number") or header.get("invoice_id")
            out.append(CheckException(
                check_id="missing_mandatory_fields",
                check_name="Missing Mandatory Header Fields",
                severity="Critical",
                message=f'Invoice {label}: missing mandatory field "{field}"',
                **_header_coordinates(header),
                field=field,
                expected_value="non-empty value",
                actual_value=value or "(empty)",
            ))
    return out


# ═══════════════════════════════════════════════════
# 3. LINE CHECKS
# ═══════════════════════════════════════════════════

def check_line_totals_mismatch(data: DataContext) -> list[CheckException]:
    out = []
    for line in data.lines:
        qty = to_number(line.get("quantity"))
        price = to_number(line.get("unit_price"))
        total = to_number(line.get("line_total_excl_vat"))
        if qty is None or price is None or total is None:
            continue
        discount = to_number(line.get("line_discount")) or 0
        expected = qty * price - discount
        if within_tolerance(total, expected, MONETARY_TOLERANCE):
            continue
        out.append(CheckException(
            check_id="line_totals_mismatch",
            check_name="Line Totals Mismatch",
            severity="High",
            message=(
                f"Line {line.get('line_number')}: line_total_excl_vat ({total}) != "
                f"({qty} * {price}) - {discount}"
            ),
            **record_coordinates(line, data),
            field="line_total_excl_vat",
            expected_value=expected,
            actual_value=total,
        ))
    return out


def check_vat_calc_mismatch(data: DataContext) -> list[CheckException]:
    out = []
    for line in data.lines:
        total = to_number(line.get("line_total_excl_vat"))
        rate = to_number(line.get("vat_rate"))
        vat = to_number(line.get("vat_amount"))
        if total is None or rate is None or vat is None:
            continue
        expected = total * (rate / 100)
        if within_tolerance(vat, expected, MONETARY_TOLERANCE):
            continue
        out.append(CheckException(
            check_id="vat_calc_mismatch",
            check_name="VAT Calculation Mismatch",
            severity="High",
            message=(
                f"Line {line.get('line_number')}: vat_amount ({vat}) != "
                f"line_total_excl_vat ({total}) * vat_rate/100 ({rate}/100)"
            ),
            **record_coordinates(line, data),
            field="vat_amount",
            expected_value=f"{expected:.2f}",
            actual_value=vat,
        ))
    return out


def check_negative_without_credit_note(data: DataContext) -> list[CheckException]:
    out = []
    for line in data.lines:
        total = to_number(line.get("line_total_excl_vat"))
        if total is None or total >= 0:
            continue
        header = data.header_for(line)
        if header is None or header.get("invoice_type") == "CREDIT_NOTE":
            continue
        invoice_type = header.get("invoice_type") or "not specified"
        out.append(CheckException(
            check_id="negative_without_credit_note",
            check_name="Negative Value Without Credit Note",
            severity="Critical",
            message=(
                f"Line {line.get('line_number')} has negative total ({total}) "
                f'but invoice type is "{invoice_type}"'
            ),
            **record_coordinates(line, data),
            field="line_total_excl_vat",
            expected_value="CREDIT_NOTE invoice type",
            actual_value=invoice_type,
        ))
    return out


# ═══════════════════════════════════════════════════
# 4. CROSS-FILE CHECKS
# ═══════════════════════════════════════════════════

def check_buyer_not_found(data: DataContext) -> list[CheckException]:
    out = []
    for header in data.headers:
        buyer_id = header.get("buyer_id")
        common = {
            "check_id": "buyer_not_found",
            "check_name": "Buyer ID Missing or Not Found",
            "severity": "Critical",
            "invoice_id": header.get("invoice_id"),
            "invoice_number": header.get("invoice_number"),
            "seller_trn": header.get("seller_trn"),
            "field": "buyer_id",
        }
        if is_blank(buyer_id):
            out.append(CheckException(
                message=f"Invoice {header.get('invoice_number')}: buyer_id is missing",
                actual_value="(empty)",
                **common,
            ))
        elif buyer_id not in data.buyer_map:
            out.append(CheckException(
                message=f'Invoice {header.get("invoice_number")}: buyer_id "{buyer_id}" not found in buyers file',
                buyer_id=buyer_id,
                actual_value=buyer_id,
                **common,
            ))
    return out


def check_mixed_vat_rates_no_total(data: DataContext) -> list[CheckException]:
    out = []
    for header in data.headers:
        lines = data.lines_for(header.get("invoice_id"))
        rates = {to_number(line.get("vat_rate")) for line in lines}
        has_taxable_base = any(
            (to_number(line.get("line_total_excl_vat")) or 0) > 0 for line in lines
        )
        vat_total = to_number(header.get("vat_total")) or 0
        if len(rates) > 1 and has_taxable_base and not vat_total:
            out.append(CheckException(
                check_id="mixed_vat_rates_no_total",
                check_name="Mixed VAT Rates Without VAT Total",
                severity="Medium",
                message=(
                    f"Invoice {header.get('invoice_number')} has {len(rates)} different "
                    f"VAT rates but vat_total is {vat_total}"
                ),
                **_header_coordinates(header),
                field="vat_total",
                expected_value="non-zero when multiple VAT rates exist",
                actual_value=vat_total,
            ))
    return out


# ───────────────────────────────────────────────────────
# Registry
# ───────────────────────────────────────────────────────

BUILTIN_CHECKS: list[dict[str, Any]] = [
    {
        "id": "buyer_trn_missing",
        "name": "Buyer TRN Missing",
        "description": "Checks if buyer TRN is present in the buyers file",
        "severity": "Critical",
        "category": "buyer",
        "run": check_buyer_trn_missing,
    },
    {
        "id": "buyer_trn_invalid_format",
        "name": "Buyer TRN Invalid Format",
        "description": "Validates TRN format (15 digits for UAE)",
        "severity": "High",
        "category": "buyer",
        "run": check_buyer_trn_invalid_format,
    },
    {
        "id": "duplicate_invoice_number",
        "name": "Duplicate Invoice Number",
        "description": "Checks for duplicate invoice numbers per seller TRN",
        "severity": "Critical",
        "category": "header",
        "run": check_duplicate_invoice_number,
    },
    {
        "id": "header_totals_mismatch",
        "name": "Header Totals Mismatch",
        "description": "Validates total_incl_vat = total_excl_vat + vat_total",
        "severity": "Critical",
        "category": "header",
        "run": check_header_totals_mismatch,
    },
    {
        "id": "line_totals_mismatch",
        "name": "Line Totals Mismatch",
        "description": "Validates line_total_excl_vat = (quantity * unit_price) - line_discount",
        "severity": "High",
        "category": "line",
        "run": check_line_totals_mismatch,
    },
    {
        "id": "vat_calc_mismatch",
        "name": "VAT Calculation Mismatch",
        "description": "Validates vat_amount = line_total_excl_vat * vat_rate",
        "severity": "High",
        "category": "line",
        "run": check_vat_calc_mismatch,
    },
    {
        "id": "negative_without_credit_note",
        "name": "Negative Value Without Credit Note",
        "description": "Flags negative line totals on non-credit note invoices",
        "severity": "Critical",
        "category": "line",
        "run": check_negative_without_credit_note,
    },
    {
        "id": "buyer_not_found",
        "name": "Buyer ID Missing or Not Found",
        "description": "Validates buyer_id exists and is found in buyers file",
        "severity": "Critical",
        "category": "cross-file",
        "run": check_buyer_not_found,
    },
    {
        "id": "missing_mandatory_fields",
        "name": "Missing Mandatory Header Fields",
        "description": "Checks for required fields: invoice_id, invoice_number, issue_date, seller_trn, currency",
        "severity": "Critical",
        "category": "header",
        "run": check_missing_mandatory_fields,
    },
    {
        "id": "mixed_vat_rates_no_total",
        "name": "Mixed VAT Rates Without VAT Total",
        "description": "Warns when invoice has multiple VAT rates but vat_total is missing or zero",
        "severity": "Medium",
        "category": "cross-file",
        "run": check_mixed_vat_rates_no_total,
    },
]


def get_builtin_check_metadata() -> list[dict[str, Any]]:
    """Registry entries without the callable, for listing."""
    return [{k: v for k, v in check.items() if k != "run"} for check in BUILTIN_CHECKS]


def _total_records(category: str, data: DataContext) -> int:
    if category == "buyer":
        return len(data.buyers)
    if category == "line":
        return len(data.lines)
    return len(data.headers)


# ═══════════════════════════════════════════════════
# MAIN ENTRY POINT
# ═══════════════════════════════════════════════════

def run_all_checks(data: DataContext) -> list[CheckResult]:
    """Run every built-in check and return one :class:`CheckResult` each.

    ``passed`` is the category's record count minus the exception count, so
    it can go negative for checks that emit several exceptions per record
    (e.g. missing_mandatory_fields).  A check that raises is logged and
    reported with no exceptions; the rest of the run continues.
    """
    results = []
    for check in BUILTIN_CHECKS:
        label = check["id"]
        try:
            exceptions = check["run"](data)
            if exceptions:
                logger.info(f"Built-in [{label}]: {len(exceptions)} exception(s)")
        except Exception as e:
            logger.error(f"Built-in [{label}] failed: {e}")
            exceptions = []

        total = _total_records(check["category"], data)
        results.append(CheckResult(
            check_id=label,
            check_name=check["name"],
            severity=check["severity"],
            passed=total - len(exceptions),
            failed=len(exceptions),
            exceptions=exceptions,
        ))

    failed = sum(r.failed for r in results)
    logger.info(f"Built-in engine: {failed} exception(s) across {len(results)} checks")
    return results

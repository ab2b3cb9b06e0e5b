"""PINT-AE check runner.

Runs the checks of a PINT-AE check pack (see :mod:`pintae.engine.check_pack`)
against a :class:`DataContext`.  Most checks have a dedicated handler keyed by
``check_id``; any other check falls back to a generic CodeList or Presence
handler chosen by its ``rule_type``.

Handlers are generators yielding finding dicts (record coordinates plus
``field_name``, ``observed_value``, ``expected_value_or_rule``, ``message``);
the runner stamps each finding with the check metadata, SLA target and case
defaults to build a :class:`PintAEException`.
"""

from __future__ import annotations

import re
import math
import logging
import dataclasses
from dataclasses import dataclass, asdict
from datetime import date
from typing import Any, Callable, Iterator, Mapping, Optional

from pintae.config import (
    MONETARY_TOLERANCE,
    SLA_HOURS_BY_SEVERITY,
    TRACE_ENABLED,
    TRN_PATTERN,
)
from pintae.engine.codelists import is_code_in_codelist
from pintae.engine.datasets import (
    DataContext,
    is_blank,
    new_id,
    to_number,
    utc_now_iso,
    within_tolerance,
)
from pintae.engine.expressions import resolve_field

logger = logging.getLogger(__name__)


def _trace(msg: str):
    if TRACE_ENABLED:
        logger.debug(f"[TRACE] {msg}")


_TRN_RE = re.compile(TRN_PATTERN)

FIELD_ALIASES = {
    "seller_endpoint": "seller_electronic_address",
    "buyer_endpoint": "buyer_electronic_address",
    "seller_street": "seller_address",
}


@dataclass(frozen=True)
class PintAEException:
    """A PINT-AE finding, ready to be opened as a case."""
    check_id: str
    check_name: str
    severity: str
    message: str
    scope: Optional[str] = None
    rule_type: Optional[str] = None
    use_case: Optional[str] = None
    pint_reference_terms: list[str] = dataclasses.field(default_factory=list)
    invoice_id: Optional[str] = None
    invoice_number: Optional[str] = None
    seller_trn: Optional[str] = None
    buyer_id: Optional[str] = None
    line_id: Optional[str] = None
    field_name: Optional[str] = None
    observed_value: Optional[str] = None
    expected_value_or_rule: Optional[str] = None
    suggested_fix: Optional[str] = None
    owner_team: Optional[str] = None
    root_cause_category: str = "Unclassified"
    case_status: str = "Open"
    sla_target_hours: Optional[int] = None
    dataset_type: Optional[str] = None
    direction: Optional[str] = None
    timestamp: str = dataclasses.field(default_factory=utc_now_iso)
    id: str = dataclasses.field(default_factory=new_id)

    def to_dict(self) -> dict:
        return asdict(self)


# ═══════════════════════════════════════════════════
# 1. FIELD HELPERS
# ═══════════════════════════════════════════════════

def resolve_field_alias(field: str) -> str:
    return FIELD_ALIASES.get(field, field)


def dataset_for_field(field: str, scope: Optional[str], data: DataContext) -> tuple[dict, ...]:
    """Pick the record kind a field lives on: by name prefix first, then by scope."""
    name = resolve_field_alias(field)
    if name.startswith("buyer_"):
        return data.buyers
    if name.startswith("line_") or name in ("quantity", "unit_of_measure"):
        return data.lines
    if name.startswith("seller_") or name.startswith("invoice_") or name == "currency":
        return data.headers
    if scope == "Lines":
        return data.lines
    if scope == "Party":
        return data.buyers
    return data.headers


def count_decimals(value: Any) -> int:
    """Decimal places in the shortest text form of a number (0 for non-numbers)."""
    num = to_number(value)
    if num is None or not math.isfinite(num) or num == int(num):
        return 0
    text = repr(float(num))
    if "." not in text or "e" in text:
        return 0
    return len(text.split(".")[1])


def _parse_iso_date(value: Any) -> Optional[date]:
    try:
        return date.fromisoformat(str(value).strip()[:10])
    except ValueError:
        return None


def _tolerance(params: Mapping[str, Any]) -> float:
    return to_number(params.get("tolerance")) or MONETARY_TOLERANCE


def _header_coords(header: Mapping[str, Any]) -> dict[str, Any]:
    return {
        "invoice_id": header.get("invoice_id"),
        "invoice_number": header.get("invoice_number"),
        "seller_trn": header.get("seller_trn"),
        "buyer_id": header.get("buyer_id"),
    }


def _line_coords(line: Mapping[str, Any], data: DataContext) -> dict[str, Any]:
    header = data.header_for(line) or {}
    return {
        "invoice_id": line.get("invoice_id"),
        "invoice_number": header.get("invoice_number"),
        "seller_trn": header.get("seller_trn"),
        "buyer_id": header.get("buyer_id"),
        "line_id": line.get("line_id"),
    }


def _record_coords(record: Mapping[str, Any], data: DataContext) -> dict[str, Any]:
    """Coordinates for a record of unknown kind: record values first, then its header."""
    header = data.header_for(record) or {}
    return {
        "invoice_id": record.get("invoice_id") or header.get("invoice_id"),
        "invoice_number": record.get("invoice_number") or header.get("invoice_number"),
        "seller_trn": record.get("seller_trn") or header.get("seller_trn"),
        "buyer_id": record.get("buyer_id") or header.get("buyer_id"),
        "line_id": record.get("line_id"),
    }


Finding = dict[str, Any]
Handler = Callable[[Mapping[str, Any], Mapping[str, Any], DataContext], Iterator[Finding]]


# ═══════════════════════════════════════════════════
# 2. HEADER HANDLERS
# ═══════════════════════════════════════════════════

def _header_presence(check, params, data: DataContext) -> Iterator[Finding]:
    field = params.get("field")
    if not field:
        return
    for header in data.headers:
        if is_blank(resolve_field(header, field)):
            yield {
                **_header_coords(header),
                "field_name": field,
                "observed_value": "(empty)",
                "expected_value_or_rule": "Required value",
                "message": (
                    f"Invoice {header.get('invoice_number') or header.get('invoice_id')}: "
                    f'Missing required field "{field}"'
                ),
            }


def _header_pattern(check, params, data: DataContext) -> Iterator[Finding]:
    field, pattern = params.get("field"), params.get("pattern")
    if not field or not pattern:
        return
    try:
        regex = re.compile(pattern)
    except re.error as e:
        logger.warning(f"PINT-AE [{check['check_id']}] skipped: invalid pattern {pattern!r} ({e})")
        return
    for header in data.headers:
        value = resolve_field(header, field)
        if is_blank(value) or regex.search(str(value)):
            continue
        yield {
            **_header_coords(header),
            "field_name": field,
            "observed_value": str(value),
            "expected_value_or_rule": f"Match pattern: {pattern}",
            "message": (
                f'Invoice {header.get("invoice_number")}: Field "{field}" format invalid. '
                f"Expected pattern: {pattern}"
            ),
        }


def _currency_iso4217(check, params, data: DataContext) -> Iterator[Finding]:
    field = params.get("field") or "currency"
    for header in data.headers:
        value = resolve_field(header, field)
        if is_blank(value) or is_code_in_codelist("ISO4217", value):
            continue
        yield {
            **_header_coords(header),
            "field_name": field,
            "observed_value": str(value),
            "expected_value_or_rule": "Valid ISO4217 code from PINT-AE codelist",
            "message": (
                f'Invoice {header.get("invoice_number")}: Currency "{value}" '
                f"is not in the official PINT-AE ISO4217 codelist"
            ),
        }


def _tax_currency_aed(check, params, data: DataContext) -> Iterator[Finding]:
    base = str(params.get("tax_currency") or "AED").upper()
    for header in data.headers:
        invoice_currency = str(header.get("currency") or "").upper()
        tax_currency = str(header.get("tax_currency") or "").strip().upper()
        number = header.get("invoice_number")
        if invoice_currency != base and not tax_currency:
            yield {
                **_header_coords(header),
                "field_name": "tax_currency",
                "observed_value": "(empty)",
                "expected_value_or_rule": base,
                "message": (
                    f"Invoice {number}: Tax accounting currency must be {base} "
                    f"when invoice currency is {invoice_currency}"
                ),
            }
        elif tax_currency and tax_currency != base:
            yield {
                **_header_coords(header),
                "field_name": "tax_currency",
                "observed_value": tax_currency,
                "expected_value_or_rule": base,
                "message": f'Invoice {number}: Tax accounting currency "{tax_currency}" must be {base}',
            }


def _fx_rate_required(check, params, data: DataContext) -> Iterator[Finding]:
    currency_field = resolve_field_alias(params.get("currency_field") or "currency")
    fx_field = resolve_field_alias(params.get("fx_field") or "fx_rate")
    base = str(params.get("base_currency") or "AED").upper()
    for header in data.headers:
        currency = str(resolve_field(header, currency_field) or "").strip().upper()
        if not currency or currency == base:
            continue
        raw_rate = resolve_field(header, fx_field)
        rate = to_number(raw_rate)
        if rate is not None and rate > 0:
            continue
        yield {
            **_header_coords(header),
            "field_name": fx_field,
            "observed_value": "(empty)" if raw_rate is None else str(raw_rate),
            "expected_value_or_rule": "Positive FX rate",
            "message": (
                f"Invoice {header.get('invoice_number')}: FX rate is required "
                f"when currency is {currency} (base {base})"
            ),
        }


def _payment_due_date(check, params, data: DataContext) -> Iterator[Finding]:
    for header in data.headers:
        number = header.get("invoice_number")
        amount_due = to_number(header.get("amount_due")) or 0
        due_raw = header.get("payment_due_date")
        if amount_due > 0 and is_blank(due_raw):
            yield {
                **_header_coords(header),
                "field_name": "payment_due_date",
                "observed_value": "(empty)",
                "expected_value_or_rule": "Required when amount_due > 0",
                "message": (
                    f"Invoice {number}: Payment due date is required "
                    f"because amount due is {amount_due}"
                ),
            }
        if is_blank(due_raw) or is_blank(header.get("issue_date")):
            continue
        issued = _parse_iso_date(header.get("issue_date"))
        due = _parse_iso_date(due_raw)
        if issued is not None and due is not None and due < issued:
            yield {
                **_header_coords(header),
                "field_name": "payment_due_date",
                "observed_value": str(due_raw),
                "expected_value_or_rule": f"On or after issue date {header.get('issue_date')}",
                "message": (
                    f"Invoice {number}: Payment due date ({due_raw}) cannot be "
                    f"earlier than issue date ({header.get('issue_date')})"
                ),
            }


def _allowed_values(default_field: str, label: str):
    """Header field must be one of ``parameters.allowed_values`` when present."""
    def handler(check, params, data: DataContext) -> Iterator[Finding]:
        field = resolve_field_alias(params.get("field") or default_field)
        allowed = params.get("allowed_values")
        if not isinstance(allowed, (list, tuple)) or not allowed:
            return
        allowed = [str(v) for v in allowed]
        for header in data.headers:
            value = resolve_field(header, field)
            # Absent values are left to presence checks (the field may be ASP-derived)
            if is_blank(value) or str(value) in allowed:
                continue
            yield {
                **_header_coords(header),
                "field_name": field,
                "observed_value": str(value),
                "expected_value_or_rule": ", ".join(allowed),
                "message": f'Invoice {header.get("invoice_number")}: Invalid {label} "{value}"',
            }
    return handler


def _seller_trn_format(check, params, data: DataContext) -> Iterator[Finding]:
    for header in data.headers:
        trn = header.get("seller_trn")
        if is_blank(trn) or _TRN_RE.match(str(trn)):
            continue
        yield {
            **_header_coords(header),
            "field_name": "seller_trn",
            "observed_value": str(trn),
            "expected_value_or_rule": "15-digit number",
            "message": (
                f'Invoice {header.get("invoice_number")}: Seller TRN "{trn}" '
                f"does not match UAE 15-digit format"
            ),
        }


def _seller_address(check, params, data: DataContext) -> Iterator[Finding]:
    fields = params.get("fields")
    if not isinstance(fields, (list, tuple)):
        fields = ["seller_address", "seller_city", "seller_country"]
    fields = [resolve_field_alias(f) for f in fields]
    for header in data.headers:
        for field in fields:
            if is_blank(resolve_field(header, field)):
                yield {
                    **_header_coords(header),
                    "field_name": field,
                    "observed_value": "(empty)",
                    "expected_value_or_rule": "Required value",
                    "message": f'Invoice {header.get("invoice_number")}: Missing seller field "{field}"',
                }


# ═══════════════════════════════════════════════════
# 3. BUYER HANDLERS
# ═══════════════════════════════════════════════════

def _buyer_name(check, params, data: DataContext) -> Iterator[Finding]:
    for buyer in data.buyers:
        if is_blank(buyer.get("buyer_name")):
            yield {
                "buyer_id": buyer.get("buyer_id"),
                "field_name": "buyer_name",
                "observed_value": "(empty)",
                "expected_value_or_rule": "Required value",
                "message": f'Buyer ID "{buyer.get("buyer_id")}": Missing buyer name',
            }


def _buyer_trn_format(check, params, data: DataContext) -> Iterator[Finding]:
    for buyer in data.buyers:
        trn = buyer.get("buyer_trn")
        if is_blank(trn) or _TRN_RE.match(str(trn)):
            continue
        yield {
            "buyer_id": buyer.get("buyer_id"),
            "field_name": "buyer_trn",
            "observed_value": str(trn),
            "expected_value_or_rule": "15-digit number (or empty)",
            "message": (
                f'Buyer "{buyer.get("buyer_name")}": TRN "{trn}" '
                f"does not match UAE 15-digit format"
            ),
        }


def _buyer_address(check, params, data: DataContext) -> Iterator[Finding]:
    fields = params.get("fields")
    if not isinstance(fields, (list, tuple)):
        fields = ["buyer_address", "buyer_country"]
    fields = [resolve_field_alias(f) for f in fields]
    for buyer in data.buyers:
        for field in fields:
            if is_blank(resolve_field(buyer, field)):
                yield {
                    "buyer_id": buyer.get("buyer_id"),
                    "field_name": field,
                    "observed_value": "(empty)",
                    "expected_value_or_rule": "Required value",
                    "message": f'Buyer {buyer.get("buyer_id")}: Missing buyer field "{field}"',
                }


# ═══════════════════════════════════════════════════
# 4. TOTALS & TAX HANDLERS
# ═══════════════════════════════════════════════════

def _header_totals(check, params, data: DataContext) -> Iterator[Finding]:
    tolerance = _tolerance(params)
    for header in data.headers:
        incl = to_number(header.get("total_incl_vat"))
        excl = to_number(header.get("total_excl_vat"))
        vat = to_number(header.get("vat_total"))
        if incl is None or excl is None or vat is None:
            continue
        expected = excl + vat
        if within_tolerance(incl, expected, tolerance):
            continue
        yield {
            **_header_coords(header),
            "field_name": "total_incl_vat",
            "observed_value": str(incl),
            "expected_value_or_rule": str(expected),
            "message": (
                f"Invoice {header.get('invoice_number')}: Total with VAT ({incl}) ≠ "
                f"Excl VAT ({excl}) + VAT ({vat})"
            ),
        }


def _line_net_sum(check, params, data: DataContext) -> Iterator[Finding]:
    tolerance = _tolerance(params)
    for header in data.headers:
        lines = data.lines_for(header.get("invoice_id"))
        line_sum = sum(to_number(l.get("line_total_excl_vat")) or 0 for l in lines)
        header_total = to_number(header.get("total_excl_vat")) or 0
        if within_tolerance(line_sum, header_total, tolerance):
            continue
        yield {
            **_header_coords(header),
            "field_name": "total_excl_vat",
            "observed_value": str(header_total),
            "expected_value_or_rule": f"Sum of lines: {line_sum:.2f}",
            "message": (
                f"Invoice {header.get('invoice_number')}: Header total ({header_total}) "
                f"does not match sum of lines ({line_sum:.2f})"
            ),
        }


def _line_vat_sum(check, params, data: DataContext) -> Iterator[Finding]:
    tolerance = _tolerance(params)
    for header in data.headers:
        lines = data.lines_for(header.get("invoice_id"))
        tax_sum = sum(to_number(l.get("vat_amount")) or 0 for l in lines)
        header_tax = to_number(header.get("vat_total")) or 0
        if within_tolerance(tax_sum, header_tax, tolerance):
            continue
        yield {
            **_header_coords(header),
            "field_name": "vat_total",
            "observed_value": str(header_tax),
            "expected_value_or_rule": f"Sum of line VAT: {tax_sum:.2f}",
            "message": (
                f"Invoice {header.get('invoice_number')}: VAT total ({header_tax}) "
                f"does not match sum of line VAT amounts ({tax_sum:.2f})"
            ),
        }


def _max_decimals(check, params, data: DataContext) -> Iterator[Finding]:
    field, limit = params.get("field"), params.get("max_decimals")
    if not field or limit is None:
        return
    for header in data.headers:
        value = resolve_field(header, field)
        if value is None:
            continue
        decimals = count_decimals(value)
        if decimals <= limit:
            continue
        yield {
            **_header_coords(header),
            "field_name": field,
            "observed_value": f"{value} ({decimals} decimals)",
            "expected_value_or_rule": f"Max {limit} decimals",
            "message": (
                f'Invoice {header.get("invoice_number")}: Field "{field}" has {decimals} '
                f"decimal places, maximum allowed is {limit}"
            ),
        }


def _tax_breakdown(check, params, data: DataContext) -> Iterator[Finding]:
    for header in data.headers:
        lines = data.lines_for(header.get("invoice_id"))
        header_breakdown = (
            not is_blank(header.get("tax_category_code"))
            and header.get("tax_category_rate") is not None
        )
        line_breakdown = any(
            not is_blank(l.get("tax_category_code")) and l.get("vat_rate") is not None
            for l in lines
        )
        taxable = (to_number(header.get("total_excl_vat")) or 0) > 0 or any(
            (to_number(l.get("line_total_excl_vat")) or 0) > 0 for l in lines
        )
        if taxable and not header_breakdown and not line_breakdown:
            yield {
                **_header_coords(header),
                "field_name": "tax_breakdown",
                "observed_value": "missing",
                "expected_value_or_rule": "At least one tax category breakdown",
                "message": (
                    f"Invoice {header.get('invoice_number')}: "
                    f"Missing tax breakdown details (category/rate)"
                ),
            }


def _line_vat_calculation(check, params, data: DataContext) -> Iterator[Finding]:
    tolerance = _tolerance(params)
    for line in data.lines:
        base = to_number(line.get("line_total_excl_vat"))
        rate = to_number(line.get("vat_rate"))
        vat = to_number(line.get("vat_amount"))
        if base is None or rate is None or vat is None:
            continue
        expected = base * (rate / 100)
        if within_tolerance(vat, expected, tolerance):
            continue
        coords = _line_coords(line, data)
        yield {
            **coords,
            "field_name": "vat_amount",
            "observed_value": str(vat),
            "expected_value_or_rule": f"{base} x ({rate}/100) = {expected:.2f}",
            "message": (
                f"Invoice {coords['invoice_number']}, Line {line.get('line_number')}: "
                f"VAT amount ({vat}) != Base x Rate/100 ({expected:.2f})"
            ),
        }


# ═══════════════════════════════════════════════════
# 5. LINE HANDLERS
# ═══════════════════════════════════════════════════

def _has_lines(check, params, data: DataContext) -> Iterator[Finding]:
    for header in data.headers:
        if data.lines_for(header.get("invoice_id")):
            continue
        yield {
            **_header_coords(header),
            "field_name": "lines",
            "observed_value": "0 lines",
            "expected_value_or_rule": "≥1 line",
            "message": (
                f"Invoice {header.get('invoice_number')}: No line items found. "
                f"At least one line is required."
            ),
        }


def _line_number_present(check, params, data: DataContext) -> Iterator[Finding]:
    for line in data.lines:
        if not is_blank(line.get("line_number")):
            continue
        coords = _line_coords(line, data)
        yield {
            **coords,
            "field_name": "line_number",
            "observed_value": "(empty)",
            "expected_value_or_rule": "Unique line identifier",
            "message": (
                f"Invoice {coords['invoice_number'] or line.get('invoice_id')}, "
                f"Line: Missing line identifier"
            ),
        }


def _quantity_present(check, params, data: DataContext) -> Iterator[Finding]:
    for line in data.lines:
        if line.get("quantity") is not None:
            continue
        coords = _line_coords(line, data)
        yield {
            **coords,
            "field_name": "quantity",
            "observed_value": "(empty)",
            "expected_value_or_rule": "Numeric quantity",
            "message": (
                f"Invoice {coords['invoice_number']}, Line {line.get('line_number')}: "
                f"Missing quantity"
            ),
        }


def _line_net_formula(check, params, data: DataContext) -> Iterator[Finding]:
    tolerance = _tolerance(params)
    for line in data.lines:
        qty = to_number(line.get("quantity"))
        price = to_number(line.get("unit_price"))
        total = to_number(line.get("line_total_excl_vat"))
        if qty is None or price is None or total is None:
            continue
        discount = to_number(line.get("line_discount")) or 0
        expected = qty * price - discount
        if within_tolerance(total, expected, tolerance):
            continue
        coords = _line_coords(line, data)
        yield {
            **coords,
            "field_name": "line_total_excl_vat",
            "observed_value": str(total),
            "expected_value_or_rule": f"({qty} x {price}) - {discount} = {expected:.2f}",
            "message": (
                f"Invoice {coords['invoice_number']}, Line {line.get('line_number')}: "
                f"Net amount ({total}) != (Qty x Price) - Discount ({expected:.2f})"
            ),
        }


# ═══════════════════════════════════════════════════
# 6. GENERIC HANDLERS (by rule_type)
# ═══════════════════════════════════════════════════

def _generic_codelist(check, params, data: DataContext) -> Iterator[Finding]:
    if not params.get("field") or not params.get("codelist"):
        return
    field = resolve_field_alias(params["field"])
    codelist = str(params["codelist"])
    for record in dataset_for_field(field, check.get("scope"), data):
        value = resolve_field(record, field)
        if is_blank(value) or is_code_in_codelist(codelist, value):
            continue
        yield {
            **_record_coords(record, data),
            "field_name": field,
            "observed_value": str(value),
            "expected_value_or_rule": f"Value from codelist: {codelist}",
            "message": f'Field "{field}" has invalid value "{value}" for codelist {codelist}',
        }


def _generic_presence(check, params, data: DataContext) -> Iterator[Finding]:
    if not params.get("field"):
        return
    field = resolve_field_alias(params["field"])
    for record in dataset_for_field(field, check.get("scope"), data):
        if not is_blank(resolve_field(record, field)):
            continue
        yield {
            **_record_coords(record, data),
            "field_name": field,
            "observed_value": "(empty)",
            "expected_value_or_rule": "Required value",
            "message": f'Missing required field "{field}" - {check.get("check_name")}',
        }


_CHECK_HANDLERS: dict[str, Handler] = {
    "UAE-UC1-CHK-001": _header_presence,
    "UAE-UC1-CHK-002": _header_presence,
    "UAE-UC1-CHK-004": _header_presence,
    "UAE-UC1-CHK-005": _header_presence,
    "UAE-UC1-CHK-003": _header_pattern,
    "UAE-UC1-CHK-010": _header_pattern,
    "UAE-UC1-CHK-006": _currency_iso4217,
    "UAE-UC1-CHK-007": _tax_currency_aed,
    "UAE-UC1-CHK-008": _fx_rate_required,
    "UAE-UC1-CHK-009": _payment_due_date,
    "UAE-UC1-CHK-011": _allowed_values("business_process", "business process type"),
    "UAE-UC1-CHK-013": _seller_trn_format,
    "UAE-UC1-CHK-015": _seller_address,
    "UAE-UC1-CHK-016": _allowed_values("seller_subdivision", "UAE subdivision"),
    "UAE-UC1-CHK-017": _buyer_name,
    "UAE-UC1-CHK-018": _buyer_trn_format,
    "UAE-UC1-CHK-020": _buyer_address,
    "UAE-UC1-CHK-021": _line_net_sum,
    "UAE-UC1-CHK-022": _max_decimals,
    "UAE-UC1-CHK-023": _max_decimals,
    "UAE-UC1-CHK-024": _max_decimals,
    "UAE-UC1-CHK-025": _header_totals,
    "UAE-UC1-CHK-026": _max_decimals,
    "UAE-UC1-CHK-027": _tax_breakdown,
    "UAE-UC1-CHK-028": _line_vat_calculation,
    "UAE-UC1-CHK-029": _line_vat_sum,
    "UAE-UC1-CHK-030": _has_lines,
    "UAE-UC1-CHK-031": _line_number_present,
    "UAE-UC1-CHK-032": _quantity_present,
    "UAE-UC1-CHK-034": _line_net_formula,
}

_GENERIC_HANDLERS: dict[str, Handler] = {
    "CodeList": _generic_codelist,
    "Presence": _generic_presence,
}


def _handler_for(check: Mapping[str, Any]) -> Optional[Handler]:
    handler = _CHECK_HANDLERS.get(check.get("check_id"))
    if handler is None:
        handler = _GENERIC_HANDLERS.get(check.get("rule_type"))
    return handler


# ═══════════════════════════════════════════════════
# MAIN ENTRY POINTS
# ═══════════════════════════════════════════════════

def run_pint_ae_check(check: Mapping[str, Any], data: DataContext) -> list[PintAEException]:
    """Run one PINT-AE check.  Checks without a usable handler yield nothing."""
    handler = _handler_for(check)
    if handler is None:
        _trace(f"PINT-AE [{check.get('check_id')}]: no handler for rule_type {check.get('rule_type')!r}")
        return []

    params = check.get("parameters") or {}
    timestamp = utc_now_iso()
    severity = check.get("severity") or "Medium"
    out = []
    for finding in handler(check, params, data):
        out.append(PintAEException(
            check_id=check["check_id"],
            check_name=check.get("check_name") or check["check_id"],
            severity=severity,
            scope=check.get("scope"),
            rule_type=check.get("rule_type"),
            use_case=check.get("use_case"),
            pint_reference_terms=list(check.get("pint_reference_terms") or []),
            suggested_fix=check.get("suggested_fix"),
            owner_team=check.get("owner_team_default"),
            sla_target_hours=SLA_HOURS_BY_SEVERITY.get(severity),
            timestamp=timestamp,
            **finding,
        ))
    return out


def run_all_pint_ae_checks(
    checks: list[Mapping[str, Any]], data: DataContext
) -> list[PintAEException]:
    """Run every enabled check; one failing check does not abort the rest."""
    all_exceptions: list[PintAEException] = []
    for check in checks:
        if not check.get("is_enabled"):
            continue
        label = check.get("check_id")
        try:
            results = run_pint_ae_check(check, data)
            if results:
                logger.info(f"PINT-AE [{label}]: {len(results)} exception(s)")
            all_exceptions.extend(results)
        except Exception as e:
            logger.error(f"PINT-AE [{label}] failed: {e}")

    logger.info(f"PINT-AE engine: {len(all_exceptions)} total exception(s)")
    return all_exceptions

"""Dataset context and the value objects the rule engine emits.

A validation run works over three parsed record kinds (buyers, invoice
headers and invoice lines) bundled into a :class:`DataContext` with its
lookup indices built once up front.  Checks never mutate it.
"""

from __future__ import annotations

import uuid
import dataclasses
from dataclasses import dataclass, asdict
from datetime import datetime, timezone
from types import MappingProxyType
from typing import Any, Iterable, Mapping, Optional

DATASET_KINDS = ("buyers", "headers", "lines")


def new_id() -> str:
    return uuid.uuid4().hex


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def is_blank(value: Any) -> bool:
    """True for None or a value whose string form is empty after trimming."""
    return value is None or str(value).strip() == ""


def to_number(value: Any) -> Optional[float]:
    """Coerce a parsed cell to a number; None when absent or non-numeric."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return value
    try:
        return float(str(value).strip())
    except ValueError:
        return None


def within_tolerance(left: float, right: float, tolerance: float) -> bool:
    """Amounts agree when equal or strictly closer than ``tolerance``.

    The difference is rounded to 6 places first so binary float noise
    (1050.01 - 1050 == 0.00999...) does not slip under a 0.01 tolerance.
    """
    diff = round(abs(left - right), 6)
    return diff == 0 or diff < tolerance


# ═══════════════════════════════════════════════════
# DATA CONTEXT
# ═══════════════════════════════════════════════════

@dataclass(frozen=True)
class DataContext:
    """Immutable view over one uploaded dataset."""
    buyers: tuple[dict, ...] = ()
    headers: tuple[dict, ...] = ()
    lines: tuple[dict, ...] = ()
    buyer_map: Mapping[str, dict] = dataclasses.field(default_factory=lambda: MappingProxyType({}))
    header_map: Mapping[str, dict] = dataclasses.field(default_factory=lambda: MappingProxyType({}))
    lines_by_invoice: Mapping[str, tuple[dict, ...]] = dataclasses.field(default_factory=lambda: MappingProxyType({}))

    def lines_for(self, invoice_id: Any) -> tuple[dict, ...]:
        return self.lines_by_invoice.get(invoice_id, ())

    def header_for(self, record: Mapping[str, Any]) -> Optional[dict]:
        """Header a record points at through its ``invoice_id``, if any."""
        invoice_id = record.get("invoice_id")
        if invoice_id in (None, ""):
            return None
        return self.header_map.get(invoice_id)

    def dataset(self, kind: str) -> tuple[dict, ...]:
        if kind not in DATASET_KINDS:
            raise ValueError(f"Unknown dataset kind: {kind}")
        return getattr(self, kind)


def build_data_context(
    buyers: Optional[Iterable[dict]] = None,
    headers: Optional[Iterable[dict]] = None,
    lines: Optional[Iterable[dict]] = None,
) -> DataContext:
    """Build the context and its indices.  Later duplicates win in the maps."""
    buyers_t = tuple(buyers or ())
    headers_t = tuple(headers or ())
    lines_t = tuple(lines or ())

    buyer_map = {b.get("buyer_id"): b for b in buyers_t}
    header_map = {h.get("invoice_id"): h for h in headers_t}
    grouped: dict[Any, list[dict]] = {}
    for line in lines_t:
        grouped.setdefault(line.get("invoice_id"), []).append(line)

    return DataContext(
        buyers=buyers_t,
        headers=headers_t,
        lines=lines_t,
        buyer_map=MappingProxyType(buyer_map),
        header_map=MappingProxyType(header_map),
        lines_by_invoice=MappingProxyType({k: tuple(v) for k, v in grouped.items()}),
    )


def data_context_from_dict(payload: Mapping[str, Any]) -> DataContext:
    """Build a context from ``{"buyers": [...], "headers": [...], "lines": [...]}``."""
    return build_data_context(
        payload.get("buyers") or [],
        payload.get("headers") or [],
        payload.get("lines") or [],
    )


# ═══════════════════════════════════════════════════
# OUTPUT VALUE OBJECTS
# ═══════════════════════════════════════════════════

@dataclass(frozen=True)
class CheckException:
    """One validation finding."""
    check_id: str
    check_name: str
    severity: str
    message: str
    invoice_id: Optional[str] = None
    invoice_number: Optional[str] = None
    seller_trn: Optional[str] = None
    buyer_id: Optional[str] = None
    line_id: Optional[str] = None
    line_number: Any = None
    field: Optional[str] = None
    expected_value: Any = None
    actual_value: Any = None
    rule_id: Optional[str] = None
    direction: Optional[str] = None
    id: str = dataclasses.field(default_factory=new_id)

    def to_dict(self) -> dict:
        return asdict(self)


def record_coordinates(record: Mapping[str, Any], data: DataContext) -> dict[str, Any]:
    """Invoice/seller/buyer context for a record, header values first."""
    header = data.header_for(record) or {}
    return {
        "invoice_id": record.get("invoice_id"),
        "invoice_number": header.get("invoice_number") or record.get("invoice_number"),
        "seller_trn": header.get("seller_trn") or record.get("seller_trn"),
        "buyer_id": header.get("buyer_id") or record.get("buyer_id"),
        "line_id": record.get("line_id"),
        "line_number": record.get("line_number"),
    }


@dataclass
class CheckResult:
    """Pass/fail tally for one built-in check."""
    check_id: str
    check_name: str
    severity: str
    passed: int
    failed: int
    exceptions: list[CheckException] = dataclasses.field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "check_id": self.check_id,
            "check_name": self.check_name,
            "severity": self.severity,
            "passed": self.passed,
            "failed": self.failed,
            "exceptions": [e.to_dict() for e in self.exceptions],
        }


@dataclass(frozen=True)
class InvestigationFlag:
    """A possible-duplicate / suspicious-variant lead for AP review."""
    check_id: str
    check_name: str
    dataset_type: str
    invoice_id: Optional[str]
    invoice_number: Optional[str]
    counterparty_name: Optional[str]
    message: str
    confidence_score: float
    matched_invoice_id: Optional[str] = None
    matched_invoice_number: Optional[str] = None
    created_at: str = dataclasses.field(default_factory=utc_now_iso)
    id: str = dataclasses.field(default_factory=new_id)

    def to_dict(self) -> dict:
        return asdict(self)

"""DR registry — PINT-AE DR id → template dataset → internal columns.

Bridges the spec registry and the three CSV templates (buyers, headers,
lines).  ASP-owned DRs are listed with no columns: they are derived by the
service provider, never supplied by the customer.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Iterable, Optional

from pintae.coverage.spec_registry import SpecRegistryField, is_mandatory_field

# DR id → (dataset, columns)
DR_TO_COLUMN_MAP: dict[str, tuple[str, list[str]]] = {
    # Buyer fields
    "IBT-044": ("buyers", ["buyer_name"]),
    "IBT-048": ("buyers", ["buyer_trn"]),
    "IBT-049": ("buyers", ["buyer_electronic_address"]),
    "IBT-050": ("buyers", ["buyer_address"]),
    "IBT-052": ("buyers", ["buyer_city"]),
    "IBT-054": ("buyers", ["buyer_subdivision"]),
    "IBT-055": ("buyers", ["buyer_country"]),

    # Header fields
    "IBT-001": ("headers", ["invoice_number"]),
    "IBT-002": ("headers", ["issue_date"]),
    "IBT-003": ("headers", ["invoice_type"]),
    "IBT-005": ("headers", ["currency"]),
    "IBT-007": ("headers", ["fx_rate"]),
    "IBT-009": ("headers", ["payment_due_date"]),
    "IBT-027": ("headers", ["seller_name"]),
    "IBT-030": ("headers", ["seller_legal_reg_id"]),
    "IBT-031": ("headers", ["seller_trn"]),
    "IBT-034": ("headers", ["seller_electronic_address"]),
    "IBT-035": ("headers", ["seller_address"]),
    "IBT-037": ("headers", ["seller_city"]),
    "IBT-039": ("headers", ["seller_subdivision"]),
    "IBT-040": ("headers", ["seller_country"]),
    "IBT-081": ("headers", ["payment_means_code"]),
    "IBT-109": ("headers", ["total_excl_vat"]),
    "IBT-110": ("headers", ["vat_total"]),
    "IBT-112": ("headers", ["total_incl_vat"]),
    "IBT-115": ("headers", ["amount_due"]),
    "IBT-118": ("headers", ["tax_category_code"]),
    "IBT-119": ("headers", ["tax_category_rate"]),
    "BTUAE-02": ("headers", ["transaction_type_code"]),
    "BTUAE-15": ("headers", ["seller_legal_reg_id_type"]),

    # Line fields
    "IBT-126": ("lines", ["line_id", "line_number"]),
    "IBT-129": ("lines", ["quantity"]),
    "IBT-130": ("lines", ["unit_of_measure"]),
    "IBT-131": ("lines", ["line_total_excl_vat"]),
    "IBT-146": ("lines", ["unit_price"]),
    "IBT-148": ("lines", ["unit_price"]),  # gross price comes from the same input
    "IBT-151": ("lines", ["tax_category_code"]),
    "IBT-152": ("lines", ["vat_rate"]),
    "IBT-153": ("lines", ["description"]),
    "IBT-154": ("lines", ["item_name"]),
    "BTUAE-08": ("lines", ["vat_amount"]),

    # Calculated from other inputs
    "IBT-106": ("headers", ["total_excl_vat"]),
    "IBT-116": ("headers", ["total_excl_vat"]),
    "IBT-117": ("headers", ["vat_total"]),

    # ASP-owned, not in templates
    "IBT-023": ("headers", []),
    "IBT-024": ("headers", []),
    "IBT-031-1": ("headers", []),
    "IBT-034-1": ("headers", []),
    "IBT-048-1": ("buyers", []),
    "IBT-049-1": ("buyers", []),
    "IBT-149": ("lines", []),
}

ASP_DERIVED_DR_IDS = {"IBT-023", "IBT-024", "IBT-031-1", "IBT-034-1", "IBT-048-1", "IBT-049-1", "IBT-149"}

# Columns the dataset parser actually ingests; anything else is template-only
PARSER_KNOWN_COLUMNS: dict[str, frozenset[str]] = {
    "buyers": frozenset([
        "buyer_id", "buyer_name", "buyer_trn", "buyer_address", "buyer_country",
        "buyer_city", "buyer_postcode", "buyer_subdivision", "buyer_electronic_address",
    ]),
    "headers": frozenset([
        "invoice_id", "invoice_number", "issue_date", "seller_trn", "buyer_id",
        "currency", "invoice_type", "total_excl_vat", "vat_total", "total_incl_vat",
        "seller_name", "seller_address", "seller_city", "seller_country",
        "seller_subdivision", "seller_electronic_address", "seller_legal_reg_id",
        "seller_legal_reg_id_type", "transaction_type_code", "payment_due_date",
        "payment_means_code", "fx_rate", "amount_due", "tax_category_code",
        "tax_category_rate", "note", "supply_date", "tax_currency",
        "document_level_allowance_total", "document_level_charge_total",
        "rounding_amount", "spec_id", "business_process",
    ]),
    "lines": frozenset([
        "line_id", "invoice_id", "line_number", "description", "quantity",
        "unit_price", "line_discount", "line_total_excl_vat", "vat_rate", "vat_amount",
        "unit_of_measure", "tax_category_code", "item_name",
        "line_allowance_amount", "line_charge_amount",
    ]),
}

JOIN_KEYS: dict[str, list[str]] = {
    "buyers": ["buyer_id"],
    "headers": ["invoice_id", "buyer_id"],
    "lines": ["line_id", "invoice_id"],
}

# (keyword in lower-cased format_pattern, code list label), first match wins
_CODE_LIST_KEYWORDS = [
    (("iso 4217",), "ISO 4217"),
    (("iso 3166",), "ISO 3166-1"),
    (("iso 8601",), "ISO 8601"),
    (("un/cefact 1001", "untdid 1001"), "UN/CEFACT 1001"),
    (("untdid 4461", "uncl4461"), "UNTDID 4461"),
    (("un/ece", "unece"), "UN/ECE Rec 20"),
    (("cef eas",), "CEF EAS"),
    (("s, z, e, rc",), "PINT-AE Tax Category"),
    (("tl, eid, pas, cd",), "BTUAE-15 ID Types"),
    (("auh, dxb", "ae-az"), "UAE Emirates"),
]


@dataclass(frozen=True)
class DRRegistryEntry:
    dr_id: str
    business_term: str
    dataset_file: Optional[str]
    internal_column_names: tuple[str, ...]
    mandatory_for_default_use_case: bool
    data_type: str
    format_pattern: str
    code_list_reference: Optional[str]
    category: str
    vat_law_status: str
    data_responsibility: str
    pint_ae_reference: str
    asp_derived: bool

    def to_dict(self) -> dict[str, Any]:
        return {
            "dr_id": self.dr_id,
            "business_term": self.business_term,
            "dataset_file": self.dataset_file,
            "internal_column_names": list(self.internal_column_names),
            "mandatory_for_default_use_case": self.mandatory_for_default_use_case,
            "data_type": self.data_type,
            "format_pattern": self.format_pattern,
            "code_list_reference": self.code_list_reference,
            "category": self.category,
            "vat_law_status": self.vat_law_status,
            "data_responsibility": self.data_responsibility,
            "pint_ae_reference": self.pint_ae_reference,
            "asp_derived": self.asp_derived,
        }


def extract_code_list_ref(format_pattern: str) -> Optional[str]:
    fp = (format_pattern or "").lower()
    for keywords, label in _CODE_LIST_KEYWORDS:
        if any(k in fp for k in keywords):
            return label
    return None


def build_dr_registry(fields: Iterable[SpecRegistryField]) -> list[DRRegistryEntry]:
    entries = []
    for f in fields:
        dataset, columns = DR_TO_COLUMN_MAP.get(f.dr_id, (None, []))
        entries.append(DRRegistryEntry(
            dr_id=f.dr_id,
            business_term=f.business_term,
            dataset_file=dataset,
            internal_column_names=tuple(columns),
            mandatory_for_default_use_case=is_mandatory_field(f),
            data_type=f.data_type,
            format_pattern=f.format_pattern,
            code_list_reference=extract_code_list_ref(f.format_pattern),
            category=f.category,
            vat_law_status=f.vat_law_status,
            data_responsibility=f.data_responsibility,
            pint_ae_reference=f.ubl_xml_path or "",
            asp_derived=f.dr_id in ASP_DERIVED_DR_IDS or "ASP" in f.data_responsibility,
        ))
    return entries


def is_dr_ingestible(entry: DRRegistryEntry) -> bool:
    """True when the DR has columns and the parser knows every one of them."""
    if not entry.dataset_file or not entry.internal_column_names:
        return False
    known = PARSER_KNOWN_COLUMNS.get(entry.dataset_file, frozenset())
    return all(col in known for col in entry.internal_column_names)


def get_mandatory_columns_for_dataset(
    dataset: str, entries: Iterable[DRRegistryEntry]
) -> list[str]:
    """Ingestible columns of mandatory DRs for one dataset, plus its join keys."""
    known = PARSER_KNOWN_COLUMNS[dataset]
    cols: dict[str, None] = {}
    for entry in entries:
        if entry.dataset_file != dataset or not entry.mandatory_for_default_use_case:
            continue
        for col in entry.internal_column_names:
            if col in known:
                cols[col] = None
    for key in JOIN_KEYS[dataset]:
        cols[key] = None
    return list(cols)


def get_dr_entry(dr_id: str, entries: Iterable[DRRegistryEntry]) -> Optional[DRRegistryEntry]:
    for entry in entries:
        if entry.dr_id == dr_id:
            return entry
    return None

"""UAE UC1 (standard tax invoice) PINT-AE check pack.

Each check defines:
  - check_id / check_name / description: identity
  - scope: Header | Lines | Party | Cross
  - rule_type: Presence | Format | CodeList | Math | Dependency | CrossCheck
  - severity: drives the SLA target of the exceptions it raises
  - pint_reference_terms: the DR ids (IBT-/IBG-/BTUAE-) the check enforces;
                          rule traceability is derived from this list
  - owner_team_default / suggested_fix: routing for raised cases
  - parameters: handler inputs (field, pattern, codelist, tolerance, ...)

The runner in :mod:`pintae.engine.pint_ae_checks` dispatches on ``check_id``.
"""

from __future__ import annotations
from typing import Any

from pintae.config import (
    ALLOWED_SUBDIVISION_CODES,
    DATE_PATTERN,
    DEFAULT_USE_CASE,
    MONETARY_TOLERANCE,
    TRN_PATTERN,
)

_PACK_DEFAULTS: dict[str, Any] = {
    "use_case": DEFAULT_USE_CASE,
    "is_enabled": True,
    "parameters": {},
}

# ───────────────────────────────────────────────────────
# Header checks
# ───────────────────────────────────────────────────────

_HEADER_CHECKS: list[dict[str, Any]] = [
    {
        "check_id": "UAE-UC1-CHK-001",
        "check_name": "Invoice Number Present",
        "description": "Every invoice must carry an invoice number.",
        "scope": "Header",
        "rule_type": "Presence",
        "severity": "Critical",
        "pint_reference_terms": ["IBT-001"],
        "owner_team_default": "Client Finance",
        "suggested_fix": "Populate invoice_number from the billing system document number.",
        "parameters": {"field": "invoice_number"},
    },
    {
        "check_id": "UAE-UC1-CHK-002",
        "check_name": "Issue Date Present",
        "description": "Every invoice must carry an issue date.",
        "scope": "Header",
        "rule_type": "Presence",
        "severity": "Critical",
        "pint_reference_terms": ["IBT-002"],
        "owner_team_default": "Client Finance",
        "suggested_fix": "Populate issue_date for every invoice.",
        "parameters": {"field": "issue_date"},
    },
    {
        "check_id": "UAE-UC1-CHK-003",
        "check_name": "Issue Date Format",
        "description": "Issue date must be an ISO 8601 calendar date (YYYY-MM-DD).",
        "scope": "Header",
        "rule_type": "Format",
        "severity": "High",
        "pint_reference_terms": ["IBT-002"],
        "owner_team_default": "Client IT",
        "suggested_fix": "Export dates as YYYY-MM-DD.",
        "parameters": {"field": "issue_date", "pattern": DATE_PATTERN},
    },
    {
        "check_id": "UAE-UC1-CHK-004",
        "check_name": "Invoice Type Code Present",
        "description": "Invoice type code must be provided.",
        "scope": "Header",
        "rule_type": "Presence",
        "severity": "Critical",
        "pint_reference_terms": ["IBT-003", "BTUAE-02"],
        "owner_team_default": "Client Finance",
        "suggested_fix": "Set invoice_type (e.g. 380 for a tax invoice, 381 for a credit note).",
        "parameters": {"field": "invoice_type"},
    },
    {
        "check_id": "UAE-UC1-CHK-005",
        "check_name": "Invoice Currency Present",
        "description": "Invoice currency code must be provided.",
        "scope": "Header",
        "rule_type": "Presence",
        "severity": "Critical",
        "pint_reference_terms": ["IBT-005"],
        "owner_team_default": "Client Finance",
        "suggested_fix": "Populate currency with an ISO 4217 code.",
        "parameters": {"field": "currency"},
    },
    {
        "check_id": "UAE-UC1-CHK-006",
        "check_name": "Invoice Currency in ISO 4217",
        "description": "Invoice currency must come from the ISO 4217 code list.",
        "scope": "Header",
        "rule_type": "CodeList",
        "severity": "High",
        "pint_reference_terms": ["IBT-005"],
        "owner_team_default": "Client IT",
        "suggested_fix": "Map internal currency codes to ISO 4217.",
        "parameters": {"field": "currency", "codelist": "ISO4217"},
    },
    {
        "check_id": "UAE-UC1-CHK-007",
        "check_name": "Tax Accounting Currency is AED",
        "description": "VAT must be accounted in AED; required when the invoice currency is not AED.",
        "scope": "Header",
        "rule_type": "Dependency",
        "severity": "High",
        "pint_reference_terms": ["IBT-006"],
        "owner_team_default": "Client Finance",
        "suggested_fix": "Set tax_currency to AED on foreign-currency invoices.",
        "parameters": {"tax_currency": "AED"},
    },
    {
        "check_id": "UAE-UC1-CHK-008",
        "check_name": "FX Rate for Foreign Currency",
        "description": "A positive exchange rate is required when the invoice currency is not AED.",
        "scope": "Header",
        "rule_type": "Dependency",
        "severity": "High",
        "pint_reference_terms": ["IBT-007"],
        "owner_team_default": "Client Finance",
        "suggested_fix": "Provide fx_rate to AED for every non-AED invoice.",
        "parameters": {"currency_field": "currency", "fx_field": "fx_rate", "base_currency": "AED"},
    },
    {
        "check_id": "UAE-UC1-CHK-009",
        "check_name": "Payment Due Date",
        "description": "Due date is required when an amount is due and cannot precede the issue date.",
        "scope": "Header",
        "rule_type": "Dependency",
        "severity": "Medium",
        "pint_reference_terms": ["IBT-009", "IBT-115"],
        "owner_team_default": "Client Finance",
        "suggested_fix": "Populate payment_due_date on or after issue_date.",
    },
    {
        "check_id": "UAE-UC1-CHK-010",
        "check_name": "Specification Identifier",
        "description": "Specification identifier must be the PINT-AE billing identifier.",
        "scope": "Header",
        "rule_type": "Format",
        "severity": "High",
        "pint_reference_terms": ["IBT-024"],
        "owner_team_default": "ASP Ops",
        "suggested_fix": "ASP sets spec_id to urn:peppol:pint:billing-1@ae-1.",
        "parameters": {"field": "spec_id", "pattern": r"^urn:peppol:pint:billing-1@ae-1$"},
    },
    {
        "check_id": "UAE-UC1-CHK-011",
        "check_name": "Business Process Type",
        "description": "Business process type must be an allowed Peppol process identifier.",
        "scope": "Header",
        "rule_type": "CodeList",
        "severity": "Medium",
        "pint_reference_terms": ["IBT-023"],
        "owner_team_default": "ASP Ops",
        "suggested_fix": "ASP sets business_process to urn:peppol:bis:billing.",
        "parameters": {"field": "business_process", "allowed_values": ["urn:peppol:bis:billing"]},
    },
]

# ───────────────────────────────────────────────────────
# Party checks
# ───────────────────────────────────────────────────────

_PARTY_CHECKS: list[dict[str, Any]] = [
    {
        "check_id": "UAE-UC1-CHK-012",
        "check_name": "Seller Name Present",
        "description": "Seller legal name must be provided.",
        "scope": "Header",
        "rule_type": "Presence",
        "severity": "Critical",
        "pint_reference_terms": ["IBT-027"],
        "owner_team_default": "Client Finance",
        "suggested_fix": "Populate seller_name from the entity master.",
        "parameters": {"field": "seller_name"},
    },
    {
        "check_id": "UAE-UC1-CHK-013",
        "check_name": "Seller TRN Format",
        "description": "Seller TRN must be a 15-digit UAE tax registration number.",
        "scope": "Header",
        "rule_type": "Format",
        "severity": "Critical",
        "pint_reference_terms": ["IBT-031"],
        "owner_team_default": "Client Finance",
        "suggested_fix": "Correct the seller TRN to the 15 digits on the FTA certificate.",
        "parameters": {"field": "seller_trn", "pattern": TRN_PATTERN},
    },
    {
        "check_id": "UAE-UC1-CHK-014",
        "check_name": "Seller Electronic Address",
        "description": "Seller Peppol endpoint must be provided.",
        "scope": "Header",
        "rule_type": "Presence",
        "severity": "High",
        "pint_reference_terms": ["IBT-034"],
        "owner_team_default": "ASP Ops",
        "suggested_fix": "Register the seller endpoint and populate seller_electronic_address.",
        "parameters": {"field": "seller_endpoint"},
    },
    {
        "check_id": "UAE-UC1-CHK-015",
        "check_name": "Seller Postal Address",
        "description": "Seller street, city and country must be provided.",
        "scope": "Header",
        "rule_type": "Presence",
        "severity": "High",
        "pint_reference_terms": ["IBT-035", "IBT-037", "IBT-040"],
        "owner_team_default": "Client Finance",
        "suggested_fix": "Complete the seller address in the entity master.",
        "parameters": {"fields": ["seller_street", "seller_city", "seller_country"]},
    },
    {
        "check_id": "UAE-UC1-CHK-016",
        "check_name": "Seller Emirate Subdivision",
        "description": "Seller subdivision must be a UAE emirate code.",
        "scope": "Header",
        "rule_type": "CodeList",
        "severity": "Medium",
        "pint_reference_terms": ["IBT-039"],
        "owner_team_default": "Client Finance",
        "suggested_fix": "Use one of AE-AZ, AE-AJ, AE-FU, AE-SH, AE-DU, AE-RK, AE-UQ.",
        "parameters": {"field": "seller_subdivision", "allowed_values": list(ALLOWED_SUBDIVISION_CODES)},
    },
    {
        "check_id": "UAE-UC1-CHK-017",
        "check_name": "Buyer Name Present",
        "description": "Buyer legal name must be provided.",
        "scope": "Party",
        "rule_type": "Presence",
        "severity": "Critical",
        "pint_reference_terms": ["IBT-044"],
        "owner_team_default": "Buyer-side",
        "suggested_fix": "Populate buyer_name in the customer master.",
        "parameters": {"field": "buyer_name"},
    },
    {
        "check_id": "UAE-UC1-CHK-018",
        "check_name": "Buyer TRN Format",
        "description": "Buyer TRN, when given, must be 15 digits.",
        "scope": "Party",
        "rule_type": "Format",
        "severity": "High",
        "pint_reference_terms": ["IBT-048"],
        "owner_team_default": "Buyer-side",
        "suggested_fix": "Confirm the buyer TRN against the FTA register.",
        "parameters": {"field": "buyer_trn", "pattern": TRN_PATTERN},
    },
    {
        "check_id": "UAE-UC1-CHK-019",
        "check_name": "Buyer Electronic Address",
        "description": "Buyer Peppol endpoint must be provided.",
        "scope": "Party",
        "rule_type": "Presence",
        "severity": "High",
        "pint_reference_terms": ["IBT-049"],
        "owner_team_default": "Buyer-side",
        "suggested_fix": "Look up the buyer endpoint in the Peppol directory.",
        "parameters": {"field": "buyer_endpoint"},
    },
    {
        "check_id": "UAE-UC1-CHK-020",
        "check_name": "Buyer Postal Address",
        "description": "Buyer address and country must be provided.",
        "scope": "Party",
        "rule_type": "Presence",
        "severity": "Medium",
        "pint_reference_terms": ["IBT-050", "IBT-055"],
        "owner_team_default": "Buyer-side",
        "suggested_fix": "Complete the buyer address in the customer master.",
        "parameters": {"fields": ["buyer_address", "buyer_country"]},
    },
]

# ───────────────────────────────────────────────────────
# Totals and tax checks
# ───────────────────────────────────────────────────────

_TOTALS_CHECKS: list[dict[str, Any]] = [
    {
        "check_id": "UAE-UC1-CHK-021",
        "check_name": "Sum of Line Net Amounts",
        "description": "Header total without VAT must equal the sum of line net amounts.",
        "scope": "Cross",
        "rule_type": "Math",
        "severity": "Critical",
        "pint_reference_terms": ["IBT-106", "IBT-109", "IBT-131"],
        "owner_team_default": "Client IT",
        "suggested_fix": "Recompute header totals from the exported lines.",
        "parameters": {"tolerance": MONETARY_TOLERANCE},
    },
    {
        "check_id": "UAE-UC1-CHK-022",
        "check_name": "Total Without VAT Precision",
        "description": "Total without VAT may carry at most 2 decimals.",
        "scope": "Header",
        "rule_type": "Format",
        "severity": "Medium",
        "pint_reference_terms": ["IBT-109"],
        "owner_team_default": "Client IT",
        "suggested_fix": "Round monetary amounts to 2 decimals before export.",
        "parameters": {"field": "total_excl_vat", "max_decimals": 2},
    },
    {
        "check_id": "UAE-UC1-CHK-023",
        "check_name": "VAT Total Precision",
        "description": "VAT total may carry at most 2 decimals.",
        "scope": "Header",
        "rule_type": "Format",
        "severity": "Medium",
        "pint_reference_terms": ["IBT-110"],
        "owner_team_default": "Client IT",
        "suggested_fix": "Round monetary amounts to 2 decimals before export.",
        "parameters": {"field": "vat_total", "max_decimals": 2},
    },
    {
        "check_id": "UAE-UC1-CHK-024",
        "check_name": "Total With VAT Precision",
        "description": "Total with VAT may carry at most 2 decimals.",
        "scope": "Header",
        "rule_type": "Format",
        "severity": "Medium",
        "pint_reference_terms": ["IBT-112"],
        "owner_team_default": "Client IT",
        "suggested_fix": "Round monetary amounts to 2 decimals before export.",
        "parameters": {"field": "total_incl_vat", "max_decimals": 2},
    },
    {
        "check_id": "UAE-UC1-CHK-025",
        "check_name": "Total With VAT Equals Net Plus VAT",
        "description": "Total with VAT must equal total without VAT plus VAT total.",
        "scope": "Header",
        "rule_type": "Math",
        "severity": "Critical",
        "pint_reference_terms": ["IBT-109", "IBT-110", "IBT-112"],
        "owner_team_default": "Client IT",
        "suggested_fix": "Recompute total_incl_vat as total_excl_vat + vat_total.",
        "parameters": {"tolerance": MONETARY_TOLERANCE},
    },
    {
        "check_id": "UAE-UC1-CHK-026",
        "check_name": "Amount Due Precision",
        "description": "Amount due for payment may carry at most 2 decimals.",
        "scope": "Header",
        "rule_type": "Format",
        "severity": "Low",
        "pint_reference_terms": ["IBT-115"],
        "owner_team_default": "Client IT",
        "suggested_fix": "Round monetary amounts to 2 decimals before export.",
        "parameters": {"field": "amount_due", "max_decimals": 2},
    },
    {
        "check_id": "UAE-UC1-CHK-027",
        "check_name": "Tax Breakdown Present",
        "description": "Invoices with a taxable amount need at least one tax category breakdown.",
        "scope": "Cross",
        "rule_type": "Dependency",
        "severity": "High",
        "pint_reference_terms": ["IBG-23", "IBT-118", "IBT-119"],
        "owner_team_default": "Client Finance",
        "suggested_fix": "Provide tax_category_code and rate at header or line level.",
    },
    {
        "check_id": "UAE-UC1-CHK-028",
        "check_name": "Line VAT Calculation",
        "description": "Line VAT amount must equal line net amount times VAT rate.",
        "scope": "Lines",
        "rule_type": "Math",
        "severity": "High",
        "pint_reference_terms": ["IBT-152", "BTUAE-08", "IBT-131"],
        "owner_team_default": "Client IT",
        "suggested_fix": "Recompute vat_amount as line_total_excl_vat * vat_rate / 100.",
        "parameters": {"tolerance": MONETARY_TOLERANCE},
    },
    {
        "check_id": "UAE-UC1-CHK-029",
        "check_name": "VAT Total Equals Line VAT Sum",
        "description": "Header VAT total must equal the sum of line VAT amounts.",
        "scope": "Cross",
        "rule_type": "Math",
        "severity": "Critical",
        "pint_reference_terms": ["IBT-110", "IBT-117", "BTUAE-08"],
        "owner_team_default": "Client IT",
        "suggested_fix": "Recompute vat_total from the exported lines.",
        "parameters": {"tolerance": MONETARY_TOLERANCE},
    },
]

# ───────────────────────────────────────────────────────
# Line checks
# ───────────────────────────────────────────────────────

_LINE_CHECKS: list[dict[str, Any]] = [
    {
        "check_id": "UAE-UC1-CHK-030",
        "check_name": "Invoice Has Lines",
        "description": "Every invoice must have at least one line.",
        "scope": "Cross",
        "rule_type": "Presence",
        "severity": "Critical",
        "pint_reference_terms": ["IBG-25", "IBT-126"],
        "owner_team_default": "Client IT",
        "suggested_fix": "Include the invoice lines in the lines file.",
    },
    {
        "check_id": "UAE-UC1-CHK-031",
        "check_name": "Line Identifier Present",
        "description": "Every line must carry a line identifier.",
        "scope": "Lines",
        "rule_type": "Presence",
        "severity": "High",
        "pint_reference_terms": ["IBT-126"],
        "owner_team_default": "Client IT",
        "suggested_fix": "Number lines sequentially within each invoice.",
    },
    {
        "check_id": "UAE-UC1-CHK-032",
        "check_name": "Invoiced Quantity Present",
        "description": "Every line must carry an invoiced quantity.",
        "scope": "Lines",
        "rule_type": "Presence",
        "severity": "High",
        "pint_reference_terms": ["IBT-129"],
        "owner_team_default": "Client Finance",
        "suggested_fix": "Populate quantity for every line.",
    },
    {
        "check_id": "UAE-UC1-CHK-033",
        "check_name": "Unit of Measure Present",
        "description": "Every line must carry a unit of measure code.",
        "scope": "Lines",
        "rule_type": "Presence",
        "severity": "Medium",
        "pint_reference_terms": ["IBT-130"],
        "owner_team_default": "Client IT",
        "suggested_fix": "Map internal units to UN/ECE Rec 20 codes (e.g. EA, C62).",
        "parameters": {"field": "unit_of_measure"},
    },
    {
        "check_id": "UAE-UC1-CHK-034",
        "check_name": "Line Net Amount Formula",
        "description": "Line net amount must equal quantity times price minus discount.",
        "scope": "Lines",
        "rule_type": "Math",
        "severity": "High",
        "pint_reference_terms": ["IBT-131", "IBT-129", "IBT-146"],
        "owner_team_default": "Client IT",
        "suggested_fix": "Recompute line_total_excl_vat from quantity, unit_price and line_discount.",
        "parameters": {"tolerance": MONETARY_TOLERANCE},
    },
    {
        "check_id": "UAE-UC1-CHK-035",
        "check_name": "Payment Means Code",
        "description": "Payment means code must come from UNTDID 4461.",
        "scope": "Header",
        "rule_type": "CodeList",
        "severity": "Medium",
        "pint_reference_terms": ["IBT-081"],
        "owner_team_default": "Client Finance",
        "suggested_fix": "Map payment terms to UNTDID 4461 codes (e.g. 30 credit transfer).",
        "parameters": {"field": "payment_means_code", "codelist": "UNCL4461"},
    },
    {
        "check_id": "UAE-UC1-CHK-036",
        "check_name": "Line Tax Category Code",
        "description": "Line tax category must be one of S, Z, E, O, RC.",
        "scope": "Lines",
        "rule_type": "CodeList",
        "severity": "High",
        "pint_reference_terms": ["IBT-151"],
        "owner_team_default": "Client Finance",
        "suggested_fix": "Map VAT treatments to UAE tax category codes.",
        "parameters": {"field": "tax_category_code", "codelist": "TaxCategory"},
    },
    {
        "check_id": "UAE-UC1-CHK-037",
        "check_name": "Invoice Type Code List",
        "description": "Invoice type code must come from UNTDID 1001.",
        "scope": "Header",
        "rule_type": "CodeList",
        "severity": "High",
        "pint_reference_terms": ["IBT-003"],
        "owner_team_default": "Client Finance",
        "suggested_fix": "Use 380 (tax invoice), 381 (credit note) or another UNTDID 1001 code.",
        "parameters": {"field": "invoice_type", "codelist": "UNCL1001"},
    },
]

UAE_UC1_CHECK_PACK: list[dict[str, Any]] = [
    {**_PACK_DEFAULTS, **check}
    for check in _HEADER_CHECKS + _PARTY_CHECKS + _TOTALS_CHECKS + _LINE_CHECKS
]


def get_check_by_id(check_id: str) -> dict[str, Any] | None:
    for check in UAE_UC1_CHECK_PACK:
        if check["check_id"] == check_id:
            return check
    return None

"""PINT-AE code lists used by the CodeList checks.

Subsets of the official lists covering the codes UAE invoices use in
practice.  Lookups are case-insensitive and ignore surrounding whitespace.
"""

from __future__ import annotations

from pintae.config import (
    ALLOWED_INVOICE_TYPE_CODES,
    ALLOWED_PAYMENT_MEANS_CODES,
    ALLOWED_SUBDIVISION_CODES,
)

CODELISTS: dict[str, list[str]] = {
    "ISO4217": [
        "AED", "USD", "EUR", "GBP", "SAR", "KWD", "BHD", "OMR", "QAR", "INR",
        "PKR", "CNY", "JPY", "CHF", "CAD", "AUD", "SGD", "HKD", "EGP", "JOD",
    ],
    "ISO3166": [
        "AE", "SA", "KW", "BH", "OM", "QA", "US", "GB", "DE", "FR", "IN", "PK",
        "CN", "JP", "CH", "CA", "AU", "SG", "HK", "EG", "JO",
    ],
    "UNCL1001": list(ALLOWED_INVOICE_TYPE_CODES),
    "UNCL4461": list(ALLOWED_PAYMENT_MEANS_CODES),
    "TaxCategory": ["S", "Z", "E", "O", "RC"],
    "UNECERec20": ["C62", "EA", "H87", "KGM", "MTR", "LTR", "HUR", "DAY", "MON", "SET", "BX", "PR"],
    "UAESubdivision": list(ALLOWED_SUBDIVISION_CODES),
}


def _normalize_code(value: str) -> str:
    return str(value).strip().upper()


def get_codelist_codes(name: str) -> list[str]:
    """Normalized codes of a list; empty for an unknown list name."""
    return [_normalize_code(c) for c in CODELISTS.get(name, [])]


def is_code_in_codelist(name: str, value) -> bool:
    return _normalize_code(value) in get_codelist_codes(name)

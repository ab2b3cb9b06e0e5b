"""Investigation search checks for payables (AP) datasets.

Unlike rule checks these do not produce compliance exceptions.  They compare
invoice headers pairwise and raise :class:`InvestigationFlag` leads for a
reviewer: likely duplicate submissions, invoice-number variants, and the same
supplier appearing under differently formatted TRNs.

Only AP data is searched; for AR (our own sales) the leads are meaningless
and nothing is returned.
"""

import logging
from datetime import datetime
from typing import Any, Callable, Mapping, Optional

from pintae.config import TRACE_ENABLED
from pintae.engine.datasets import DataContext, InvestigationFlag, to_number, within_tolerance
from pintae.engine.fuzzy import (
    levenshtein_distance,
    normalize_invoice_search_value,
    normalize_name_search_value,
    normalize_trn_search_value,
    similarity_score,
)

logger = logging.getLogger(__name__)


def _trace(msg: str):
    if TRACE_ENABLED:
        logger.debug(f"[TRACE] {msg}")


DEFAULT_SEARCH_PARAMS: dict[str, float] = {
    "vendor_similarity_threshold": 0.85,
    "invoice_number_similarity_threshold": 0.9,
    "trn_distance_threshold": 2,
    "date_window_days": 7,
    "amount_tolerance": 0.01,
}

_DATE_FORMATS = ["%Y-%m-%d", "%d-%m-%Y", "%d/%m/%Y", "%Y/%m/%d"]

# (confidence, message) when a pair should be flagged
MatchResult = Optional[tuple[float, str]]


def _parse_date(value: Any) -> Optional[datetime]:
    if not value:
        return None
    text = str(value).strip()[:10]
    for fmt in _DATE_FORMATS:
        try:
            return datetime.strptime(text, fmt)
        except ValueError:
            continue
    return None


def _name_similarity(a: Mapping[str, Any], b: Mapping[str, Any]) -> float:
    name_a = normalize_name_search_value(a.get("seller_name"))
    name_b = normalize_name_search_value(b.get("seller_name"))
    if not name_a or not name_b:
        return 0.0
    return similarity_score(name_a, name_b)


def _counterparty_similarity(a: Mapping[str, Any], b: Mapping[str, Any]) -> float:
    """1.0 for the same TRN digits, otherwise supplier-name similarity."""
    trn_a = normalize_trn_search_value(a.get("seller_trn"))
    if trn_a and trn_a == normalize_trn_search_value(b.get("seller_trn")):
        return 1.0
    return _name_similarity(a, b)


def _invoice_similarity(a: Mapping[str, Any], b: Mapping[str, Any]) -> float:
    return similarity_score(
        normalize_invoice_search_value(a.get("invoice_number")),
        normalize_invoice_search_value(b.get("invoice_number")),
    )


# ═══════════════════════════════════════════════════
# PAIR MATCHERS
# ═══════════════════════════════════════════════════

def _match_fuzzy_duplicate(earlier: Mapping, later: Mapping, params: Mapping) -> MatchResult:
    vendor = _counterparty_similarity(earlier, later)
    if vendor < float(params["vendor_similarity_threshold"]):
        return None

    amount_a = to_number(earlier.get("total_incl_vat"))
    amount_b = to_number(later.get("total_incl_vat"))
    if amount_a is None or amount_b is None:
        return None
    if not within_tolerance(amount_a, amount_b, float(params["amount_tolerance"])):
        return None

    date_a = _parse_date(earlier.get("issue_date"))
    date_b = _parse_date(later.get("issue_date"))
    if date_a is None or date_b is None:
        return None
    gap_days = abs((date_b - date_a).days)
    if gap_days > int(params["date_window_days"]):
        return None

    confidence = round((vendor + _invoice_similarity(earlier, later)) / 2, 2)
    return confidence, (
        f"Possible duplicate of invoice {earlier.get('invoice_number')}: same supplier, "
        f"amount {amount_b} and issue dates {gap_days} day(s) apart"
    )


def _match_invoice_number_variant(earlier: Mapping, later: Mapping, params: Mapping) -> MatchResult:
    raw_a = str(earlier.get("invoice_number") or "").strip()
    raw_b = str(later.get("invoice_number") or "").strip()
    if not raw_a or not raw_b or raw_a == raw_b:
        return None
    if _counterparty_similarity(earlier, later) < float(params["vendor_similarity_threshold"]):
        return None

    score = _invoice_similarity(earlier, later)
    if score < float(params["invoice_number_similarity_threshold"]):
        return None
    return round(score, 2), (
        f"Invoice number '{raw_b}' looks like a variant of '{raw_a}' from the same supplier"
    )


def _match_trn_format_similarity(earlier: Mapping, later: Mapping, params: Mapping) -> MatchResult:
    raw_a = str(earlier.get("seller_trn") or "").strip()
    raw_b = str(later.get("seller_trn") or "").strip()
    if not raw_a or not raw_b or raw_a == raw_b:
        return None
    if _name_similarity(earlier, later) < float(params["vendor_similarity_threshold"]):
        return None

    threshold = int(params["trn_distance_threshold"])
    distance = levenshtein_distance(
        normalize_trn_search_value(raw_a), normalize_trn_search_value(raw_b)
    )
    if distance > threshold:
        return None
    confidence = round(max(0.0, 1 - distance / (threshold + 1)), 2)
    return confidence, (
        f"Supplier '{later.get('seller_name')}' appears with TRN '{raw_b}' "
        f"and '{raw_a}' (edit distance {distance})"
    )


_SEARCH_MATCHERS: dict[str, Callable[[Mapping, Mapping, Mapping], MatchResult]] = {
    "fuzzy_duplicate": _match_fuzzy_duplicate,
    "invoice_number_variant": _match_invoice_number_variant,
    "trn_format_similarity": _match_trn_format_similarity,
}

SEARCH_RULE_TYPES = tuple(_SEARCH_MATCHERS)


# ═══════════════════════════════════════════════════
# RUNNER
# ═══════════════════════════════════════════════════

def run_search_check(
    check: Mapping[str, Any], data: DataContext, dataset_type: str
) -> list[InvestigationFlag]:
    """Compare AP headers pairwise and flag the later invoice of each match."""
    if dataset_type != "AP":
        return []

    rule_type = check.get("rule_type")
    matcher = _SEARCH_MATCHERS.get(rule_type)
    if matcher is None:
        logger.warning(f"Search check [{check.get('name')}] skipped: unsupported rule_type {rule_type!r}")
        return []

    params = {**DEFAULT_SEARCH_PARAMS, **(check.get("parameters") or {})}
    check_id = check.get("id") or rule_type
    check_name = check.get("name") or rule_type

    flags = []
    headers = data.headers
    for j, later in enumerate(headers):
        for earlier in headers[:j]:
            result = matcher(earlier, later, params)
            if result is None:
                continue
            confidence, message = result
            _trace(f"{rule_type}: {earlier.get('invoice_id')} ~ {later.get('invoice_id')} ({confidence})")
            flags.append(InvestigationFlag(
                check_id=check_id,
                check_name=check_name,
                dataset_type=dataset_type,
                invoice_id=later.get("invoice_id"),
                invoice_number=later.get("invoice_number"),
                counterparty_name=later.get("seller_name"),
                message=message,
                confidence_score=confidence,
                matched_invoice_id=earlier.get("invoice_id"),
                matched_invoice_number=earlier.get("invoice_number"),
            ))

    if flags:
        logger.info(f"Search check [{check_name}]: {len(flags)} investigation flag(s)")
    return flags

"""Invoice direction (AR / AP) helpers and our-entity TRN alignment.

AR: we issued the invoice, so our TRN is the seller TRN.
AP: we received it, so our TRN is the buyer TRN (on the header, or on the
buyer record it references).
"""

from __future__ import annotations

import logging
from typing import Any, Iterable, Mapping, Optional

from pintae.engine.datasets import CheckException

logger = logging.getLogger(__name__)

DIRECTIONS = ("AR", "AP")
DEFAULT_DIRECTION = "AR"

_AP_COLUMN_SIGNALS = ["supplier_id", "supplier_name", "vendor_id", "vendor_name"]
_AR_COLUMN_SIGNALS = ["buyer_id", "buyer_name", "customer_id", "customer_name"]


def resolve_direction(value: Optional[str]) -> str:
    return value if value in DIRECTIONS else DEFAULT_DIRECTION


def detect_direction_from_columns(columns: Iterable[str]) -> Optional[str]:
    """Guess the direction from party column names; None when ambiguous."""
    normalized = {c.strip().lower() for c in columns}
    ap_score = sum(1 for s in _AP_COLUMN_SIGNALS if s in normalized)
    ar_score = sum(1 for s in _AR_COLUMN_SIGNALS if s in normalized)
    if ap_score > ar_score:
        return "AP"
    if ar_score > ap_score:
        return "AR"
    return None


def build_organization_profile_exceptions(
    our_entity_trns: Iterable[str],
    direction: str,
    headers: Iterable[Mapping[str, Any]],
    buyer_map: Mapping[str, Mapping[str, Any]],
) -> list[CheckException]:
    """Flag invoices whose our-side TRN is not one of our registered entities.

    An empty allowed set disables the check.
    """
    allowed = [t.strip() for t in our_entity_trns if t and t.strip()]
    if not allowed:
        return []
    allowed_set = set(allowed)
    expected = f"one of [{', '.join(dict.fromkeys(allowed))}]"
    direction = resolve_direction(direction)

    out = []
    for header in headers:
        if direction == "AR":
            trn = header.get("seller_trn")
        else:
            trn = header.get("buyer_trn") or (buyer_map.get(header.get("buyer_id")) or {}).get("buyer_trn")
        if trn and trn in allowed_set:
            continue

        party = "Seller" if direction == "AR" else "Buyer"
        out.append(CheckException(
            check_id="org_profile_our_entity_alignment",
            rule_id="ORG-TRN-ALIGNMENT",
            check_name="Our-side TRN Alignment",
            severity="Critical",
            message=(
                f"{party} TRN {trn or '(missing)'} is not registered "
                f"as our entity for {direction} direction."
            ),
            invoice_id=header.get("invoice_id"),
            invoice_number=header.get("invoice_number"),
            seller_trn=header.get("seller_trn"),
            buyer_id=header.get("buyer_id"),
            field="seller_trn" if direction == "AR" else "buyer_trn",
            expected_value=expected,
            actual_value=trn or "(missing)",
            direction=direction,
        ))

    if out:
        logger.info(f"Our-entity alignment ({direction}): {len(out)} invoice(s) outside the organization profile")
    return out

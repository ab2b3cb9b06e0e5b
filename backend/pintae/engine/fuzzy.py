"""Fuzzy matching for invoice search and duplicate investigation.

Three pure normalizers (invoice number, party name, TRN), a Levenshtein
based similarity score, and a ranker that scores candidates against a free
text query under a strictness profile.
"""

import re
from dataclasses import dataclass
from typing import Any, Mapping, Optional, Union

# ── Constants ──

STRICTNESS_CONFIG: dict[str, dict[str, float]] = {
    "strict": {"min_score": 0.86},
    "balanced": {"min_score": 0.72},
    "loose": {"min_score": 0.58},
}

CONTAINMENT_SCORE = 0.9

_INVOICE_SEPARATORS_RE = re.compile(r"[\s\-_/.\\]")
_WHITESPACE_RE = re.compile(r"\s+")
_NON_DIGIT_RE = re.compile(r"\D")


# ═══════════════════════════════════════════════════
# 1. NORMALIZATION
# ═══════════════════════════════════════════════════

def normalize_invoice_search_value(value: Optional[str]) -> str:
    """'INV- 2026/001' → 'inv2026001'"""
    if not value:
        return ""
    return _INVOICE_SEPARATORS_RE.sub("", str(value).lower())


def normalize_name_search_value(value: Optional[str]) -> str:
    """'  Acme   LLC  ' → 'acme llc'"""
    if not value:
        return ""
    return _WHITESPACE_RE.sub(" ", str(value).lower()).strip()


def normalize_trn_search_value(value: Optional[str]) -> str:
    """'TRN 100-200-300' → '100200300'"""
    if not value:
        return ""
    return _NON_DIGIT_RE.sub("", str(value))


# ═══════════════════════════════════════════════════
# 2. SIMILARITY
# ═══════════════════════════════════════════════════

def levenshtein_distance(s1: str, s2: str) -> int:
    """Compute Levenshtein edit distance between two strings."""
    if len(s1) < len(s2):
        return levenshtein_distance(s2, s1)
    if len(s2) == 0:
        return len(s1)
    prev = list(range(len(s2) + 1))
    for i, c1 in enumerate(s1):
        curr = [i + 1]
        for j, c2 in enumerate(s2):
            ins = prev[j + 1] + 1
            dele = curr[j] + 1
            sub = prev[j] + (0 if c1 == c2 else 1)
            curr.append(min(ins, dele, sub))
        prev = curr
    return prev[-1]


def similarity_score(a: str, b: str) -> float:
    """Similarity of two already-normalized strings in [0, 1].

    Both empty → 1, one empty → 0, equal → 1, containment → 0.9,
    otherwise 1 - distance / len(longer).
    """
    if not a and not b:
        return 1.0
    if not a or not b:
        return 0.0
    if a == b:
        return 1.0
    if a in b or b in a:
        return CONTAINMENT_SCORE
    longer = a if len(a) >= len(b) else b
    distance = levenshtein_distance(a, b)
    return max(0.0, (len(longer) - distance) / len(longer))


# ═══════════════════════════════════════════════════
# 3. CANDIDATE RANKING
# ═══════════════════════════════════════════════════

@dataclass(frozen=True)
class FuzzyCandidate:
    id: str
    vendor_name: Optional[str] = None
    invoice_number: Optional[str] = None
    trn: Optional[str] = None
    reference: Optional[str] = None

    @classmethod
    def from_mapping(cls, m: Mapping[str, Any]) -> "FuzzyCandidate":
        """Accepts snake_case or camelCase keys."""
        return cls(
            id=str(m.get("id", "")),
            vendor_name=m.get("vendor_name", m.get("vendorName")),
            invoice_number=m.get("invoice_number", m.get("invoiceNumber")),
            trn=m.get("trn"),
            reference=m.get("reference"),
        )


@dataclass(frozen=True)
class RankedFuzzyResult:
    item: Any
    score: float

    def to_dict(self) -> dict:
        item = self.item
        if isinstance(item, FuzzyCandidate):
            item = {
                "id": item.id,
                "vendor_name": item.vendor_name,
                "invoice_number": item.invoice_number,
                "trn": item.trn,
                "reference": item.reference,
            }
        return {"item": item, "score": round(self.score, 4)}


def _candidate_score(
    candidate: FuzzyCandidate, q_name: str, q_doc: str, q_trn: str
) -> float:
    comparisons = (
        (q_name, candidate.vendor_name, normalize_name_search_value),
        (q_doc, candidate.invoice_number, normalize_invoice_search_value),
        (q_trn, candidate.trn, normalize_trn_search_value),
        (q_name, candidate.reference, normalize_name_search_value),
    )
    best = 0.0
    for query_value, field_value, normalize in comparisons:
        # A field the candidate does not carry cannot vouch for a match
        if field_value is None:
            continue
        normalized = normalize(field_value)
        # Nothing left on either side after normalizing ("N/A" as a TRN)
        if not query_value or not normalized:
            continue
        best = max(best, similarity_score(query_value, normalized))
    return best


def rank_fuzzy_candidates(
    query: Optional[str],
    candidates: list[Union[FuzzyCandidate, Mapping[str, Any]]],
    strictness: str = "balanced",
) -> list[RankedFuzzyResult]:
    """Rank candidates by best field similarity to ``query``.

    A blank query is the unfiltered listing: every candidate with score 1.0.
    That score is not a match signal.

    Raises:
        ValueError: unknown strictness profile.
    """
    if strictness not in STRICTNESS_CONFIG:
        raise ValueError(
            f"Unknown strictness {strictness!r} (expected one of {', '.join(STRICTNESS_CONFIG)})"
        )

    if not query or not query.strip():
        return [RankedFuzzyResult(item=c, score=1.0) for c in candidates]

    min_score = STRICTNESS_CONFIG[strictness]["min_score"]
    q_name = normalize_name_search_value(query)
    q_doc = normalize_invoice_search_value(query)
    q_trn = normalize_trn_search_value(query)

    ranked = []
    for item in candidates:
        candidate = item if isinstance(item, FuzzyCandidate) else FuzzyCandidate.from_mapping(item)
        score = _candidate_score(candidate, q_name, q_doc, q_trn)
        if score >= min_score:
            ranked.append(RankedFuzzyResult(item=item, score=score))

    # sorted() is stable, so equal scores keep candidate order
    return sorted(ranked, key=lambda r: r.score, reverse=True)

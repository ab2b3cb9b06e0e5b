"""Severity scoring and run summaries.

Works on any exception object carrying ``severity``, ``check_id``,
``check_name``, ``invoice_id`` and ``seller_trn`` (both
:class:`CheckException` and :class:`PintAEException` qualify).
"""

from __future__ import annotations

from typing import Any, Iterable, Mapping, Optional

from pintae.config import SEVERITY_RISK_WEIGHTS, SEVERITY_SCORE_PENALTIES
from pintae.engine.datasets import CheckResult

SEVERITIES = ("Critical", "High", "Medium", "Low")
TOP_FAILING_LIMIT = 10


def _clamp(value: float) -> float:
    return max(0, min(100, value))


def severity_counts(exceptions: Iterable[Any]) -> dict[str, int]:
    counts = {s: 0 for s in SEVERITIES}
    for e in exceptions:
        if e.severity in counts:
            counts[e.severity] += 1
    return counts


def calculate_score(exceptions: Iterable[Any]) -> float:
    """100 minus a fixed penalty per exception, clamped to [0, 100]."""
    counts = severity_counts(exceptions)
    penalty = sum(counts[s] * SEVERITY_SCORE_PENALTIES[s] for s in SEVERITIES)
    return _clamp(100 - penalty)


def calculate_risk_score(counts: Mapping[str, int]) -> int:
    return sum(counts.get(s, 0) * SEVERITY_RISK_WEIGHTS[s] for s in SEVERITIES)


def calculate_health_score(exceptions: Iterable[Any], total_invoices: int) -> int:
    """Risk per invoice mapped onto 0-100; 100 when there are no invoices."""
    if total_invoices == 0:
        return 100
    risk = calculate_risk_score(severity_counts(exceptions))
    return int(_clamp(round(100 - (risk / total_invoices) * 2)))


def calculate_client_scores(
    exceptions: Iterable[Any], headers: Iterable[Mapping[str, Any]]
) -> list[dict[str, Any]]:
    """Risk and health per seller TRN, for sellers present in ``headers``."""
    invoices: dict[str, set] = {}
    for h in headers:
        invoices.setdefault(h.get("seller_trn"), set()).add(h.get("invoice_id"))

    by_seller: dict[str, list[Any]] = {trn: [] for trn in invoices}
    for e in exceptions:
        if e.seller_trn in by_seller:
            by_seller[e.seller_trn].append(e)

    scores = []
    for trn, excs in by_seller.items():
        counts = severity_counts(excs)
        scores.append({
            "seller_trn": trn,
            "risk_score": calculate_risk_score(counts),
            "health_score": calculate_health_score(excs, len(invoices[trn])),
            "critical_count": counts["Critical"],
            "high_count": counts["High"],
            "medium_count": counts["Medium"],
            "low_count": counts["Low"],
            "total_exceptions": len(excs),
            "total_invoices": len(invoices[trn]),
        })
    return scores


def summarize_run(
    check_results: Optional[Iterable[CheckResult]],
    exceptions: Iterable[Any],
    total_invoices: int = 0,
) -> dict[str, Any]:
    """Dashboard summary over built-in results plus any other exceptions.

    Pass rate is the share of invoices with no exception at all (100 when
    there are no invoices).
    """
    everything = list(exceptions)
    for result in check_results or []:
        everything.extend(result.exceptions)

    per_check: dict[str, dict[str, Any]] = {}
    for e in everything:
        entry = per_check.setdefault(
            e.check_id, {"check_id": e.check_id, "check_name": e.check_name, "count": 0}
        )
        entry["count"] += 1
    top = sorted(per_check.values(), key=lambda c: c["count"], reverse=True)[:TOP_FAILING_LIMIT]

    failing_invoices = {e.invoice_id for e in everything if e.invoice_id}
    if total_invoices > 0:
        pass_rate = (total_invoices - len(failing_invoices)) / total_invoices * 100
    else:
        pass_rate = 100.0

    return {
        "total_invoices": total_invoices,
        "total_exceptions": len(everything),
        "exceptions_by_severity": severity_counts(everything),
        "pass_rate": round(pass_rate, 2),
        "score": calculate_score(everything),
        "health_score": calculate_health_score(everything, total_invoices),
        "top_failing_checks": top,
    }

"""Rule traceability — which DRs each validation rule enforces.

Pure metadata derived from the check pack's ``pint_reference_terms``; rule
execution is untouched.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Iterable, Mapping, Optional


@dataclass(frozen=True)
class RuleTraceEntry:
    rule_id: str
    rule_name: str
    affected_dr_ids: tuple[str, ...]
    severity: str
    scope: str
    applies_when: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "rule_id": self.rule_id,
            "rule_name": self.rule_name,
            "affected_dr_ids": list(self.affected_dr_ids),
            "severity": self.severity,
            "scope": self.scope,
            "applies_when": self.applies_when,
        }


def build_rule_traceability(check_pack: Iterable[Mapping[str, Any]]) -> list[RuleTraceEntry]:
    return [
        RuleTraceEntry(
            rule_id=check["check_id"],
            rule_name=check["check_name"],
            affected_dr_ids=tuple(check.get("pint_reference_terms") or ()),
            severity=check.get("severity", ""),
            scope=check.get("scope", ""),
            applies_when=check.get("use_case"),
        )
        for check in check_pack
    ]


def get_rules_for_dr(dr_id: str, rules: Iterable[RuleTraceEntry]) -> list[RuleTraceEntry]:
    return [r for r in rules if dr_id in r.affected_dr_ids]


def get_drs_with_rules(rules: Iterable[RuleTraceEntry]) -> set[str]:
    return {dr_id for r in rules for dr_id in r.affected_dr_ids}


def get_drs_without_rules(all_dr_ids: Iterable[str], rules: Iterable[RuleTraceEntry]) -> list[str]:
    covered = get_drs_with_rules(rules)
    return [dr_id for dr_id in all_dr_ids if dr_id not in covered]

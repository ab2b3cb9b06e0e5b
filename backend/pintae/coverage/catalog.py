"""Immutable traceability catalog: DRs, rules and controls with lookup indices.

The default catalog is assembled once per process from the spec registry
file and the UC1 check pack.  Anything that needs a different catalog
(tests, another release) builds one with :func:`build_catalog` and passes
it in explicitly.
"""

from __future__ import annotations

import logging
import dataclasses
from dataclasses import dataclass
from functools import lru_cache
from types import MappingProxyType
from typing import Any, Iterable, Mapping, Optional

from pintae.config import SPEC_VERSION_LABEL
from pintae.coverage.controls_registry import (
    CONTROLS_DEFINITION,
    ControlEntry,
    build_controls_registry,
)
from pintae.coverage.dr_registry import DRRegistryEntry, build_dr_registry
from pintae.coverage.rule_traceability import RuleTraceEntry, build_rule_traceability
from pintae.coverage.spec_registry import SpecRegistryField, get_spec_registry
from pintae.engine.check_pack import UAE_UC1_CHECK_PACK

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TraceabilityCatalog:
    drs: tuple[DRRegistryEntry, ...]
    rules: tuple[RuleTraceEntry, ...]
    controls: tuple[ControlEntry, ...]
    spec_version: str = SPEC_VERSION_LABEL
    dr_by_id: Mapping[str, DRRegistryEntry] = dataclasses.field(default_factory=lambda: MappingProxyType({}))
    rule_by_id: Mapping[str, RuleTraceEntry] = dataclasses.field(default_factory=lambda: MappingProxyType({}))
    rules_by_dr: Mapping[str, tuple[RuleTraceEntry, ...]] = dataclasses.field(default_factory=lambda: MappingProxyType({}))
    controls_by_dr: Mapping[str, tuple[ControlEntry, ...]] = dataclasses.field(default_factory=lambda: MappingProxyType({}))

    def get_dr(self, dr_id: str) -> Optional[DRRegistryEntry]:
        return self.dr_by_id.get(dr_id)

    def rules_for(self, dr_id: str) -> tuple[RuleTraceEntry, ...]:
        return self.rules_by_dr.get(dr_id, ())

    def controls_for(self, dr_id: str) -> tuple[ControlEntry, ...]:
        return self.controls_by_dr.get(dr_id, ())


def _group(items: Iterable[Any], keys_of) -> dict[str, tuple]:
    grouped: dict[str, list] = {}
    for item in items:
        for key in keys_of(item):
            grouped.setdefault(key, []).append(item)
    return {k: tuple(v) for k, v in grouped.items()}


def build_catalog(
    registry_fields: Iterable[SpecRegistryField],
    check_pack: Iterable[Mapping[str, Any]] = UAE_UC1_CHECK_PACK,
    control_definitions: Iterable[dict[str, Any]] = CONTROLS_DEFINITION,
    spec_version: str = SPEC_VERSION_LABEL,
) -> TraceabilityCatalog:
    drs = tuple(build_dr_registry(registry_fields))
    rules = tuple(build_rule_traceability(check_pack))
    controls = tuple(build_controls_registry(rules, control_definitions))

    return TraceabilityCatalog(
        drs=drs,
        rules=rules,
        controls=controls,
        spec_version=spec_version,
        dr_by_id=MappingProxyType({d.dr_id: d for d in drs}),
        rule_by_id=MappingProxyType({r.rule_id: r for r in rules}),
        rules_by_dr=MappingProxyType(_group(rules, lambda r: dict.fromkeys(r.affected_dr_ids))),
        controls_by_dr=MappingProxyType(_group(controls, lambda c: dict.fromkeys(c.covered_dr_ids))),
    )


@lru_cache(maxsize=1)
def get_default_catalog() -> TraceabilityCatalog:
    """Catalog for the configured spec registry and the UC1 check pack."""
    registry = get_spec_registry()
    catalog = build_catalog(registry.fields)
    logger.info(
        f"Traceability catalog ready: {len(catalog.drs)} DRs, "
        f"{len(catalog.rules)} rules, {len(catalog.controls)} controls"
    )
    return catalog

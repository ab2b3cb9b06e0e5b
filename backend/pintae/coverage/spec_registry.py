"""PINT-AE spec registry loader.

The registry JSON (``SPEC_REGISTRY_PATH``) is the authoritative list of
customer-facing Data Requirements for a PINT-AE release::

    {"specId": ..., "version": ..., "description": ..., "effectiveDate": ...,
     "fieldCount": 50, "fields": [{"dr_id": "IBT-001", ...}, ...]}

``get_spec_registry()`` loads it once per process; ``load_spec_registry()``
reads any path explicitly (tests, alternative releases).
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, fields as dataclass_fields
from functools import lru_cache
from pathlib import Path
from typing import Any, Iterable, Optional, Union

from pintae.config import SPEC_REGISTRY_PATH

logger = logging.getLogger(__name__)


class SpecRegistryError(RuntimeError):
    """Raised when the spec registry file is missing or malformed."""


@dataclass(frozen=True)
class SpecRegistryField:
    dr_id: str
    business_term: str
    category: str = ""
    mandatory_flag_by_use_case: str = ""
    pint_ae_cardinality: str = ""
    data_type: str = ""
    format_pattern: str = ""
    validation_logic: str = ""
    derivation_logic: str = ""
    error_message_text: str = ""
    ubl_xml_path: str = ""
    mls_relevance: str = ""
    vat_law_status: str = ""
    data_responsibility: str = ""

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> "SpecRegistryField":
        known = {f.name for f in dataclass_fields(cls)}
        return cls(**{k: ("" if v is None else v) for k, v in d.items() if k in known})

    def to_dict(self) -> dict[str, Any]:
        return {f.name: getattr(self, f.name) for f in dataclass_fields(self)}


@dataclass(frozen=True)
class SpecRegistry:
    spec_id: str
    version: str
    description: str
    effective_date: str
    fields: tuple[SpecRegistryField, ...]

    @property
    def field_count(self) -> int:
        return len(self.fields)

    def get_field(self, dr_id: str) -> Optional[SpecRegistryField]:
        for f in self.fields:
            if f.dr_id == dr_id:
                return f
        return None


def load_spec_registry(path: Optional[Union[str, Path]] = None) -> SpecRegistry:
    """Read and validate a registry JSON file.

    Raises:
        SpecRegistryError: unreadable file, invalid JSON, or missing
            ``fields`` / ``dr_id`` / ``business_term``.
    """
    path = Path(path or SPEC_REGISTRY_PATH)
    try:
        raw = json.loads(path.read_text(encoding="utf-8"))
    except OSError as e:
        raise SpecRegistryError(f"Cannot read spec registry {path}: {e}") from e
    except json.JSONDecodeError as e:
        raise SpecRegistryError(f"Spec registry {path} is not valid JSON: {e}") from e

    if not isinstance(raw, dict) or not isinstance(raw.get("fields"), list):
        raise SpecRegistryError(f"Spec registry {path} has no 'fields' list")

    parsed = []
    for i, entry in enumerate(raw["fields"]):
        if not isinstance(entry, dict) or not entry.get("dr_id") or not entry.get("business_term"):
            raise SpecRegistryError(f"Spec registry {path}: field #{i} lacks dr_id/business_term")
        parsed.append(SpecRegistryField.from_dict(entry))

    declared = raw.get("fieldCount")
    if declared is not None and declared != len(parsed):
        logger.warning(f"Spec registry {path}: fieldCount {declared} != {len(parsed)} fields")

    registry = SpecRegistry(
        spec_id=str(raw.get("specId", "")),
        version=str(raw.get("version", "")),
        description=str(raw.get("description", "")),
        effective_date=str(raw.get("effectiveDate", "")),
        fields=tuple(parsed),
    )
    logger.info(f"Loaded spec registry {registry.spec_id} {registry.version}: {registry.field_count} DRs")
    return registry


@lru_cache(maxsize=1)
def get_spec_registry() -> SpecRegistry:
    return load_spec_registry(SPEC_REGISTRY_PATH)


# ── Mandatory detection ──

def is_mandatory_field(field: SpecRegistryField) -> bool:
    """Mandatory when cardinality starts with 1 (1..1 / 1..n) and the
    use-case flag says mandatory."""
    return (
        field.pint_ae_cardinality.startswith("1")
        and "mandatory" in field.mandatory_flag_by_use_case.lower()
    )


# ═══════════════════════════════════════════════════
# REGISTRY COVERAGE
# ═══════════════════════════════════════════════════

@dataclass
class RegistryCoverageResult:
    total_registry_fields: int
    mandatory_registry_fields: int
    mapped_mandatory: list[SpecRegistryField]
    unmapped_mandatory: list[SpecRegistryField]
    mapped_conditional: list[SpecRegistryField]
    unmapped_conditional: list[SpecRegistryField]
    mandatory_coverage_pct: float
    overall_coverage_pct: float
    is_ready_for_activation: bool

    def to_dict(self) -> dict[str, Any]:
        def ids(items):
            return [f.dr_id for f in items]
        return {
            "total_registry_fields": self.total_registry_fields,
            "mandatory_registry_fields": self.mandatory_registry_fields,
            "mapped_mandatory": ids(self.mapped_mandatory),
            "unmapped_mandatory": ids(self.unmapped_mandatory),
            "mapped_conditional": ids(self.mapped_conditional),
            "unmapped_conditional": ids(self.unmapped_conditional),
            "mandatory_coverage_pct": round(self.mandatory_coverage_pct, 2),
            "overall_coverage_pct": round(self.overall_coverage_pct, 2),
            "is_ready_for_activation": self.is_ready_for_activation,
        }


def compute_registry_coverage(
    mapped_dr_ids: Iterable[str], registry: Optional[SpecRegistry] = None
) -> RegistryCoverageResult:
    """Mapping coverage of a profile's DR ids against the registry."""
    registry = registry or get_spec_registry()
    mapped = set(mapped_dr_ids)
    mandatory = [f for f in registry.fields if is_mandatory_field(f)]
    conditional = [f for f in registry.fields if not is_mandatory_field(f)]

    mapped_mandatory = [f for f in mandatory if f.dr_id in mapped]
    unmapped_mandatory = [f for f in mandatory if f.dr_id not in mapped]
    mapped_conditional = [f for f in conditional if f.dr_id in mapped]
    unmapped_conditional = [f for f in conditional if f.dr_id not in mapped]

    mandatory_pct = len(mapped_mandatory) / len(mandatory) * 100 if mandatory else 100.0
    total = len(registry.fields)
    overall_pct = (len(mapped_mandatory) + len(mapped_conditional)) / total * 100 if total else 100.0

    return RegistryCoverageResult(
        total_registry_fields=total,
        mandatory_registry_fields=len(mandatory),
        mapped_mandatory=mapped_mandatory,
        unmapped_mandatory=unmapped_mandatory,
        mapped_conditional=mapped_conditional,
        unmapped_conditional=unmapped_conditional,
        mandatory_coverage_pct=mandatory_pct,
        overall_coverage_pct=overall_pct,
        is_ready_for_activation=not unmapped_mandatory,
    )

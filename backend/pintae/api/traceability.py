"""Traceability endpoints: DR matrix, readiness gate, registry coverage, export."""

import logging
from typing import Any, Optional

from fastapi import APIRouter, HTTPException
from fastapi.responses import Response
from pydantic import BaseModel, Field

from pintae.coverage.catalog import TraceabilityCatalog, get_default_catalog
from pintae.coverage.conformance import check_run_readiness, compute_traceability_matrix
from pintae.coverage.consistency import run_consistency_checks
from pintae.coverage.export import export_traceability_csv, traceability_report_filename
from pintae.coverage.population import (
    compute_all_dataset_populations,
    mandatory_population_pct,
    populations_from_dict,
)
from pintae.coverage.spec_registry import SpecRegistryError, compute_registry_coverage, get_spec_registry

router = APIRouter()
logger = logging.getLogger(__name__)


class MatrixRequest(BaseModel):
    dataset: Optional[dict[str, list[dict[str, Any]]]] = None
    populations: Optional[dict[str, dict[str, float]]] = None
    exception_counts: Optional[dict[str, dict[str, int]]] = None


class ReadinessRequest(BaseModel):
    has_mapping_profile: bool
    mandatory_mapping_coverage: float
    mandatory_population_pct: Optional[float] = None


class RegistryCoverageRequest(BaseModel):
    mapped_dr_ids: list[str] = Field(default_factory=list)


def _catalog() -> TraceabilityCatalog:
    try:
        return get_default_catalog()
    except SpecRegistryError as e:
        logger.error(f"Spec registry unavailable: {e}")
        raise HTTPException(status_code=500, detail=str(e))


def _populations(request: MatrixRequest):
    if request.dataset is not None:
        return compute_all_dataset_populations(request.dataset)
    if request.populations is not None:
        return populations_from_dict(request.populations)
    return []


@router.post("/matrix")
async def traceability_matrix(request: MatrixRequest):
    catalog = _catalog()
    populations = _populations(request)
    result = compute_traceability_matrix(populations, request.exception_counts, catalog)
    body = result.to_dict()
    body["mandatory_population_pct"] = mandatory_population_pct(populations, catalog)
    return body


@router.post("/readiness")
async def run_readiness(request: ReadinessRequest):
    result = check_run_readiness(
        request.has_mapping_profile,
        request.mandatory_mapping_coverage,
        request.mandatory_population_pct,
    )
    return result.to_dict()


@router.post("/registry-coverage")
async def registry_coverage(request: RegistryCoverageRequest):
    try:
        registry = get_spec_registry()
    except SpecRegistryError as e:
        logger.error(f"Spec registry unavailable: {e}")
        raise HTTPException(status_code=500, detail=str(e))
    return compute_registry_coverage(request.mapped_dr_ids, registry).to_dict()


@router.get("/consistency")
async def consistency_report():
    return run_consistency_checks(_catalog()).to_dict()


@router.post("/export")
async def export_report(request: MatrixRequest):
    """DR traceability report as a CSV attachment.

    Refused with 409 while the catalog has consistency errors.
    """
    catalog = _catalog()
    report = run_consistency_checks(catalog)
    if report.has_errors:
        errors = [i.message for i in report.issues if i.level == "error"]
        raise HTTPException(status_code=409, detail={"message": "Catalog is inconsistent", "errors": errors})

    result = compute_traceability_matrix(_populations(request), request.exception_counts, catalog)
    filename = traceability_report_filename()
    return Response(
        content=export_traceability_csv(result.rows),
        media_type="text/csv; charset=utf-8",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )

"""Validation endpoints: check catalog, rule runs, fuzzy search, investigations."""

import logging
from typing import Any, Optional

from fastapi import APIRouter, HTTPException
from pydantic import BaseModel, Field

from pintae.config import FUZZY_DEFAULT_STRICTNESS
from pintae.engine.builtin_checks import get_builtin_check_metadata, run_all_checks
from pintae.engine.check_pack import UAE_UC1_CHECK_PACK
from pintae.engine.custom_checks import CheckConfigError, load_check_configs, run_custom_checks
from pintae.engine.datasets import DataContext, build_data_context
from pintae.engine.direction import build_organization_profile_exceptions, resolve_direction
from pintae.engine.fuzzy import rank_fuzzy_candidates
from pintae.engine.pint_ae_checks import run_all_pint_ae_checks
from pintae.engine.scoring import summarize_run
from pintae.engine.search_checks import run_search_check

router = APIRouter()
logger = logging.getLogger(__name__)


class DatasetIn(BaseModel):
    buyers: list[dict[str, Any]] = Field(default_factory=list)
    headers: list[dict[str, Any]] = Field(default_factory=list)
    lines: list[dict[str, Any]] = Field(default_factory=list)

    def to_context(self) -> DataContext:
        return build_data_context(self.buyers, self.headers, self.lines)


class RunRequest(BaseModel):
    dataset: DatasetIn
    custom_checks: list[dict[str, Any]] = Field(default_factory=list)
    include_builtin: bool = True
    include_pint_ae: bool = True
    direction: Optional[str] = None
    our_entity_trns: list[str] = Field(default_factory=list)


class SearchRequest(BaseModel):
    query: Optional[str] = None
    candidates: list[dict[str, Any]] = Field(default_factory=list)
    strictness: str = FUZZY_DEFAULT_STRICTNESS


class InvestigateRequest(BaseModel):
    dataset: DatasetIn
    checks: list[dict[str, Any]] = Field(default_factory=list)
    dataset_type: str = "AP"


@router.get("/checks")
async def list_checks():
    """Built-in checks plus the UC1 PINT-AE pack."""
    return {
        "builtin": get_builtin_check_metadata(),
        "pint_ae": UAE_UC1_CHECK_PACK,
    }


@router.post("/run")
async def run_validation(request: RunRequest):
    """Run built-in, PINT-AE and custom checks over one dataset.

    A malformed custom check is rejected with 422 before anything runs.
    """
    try:
        custom = load_check_configs(request.custom_checks)
    except CheckConfigError as e:
        raise HTTPException(status_code=422, detail=str(e))

    data = request.dataset.to_context()
    direction = resolve_direction(request.direction)

    check_results = run_all_checks(data) if request.include_builtin else []
    custom_exceptions = run_custom_checks(custom, data)
    org_exceptions = build_organization_profile_exceptions(
        request.our_entity_trns, direction, data.headers, data.buyer_map,
    )
    pint_exceptions = run_all_pint_ae_checks(UAE_UC1_CHECK_PACK, data) if request.include_pint_ae else []

    exceptions = custom_exceptions + org_exceptions
    summary = summarize_run(
        check_results, exceptions + pint_exceptions, total_invoices=len(data.headers),
    )
    logger.info(
        f"Validation run ({direction}): {summary['total_exceptions']} exception(s) "
        f"over {len(data.headers)} invoice(s)"
    )
    return {
        "direction": direction,
        "check_results": [r.to_dict() for r in check_results],
        "exceptions": [e.to_dict() for e in exceptions],
        "pint_ae_exceptions": [e.to_dict() for e in pint_exceptions],
        "summary": summary,
    }


@router.post("/search")
async def search(request: SearchRequest):
    try:
        ranked = rank_fuzzy_candidates(request.query, request.candidates, request.strictness)
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e))
    return {"results": [r.to_dict() for r in ranked], "count": len(ranked)}


@router.post("/investigate")
async def investigate(request: InvestigateRequest):
    """Run investigation search checks; only AP datasets produce flags."""
    data = request.dataset.to_context()
    flags = []
    for check in request.checks:
        flags.extend(run_search_check(check, data, request.dataset_type))
    return {"flags": [f.to_dict() for f in flags], "count": len(flags)}

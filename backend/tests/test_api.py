"""Tests for the FastAPI route handlers (called directly, no HTTP client).

Tests cover:
  - validation: check listing, full runs, custom check rejection, search, investigate
  - traceability: matrix, readiness, registry coverage, consistency, CSV export
  - health endpoint
"""

import httpx
import pytest
from unittest.mock import patch
from fastapi import HTTPException

from pintae.api import traceability
from pintae.api.traceability import (
    MatrixRequest,
    ReadinessRequest,
    RegistryCoverageRequest,
    consistency_report,
    export_report,
    registry_coverage,
    run_readiness,
    traceability_matrix,
)
from pintae.api.validation import (
    DatasetIn,
    InvestigateRequest,
    RunRequest,
    SearchRequest,
    investigate,
    list_checks,
    run_validation,
    search,
)
from pintae.coverage.consistency import ConsistencyIssue, ConsistencyReport
from pintae.coverage.spec_registry import SpecRegistryError
from pintae.main import app, health


# ═══════════════════════════════════════════════════
# Validation routes
# ═══════════════════════════════════════════════════

class TestValidationRoutes:

    @pytest.mark.asyncio
    async def test_list_checks(self):
        body = await list_checks()
        assert len(body["builtin"]) == 10
        assert len(body["pint_ae"]) == 37

    @pytest.mark.asyncio
    async def test_run_clean_dataset(self, sample_positive):
        body = await run_validation(RunRequest(dataset=DatasetIn(**sample_positive)))
        assert body["direction"] == "AR"
        assert body["pint_ae_exceptions"] == []
        assert body["summary"]["total_exceptions"] == 0
        assert body["summary"]["pass_rate"] == 100.0

    @pytest.mark.asyncio
    async def test_run_seeded_dataset(self, sample_negative):
        body = await run_validation(RunRequest(dataset=DatasetIn(**sample_negative)))
        assert len(body["pint_ae_exceptions"]) == 8
        builtin_failed = sum(r["failed"] for r in body["check_results"])
        assert builtin_failed == 3
        assert body["summary"]["total_exceptions"] == 11

    @pytest.mark.asyncio
    async def test_run_with_custom_and_org_profile(self, sample_positive):
        request = RunRequest(
            dataset=DatasetIn(**sample_positive),
            custom_checks=[{
                "id": "supply-date", "name": "Supply date present", "rule_type": "missing",
                "dataset_scope": "header", "parameters": {"field": "supply_date"},
            }],
            include_builtin=False,
            include_pint_ae=False,
            our_entity_trns=["999999999999999"],
        )
        body = await run_validation(request)
        check_ids = [e["check_id"] for e in body["exceptions"]]
        assert check_ids.count("supply-date") == 3
        assert check_ids.count("org_profile_our_entity_alignment") == 3
        assert body["check_results"] == []

    @pytest.mark.asyncio
    async def test_bad_custom_check_is_422(self, sample_positive):
        request = RunRequest(
            dataset=DatasetIn(**sample_positive),
            custom_checks=[{"name": "bad", "rule_type": "sql", "dataset_scope": "header"}],
        )
        with pytest.raises(HTTPException) as exc_info:
            await run_validation(request)
        assert exc_info.value.status_code == 422
        assert "rule_type" in exc_info.value.detail

    @pytest.mark.asyncio
    async def test_search(self):
        body = await search(SearchRequest(
            query="INV-2026/001",
            candidates=[{"id": "1", "invoice_number": "inv 2026 001"}, {"id": "2", "invoice_number": "zzz"}],
        ))
        assert body["count"] == 1
        assert body["results"][0]["item"]["id"] == "1"

    @pytest.mark.asyncio
    async def test_search_bad_strictness_is_422(self):
        with pytest.raises(HTTPException) as exc_info:
            await search(SearchRequest(query="x", strictness="extreme"))
        assert exc_info.value.status_code == 422

    @pytest.mark.asyncio
    async def test_investigate_ap_only(self):
        headers = [
            {"invoice_id": "A1", "invoice_number": "INV-1", "seller_trn": "100000000000001",
             "issue_date": "2025-03-01", "total_incl_vat": "100"},
            {"invoice_id": "A2", "invoice_number": "INV1", "seller_trn": "100000000000001",
             "issue_date": "2025-03-02", "total_incl_vat": "100"},
        ]
        checks = [{"id": "dup", "name": "dup", "rule_type": "fuzzy_duplicate"}]
        ap = await investigate(InvestigateRequest(dataset=DatasetIn(headers=headers), checks=checks))
        assert ap["count"] == 1
        assert ap["flags"][0]["invoice_id"] == "A2"
        ar = await investigate(InvestigateRequest(dataset=DatasetIn(headers=headers), checks=checks, dataset_type="AR"))
        assert ar["count"] == 0


# ═══════════════════════════════════════════════════
# Traceability routes
# ═══════════════════════════════════════════════════

class TestTraceabilityRoutes:

    @pytest.mark.asyncio
    async def test_matrix_from_dataset(self, sample_positive):
        body = await traceability_matrix(MatrixRequest(dataset=sample_positive))
        assert len(body["rows"]) == 50
        assert body["mandatory_population_pct"] == 100.0
        assert body["gaps"]["total_drs"] == 50

    @pytest.mark.asyncio
    async def test_matrix_from_precomputed_stats(self):
        body = await traceability_matrix(MatrixRequest(
            populations={"headers": {"invoice_number": 50.0}},
            exception_counts={"IBT-001": {"pass": 1, "fail": 1}},
        ))
        row = next(r for r in body["rows"] if r["dr_id"] == "IBT-001")
        assert row["population_pct"] == 50.0
        assert row["last_run_pass_rate"] == 50.0
        assert body["mandatory_population_pct"] == 50.0

    @pytest.mark.asyncio
    async def test_matrix_without_data(self):
        body = await traceability_matrix(MatrixRequest())
        assert body["mandatory_population_pct"] is None

    @pytest.mark.asyncio
    async def test_readiness(self):
        body = await run_readiness(ReadinessRequest(
            has_mapping_profile=False, mandatory_mapping_coverage=90.0, mandatory_population_pct=None,
        ))
        assert body["can_run"] is False
        assert len(body["reasons"]) == 2

    @pytest.mark.asyncio
    async def test_registry_coverage(self):
        body = await registry_coverage(RegistryCoverageRequest(mapped_dr_ids=["IBT-001"]))
        assert body["mapped_mandatory"] == ["IBT-001"]
        assert body["is_ready_for_activation"] is False

    @pytest.mark.asyncio
    async def test_registry_unavailable_is_500(self):
        with patch.object(traceability, "get_spec_registry", side_effect=SpecRegistryError("gone")):
            with pytest.raises(HTTPException) as exc_info:
                await registry_coverage(RegistryCoverageRequest())
        assert exc_info.value.status_code == 500

    @pytest.mark.asyncio
    async def test_catalog_unavailable_is_500(self):
        with patch.object(traceability, "get_default_catalog", side_effect=SpecRegistryError("gone")):
            with pytest.raises(HTTPException) as exc_info:
                await consistency_report()
        assert exc_info.value.status_code == 500

    @pytest.mark.asyncio
    async def test_consistency(self):
        body = await consistency_report()
        assert body["has_errors"] is False

    @pytest.mark.asyncio
    async def test_export_csv(self, sample_positive):
        response = await export_report(MatrixRequest(dataset=sample_positive))
        assert response.media_type.startswith("text/csv")
        assert 'filename="DR_Traceability_Report_' in response.headers["content-disposition"]
        text = response.body.decode("utf-8")
        assert text.startswith("dr_id,business_term,mandatory")
        assert len(text.strip().split("\n")) == 51

    @pytest.mark.asyncio
    async def test_export_blocked_by_errors(self):
        broken = ConsistencyReport(
            issues=(ConsistencyIssue("error", "Rule-DR Integrity", "1 rule(s) reference DR IDs not in registry", ("R -> X",)),),
            passed=5, failed=1, timestamp="2025-01-01T00:00:00+00:00",
        )
        with patch.object(traceability, "run_consistency_checks", return_value=broken):
            with pytest.raises(HTTPException) as exc_info:
                await export_report(MatrixRequest())
        assert exc_info.value.status_code == 409
        assert exc_info.value.detail["errors"] == ["1 rule(s) reference DR IDs not in registry"]


# ═══════════════════════════════════════════════════
# Health
# ═══════════════════════════════════════════════════

class TestHealth:

    @pytest.mark.asyncio
    async def test_health(self):
        body = await health()
        assert body["status"] == "operational"
        assert body["spec_version"].startswith("PINT-AE")


# ═══════════════════════════════════════════════════
# Over HTTP (ASGI transport, no server)
# ═══════════════════════════════════════════════════

class TestOverHttp:

    @pytest.mark.asyncio
    async def test_routes_mounted(self, sample_negative):
        transport = httpx.ASGITransport(app=app)
        async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
            health_resp = await client.get("/api/health")
            run_resp = await client.post("/api/validation/run", json={"dataset": sample_negative})
            export_resp = await client.post("/api/traceability/export", json={})
        assert health_resp.status_code == 200
        assert run_resp.status_code == 200
        assert run_resp.json()["summary"]["total_exceptions"] == 11
        assert export_resp.headers["content-type"].startswith("text/csv")

    @pytest.mark.asyncio
    async def test_bad_body_is_422(self):
        transport = httpx.ASGITransport(app=app)
        async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
            resp = await client.post("/api/validation/run", json={"dataset": "not-a-dataset"})
        assert resp.status_code == 422

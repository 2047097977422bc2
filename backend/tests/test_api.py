"""HTTP-level tests for the shipment, detection, permit, compliance, review and audit routes."""

import pytest

GPU_ITEM = {
    "description": "NVIDIA GeForce RTX 4090 graphics card with AI accelerator",
    "hs_code": "8473.30.90",
    "quantity": "4",
    "technical_specs": {"tpp": 5285},
}
TAPE_ITEM = {"description": "Polypropylene packaging tape 48mm x 100m", "hs_code": "3919.10"}


async def _register(client, shipment_id: str = "SHP-2025-0100"):
    resp = await client.post("/api/shipments", json={
        "shipment_id": shipment_id, "reference": "INV-1", "destination_country": "sg",
    })
    assert resp.status_code == 201
    return resp.json()


async def _upload(client, shipment_id: str, permit_type: str, filename: str = "permit.pdf", **form):
    return await client.post(
        f"/api/permits/{shipment_id}/{permit_type}",
        files={"file": (filename, b"%PDF-1.7 permit", "application/pdf")},
        data={"uploaded_by": "officer@example.com", **form},
    )


@pytest.mark.asyncio
class TestShipmentsAPI:
    async def test_register_and_fetch(self, client):
        created = await _register(client)
        assert created["destination_country"] == "SG"

        resp = await client.get("/api/shipments/SHP-2025-0100")
        assert resp.status_code == 200

    async def test_duplicate_conflicts(self, client):
        await _register(client)
        resp = await client.post("/api/shipments", json={"shipment_id": "SHP-2025-0100"})
        assert resp.status_code == 409

    async def test_unknown_shipment_404(self, client):
        resp = await client.get("/api/shipments/SHP-NOPE")
        assert resp.status_code == 404
        assert resp.json()["error"] == "ShipmentNotFound"


@pytest.mark.asyncio
class TestDetectionAPI:
    async def test_detect_and_status(self, client, seeded_catalog):
        await _register(client)

        resp = await client.post("/api/strategic/detect", json={
            "shipment_id": "SHP-2025-0100", "items": [GPU_ITEM, TAPE_ITEM],
        })
        assert resp.status_code == 200
        data = resp.json()
        assert data["persisted"] is True
        assert data["strategic_items_found"] == 1
        assert data["export_blocked"] is True
        assert data["results"][0]["is_strategic"] is True
        assert data["results"][1]["final_confidence"] == 0

        status = await client.get("/api/strategic/status/SHP-2025-0100")
        assert status.status_code == 200
        assert status.json()["blocked_items"] == 1

    async def test_detect_requires_items(self, client):
        resp = await client.post("/api/strategic/detect", json={"shipment_id": "SHP-1", "items": []})
        assert resp.status_code == 422

    async def test_detect_unknown_shipment_is_best_effort(self, client, seeded_catalog):
        resp = await client.post("/api/strategic/detect", json={
            "shipment_id": "SHP-NOPE", "items": [GPU_ITEM],
        })
        assert resp.status_code == 200
        assert resp.json()["persisted"] is False
        assert len(resp.json()["item_errors"]) == 1

    async def test_status_unknown_shipment_404(self, client):
        resp = await client.get("/api/strategic/status/SHP-NOPE")
        assert resp.status_code == 404


@pytest.mark.asyncio
class TestPermitAndComplianceAPI:
    async def test_full_clearance_flow(self, client, seeded_catalog):
        await _register(client)
        await client.post("/api/strategic/detect", json={"shipment_id": "SHP-2025-0100", "items": [GPU_ITEM]})

        blocked = await client.post("/api/export/validation/SHP-2025-0100")
        assert blocked.json()["permitted"] is False
        assert blocked.json()["missing_permits"] == ["STA_2010", "AICA", "TechDocs"]

        for permit_type in ("STA_2010", "AICA", "TechDocs"):
            resp = await _upload(client, "SHP-2025-0100", permit_type, permit_number="N-1")
            assert resp.status_code == 201
            assert resp.json()["is_valid"] is True

        compliance = await client.get("/api/compliance/SHP-2025-0100")
        assert compliance.json()["export_permitted"] is True
        assert compliance.json()["compliance_score"] == 100
        assert compliance.json()["items"][0]["state"] == "CLEARED"

        permits = await client.get("/api/permits/SHP-2025-0100")
        assert permits.json()["compliance_status"] == "compliant"

    async def test_unknown_permit_type_400(self, client):
        await _register(client)
        resp = await _upload(client, "SHP-2025-0100", "BOGUS")
        assert resp.status_code == 400
        assert resp.json()["error"] == "UnknownPermitType"

    async def test_invalid_format_recorded(self, client):
        await _register(client)
        resp = await _upload(client, "SHP-2025-0100", "AICA", filename="aica.exe")
        assert resp.status_code == 201
        assert resp.json()["is_valid"] is False
        assert resp.json()["validation_errors"]

    async def test_upload_with_expiry_date(self, client):
        await _register(client)
        resp = await _upload(client, "SHP-2025-0100", "STA_2010", expiry_date="2099-12-31")
        assert resp.status_code == 201

        permits = await client.get("/api/permits/SHP-2025-0100")
        assert permits.json()["uploaded_permits"][0]["expiry_date"] == "2099-12-31"

    async def test_permit_types(self, client):
        resp = await client.get("/api/permits/types")
        assert resp.status_code == 200
        codes = [p["code"] for p in resp.json()]
        assert codes == ["STA_2010", "AICA", "TechDocs", "SIRIM", "CyberSecurity"]

    async def test_explicit_check(self, client):
        await _register(client)
        resp = await client.post("/api/compliance/SHP-2025-0100/check")
        assert resp.status_code == 200
        assert resp.json()["export_permitted"] is True

    async def test_expiry_sweep_endpoint(self, client):
        resp = await client.post("/api/maintenance/expired-permits")
        assert resp.status_code == 200
        assert resp.json()["expired_permits"] == 0


@pytest.mark.asyncio
class TestReviewAndAuditAPI:
    async def test_review_override_flow(self, client, seeded_catalog, db_session, fake_embedder):
        from exportgate.services.catalog import CatalogService

        await CatalogService(db_session).upsert_entries([{"code": "5D002", "embedding": [0.0, 1.0, 0.0, 0.0]}])
        await _register(client)
        fake_embedder.vectors["military-grade"] = [0.0, 0.7, 0.7, 0.0]

        detect = await client.post("/api/strategic/detect", json={
            "shipment_id": "SHP-2025-0100",
            "items": [{"description": "Military-grade encryption module"}],
        })
        queue_id = detect.json()["results"][0]["review_queue_id"]
        assert queue_id

        pending = await client.get("/api/reviews", params={"shipment_id": "SHP-2025-0100"})
        assert [r["queue_id"] for r in pending.json()] == [queue_id]

        assigned = await client.put(f"/api/reviews/{queue_id}/assign", json={"reviewer": "rev@example.com"})
        assert assigned.json()["status"] == "in_review"

        decided = await client.put(f"/api/reviews/{queue_id}/decision", json={
            "decision": "overridden", "reviewer": "rev@example.com", "notes": "civilian product",
        })
        assert decided.status_code == 200
        assert decided.json()["decision"] == "overridden"

        compliance = await client.get("/api/compliance/SHP-2025-0100")
        assert compliance.json()["export_permitted"] is True

        again = await client.put(f"/api/reviews/{queue_id}/decision", json={
            "decision": "confirmed", "reviewer": "rev@example.com",
        })
        assert again.status_code == 409

    async def test_audit_list_and_integrity(self, client, seeded_catalog):
        await _register(client)
        await client.post("/api/strategic/detect", json={"shipment_id": "SHP-2025-0100", "items": [GPU_ITEM]})
        await _upload(client, "SHP-2025-0100", "STA_2010")

        resp = await client.get("/api/audit", params={"shipment_id": "SHP-2025-0100"})
        data = resp.json()
        assert data["total"] == 3
        assert [e["action_type"] for e in data["items"]] == ["PERMIT_UPLOAD", "COMPLIANCE_CHECK", "DETECTION"]

        filtered = await client.get("/api/audit", params={"action_type": "DETECTION"})
        assert len(filtered.json()["items"]) == 1

        integrity = await client.get("/api/audit/integrity")
        assert integrity.json()["valid"] is True
        assert integrity.json()["entries_checked"] == 3


@pytest.mark.asyncio
class TestCatalogAndMetrics:
    async def test_catalog_listing(self, client, seeded_catalog):
        resp = await client.get("/api/catalog")
        assert resp.status_code == 200
        codes = {e["code"] for e in resp.json()}
        assert {"3A001.a.1", "5A002.a", "5D002"} <= codes

    async def test_metrics_exposed(self, client):
        await client.get("/api/permits/types")
        resp = await client.get("/metrics")
        assert resp.status_code == 200
        assert "http_requests_total" in resp.text


@pytest.mark.asyncio
class TestRequestContext:
    async def test_request_id_propagated(self, client):
        resp = await client.get("/api/permits/types", headers={"X-Request-ID": "req-123"})
        assert resp.headers["X-Request-ID"] == "req-123"

        generated = await client.get("/api/permits/types")
        assert len(generated.headers["X-Request-ID"]) == 32


class TestJSONLogging:
    def test_formatter_includes_shipment_id(self):
        import json
        import logging

        from exportgate.middleware.logging_config import JSONFormatter

        record = logging.LogRecord("exportgate.test", logging.INFO, __file__, 1, "gate %s", ("ok",), None)
        record.shipment_id = "SHP-2025-0100"
        entry = json.loads(JSONFormatter().format(record))
        assert entry["message"] == "gate ok"
        assert entry["shipment_id"] == "SHP-2025-0100"
        assert entry["level"] == "INFO"


@pytest.mark.asyncio
class TestDetectionAfterPermits:
    async def test_detection_respects_existing_permits(self, client, seeded_catalog):
        await _register(client)
        for permit_type in ("STA_2010", "AICA", "TechDocs"):
            await _upload(client, "SHP-2025-0100", permit_type)

        resp = await client.post("/api/strategic/detect", json={"shipment_id": "SHP-2025-0100", "items": [GPU_ITEM]})
        data = resp.json()
        assert data["has_controlled_items"] is True
        assert data["export_permitted"] is True
        assert data["results"][0]["export_blocked"] is False

        status = await client.get("/api/strategic/status/SHP-2025-0100")
        assert status.json()["blocked_items"] == 0

    async def test_validation_is_post_only(self, client):
        await _register(client)
        assert (await client.get("/api/export/validation/SHP-2025-0100")).status_code == 405
        assert (await client.post("/api/export/validation/SHP-2025-0100")).json()["permitted"] is True


@pytest.mark.asyncio
class TestComplianceDashboardAPI:
    async def test_dashboard(self, client, seeded_catalog):
        await _register(client)
        await client.post("/api/strategic/detect", json={"shipment_id": "SHP-2025-0100", "items": [GPU_ITEM, TAPE_ITEM]})
        await _upload(client, "SHP-2025-0100", "STA_2010")

        resp = await client.get("/api/compliance/dashboard", params={"days": 7})
        assert resp.status_code == 200
        data = resp.json()
        assert data["period_days"] == 7
        assert data["totals"]["total_shipments"] == 1
        assert data["totals"]["total_strategic_items"] == 1
        assert data["totals"]["blocked_items"] == 1
        assert data["permit_breakdown"][0]["permit_type"] == "STA_2010"

    async def test_dashboard_window_validated(self, client):
        resp = await client.get("/api/compliance/dashboard", params={"days": 0})
        assert resp.status_code == 422

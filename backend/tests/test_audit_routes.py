"""
test_audit_routes.py — HTTP tests for the efficiency audit API.

Drives the FastAPI app in-process with TestClient; payloads use the
camelCase JSON the field app stores, to check alias handling end to end.
"""

import pytest


ACCESS_QUALITY = {
    "accessWidth": 6,
    "surfaceCondition": "Good",
    "drainageCulverts": "Functional",
    "escStatus": "In Place",
    "mattingIntegrity": "Good",
    "gateFenceSecurity": "Secure",
    "cleaningStationActive": "Yes",
    "waterbarsFunctional": "Yes",
}

SYNC_DELAY_BLOCK = {
    "id": "b-sync",
    "activityType": "Ditch",
    "labourEntries": [],
    "equipmentEntries": [
        {"type": "Backhoe", "hours": "10", "count": 1,
         "productionStatus": "SYNC_DELAY", "dragReason": "mechanical_breakdown"},
    ],
}


class TestServiceEndpoints:

    def test_health(self, api_client):
        response = api_client.get("/health")
        assert response.status_code == 200
        assert response.json()["status"] == "active"

    def test_request_headers(self, api_client):
        response = api_client.get("/api/audit/taxonomy")
        assert "X-Request-ID" in response.headers
        assert float(response.headers["X-Process-Time"]) >= 0
        assert response.headers["X-Content-Type-Options"] == "nosniff"

    def test_inbound_request_id_echoed(self, api_client):
        response = api_client.get("/api/audit/taxonomy", headers={"X-Request-ID": "trace-123"})
        assert response.headers["X-Request-ID"] == "trace-123"

    def test_metrics_counts_audited_blocks(self, api_client):
        api_client.post("/api/audit/block-summary", json={"block": SYNC_DELAY_BLOCK})
        body = api_client.get("/metrics").json()
        assert body["blocks_audited"] == 1
        assert "uptime_seconds" in body
        assert "operation_avg_durations_ms" in body


class TestTaxonomyRoute:

    def test_catalog_sizes(self, api_client):
        body = api_client.get("/api/audit/taxonomy").json()
        assert [s["code"] for s in body["production_statuses"]] == ["ACTIVE", "SYNC_DELAY", "MANAGEMENT_DRAG"]
        assert len(body["delay_reasons"]) == 22
        assert len(body["activity_types"]) == 28

    def test_reason_metadata(self, api_client):
        reasons = {r["code"]: r for r in api_client.get("/api/audit/taxonomy").json()["delay_reasons"]}
        weather = reasons["extreme_weather"]
        assert weather["responsible_party"] == "neutral"
        assert weather["lock_systemic"] is True


class TestBlockSummaryRoute:

    def test_camel_case_block(self, api_client):
        """Equipment 10 h SYNC_DELAY at 150 → lost 450, charged to the contractor."""
        response = api_client.post("/api/audit/block-summary", json={"block": SYNC_DELAY_BLOCK})
        assert response.status_code == 200
        body = response.json()
        assert body["summary"]["total_billed_hours"] == 10.0
        assert body["summary"]["total_shadow_hours"] == 7.0
        assert body["summary"]["inertia_ratio"] == 70.0
        assert body["summary"]["total_value_lost"] == 450.0
        assert body["summary"]["delay_type"] == "ASSET_SPECIFIC"
        assert body["value_lost_by_party"]["contractor"] == 450.0

    def test_selection_problems(self, api_client):
        """Mechanical breakdown on Standby / Partial Work needs a note."""
        body = api_client.post("/api/audit/block-summary", json={"block": SYNC_DELAY_BLOCK}).json()
        assert len(body["selection_problems"]) == 1
        assert body["selection_problems"][0].startswith("Equipment Backhoe:")

    def test_rate_tables(self, api_client):
        """Backhoe at 200 → (10 − 7) × 200 = 600."""
        response = api_client.post("/api/audit/block-summary", json={
            "block": SYNC_DELAY_BLOCK,
            "equipmentRates": {"Backhoe": 200},
        })
        assert response.json()["summary"]["total_value_lost"] == 600.0

    def test_snake_case_block(self, api_client):
        block = {
            "labour_entries": [{"rt": 8, "count": 1}],
            "equipment_entries": [{"hours": 8, "count": 1}],
            "systemic_delay": {"active": True, "status": "MANAGEMENT_DRAG", "reason": "extreme_weather"},
        }
        body = api_client.post("/api/audit/block-summary", json={"block": block}).json()
        assert body["summary"]["delay_type"] == "SYSTEMIC"
        assert body["summary"]["total_value_lost"] == 3760.0
        assert body["value_lost_by_party"]["neutral"] == 3760.0

    def test_invalid_default_rate_rejected(self, api_client):
        response = api_client.post("/api/audit/block-summary", json={
            "block": SYNC_DELAY_BLOCK,
            "defaultLabourRate": 0,
        })
        assert response.status_code == 422

    def test_wrong_shape_rejected(self, api_client):
        response = api_client.post("/api/audit/block-summary", json={"block": {"labourEntries": "eight hours"}})
        assert response.status_code == 422


class TestPortfolioRoute:

    def test_portfolio_with_persisted_summary_and_evm(self, api_client):
        """
        Report 1 (03-01): persisted summary, 8 h billed / 4 shadow / $340.
        Report 2 (03-02): sync delay block recomputed, $450.
        """
        payload = {
            "reports": [
                {"id": "r1", "date": "2026-03-01", "spread": "Spread 1", "activityBlocks": [{
                    "id": "b-persisted",
                    "shadowAuditSummary": {
                        "totalBilledHours": 8, "totalShadowHours": 4,
                        "totalValueLost": 340, "delayType": "ASSET_SPECIFIC",
                    },
                }]},
                {"id": "r2", "date": "2026-03-02", "spread": "Spread 1", "activityBlocks": [SYNC_DELAY_BLOCK]},
            ],
            "evmPoints": [
                {"date": "2026-03-01", "actualCost": 1000},
                {"date": "2026-03-02", "actualCost": 2000},
            ],
        }
        response = api_client.post("/api/audit/portfolio", json=payload)
        assert response.status_code == 200
        body = response.json()
        assert body["total_billed_hours"] == 18.0
        assert body["total_value_lost"] == 790.0
        assert body["asset_delay_count"] == 2
        assert [d["date"] for d in body["daily_trend"]] == ["2026-03-01", "2026-03-02"]
        assert body["reliability"]["true_cost_of_completion"] == 790.0
        assert body["shadow_evm"][0]["vaac"] == 660.0
        assert body["shadow_evm"][1]["value_lost"] == 790.0
        assert body["shadow_evm"][1]["vaac"] == 1210.0

    def test_empty_portfolio(self, api_client):
        body = api_client.post("/api/audit/portfolio", json={}).json()
        assert body["block_count"] == 0
        assert "shadow_evm" not in body


class TestReliabilityRoute:

    def test_per_block_and_aggregate(self, api_client):
        block = {
            "id": "weld-1",
            "activityType": "Welding - Mainline",
            "startKP": "10+000",
            "endKP": "10+100",
            "labourEntries": [{"classification": "Welder", "rt": 10}],
        }
        response = api_client.post("/api/audit/reliability", json={"blocks": [block]})
        assert response.status_code == 200
        body = response.json()
        assert body["blocks"][0]["block_id"] == "weld-1"
        assert body["blocks"][0]["verification"]["alerts"][0]["type"] == "PRODUCTIVITY_DRAG"
        assert body["blocks"][0]["reliability_score"]["status"] == "RED"
        assert body["verification"]["overall_reliability"] == "REVIEW_NEEDED"
        assert body["reliability_score"]["block_count"] == 1

    def test_production_target_override(self, api_client):
        block = {
            "activityType": "Welding - Mainline",
            "startKP": "10+000",
            "endKP": "10+100",
            "labourEntries": [{"rt": 10}],
        }
        body = api_client.post("/api/audit/reliability", json={
            "blocks": [block], "productionTargets": {"Welding - Mainline": 100},
        }).json()
        assert body["blocks"][0]["verification"]["alerts"] == []
        assert body["verification"]["overall_reliability"] == "RELIABLE"


class TestHealthScoreRoute:

    def test_clean_report(self, api_client):
        payload = {
            "activityBlocks": [
                {"activityType": "Grading", "startKP": "0+000", "endKP": "1+000",
                 "labourEntries": [{"rt": 8}], "equipmentEntries": [{"hours": 8}]},
                {"activityType": "Access", "startKP": "0+000", "endKP": "0+500",
                 "labourEntries": [{"rt": 8}], "equipmentEntries": [{"hours": 8}],
                 "qualityData": ACCESS_QUALITY},
            ],
            "mentorAlerts": [],
        }
        body = api_client.post("/api/audit/health-score", json=payload).json()
        assert body["score"] == 100.0
        assert body["passing"] is True
        assert body["threshold"] == 90.0

    def test_report_threshold_and_alerts(self, api_client):
        """One of two alerts active → alert category 50 → 95 overall, below a 96 threshold."""
        payload = {
            "activityBlocks": [],
            "reportData": {"healthScoreThreshold": 96},
            "mentorAlerts": [{"status": "active"}, {"status": "acknowledged"}],
        }
        body = api_client.post("/api/audit/health-score", json=payload).json()
        assert body["details"]["mentor_alert_resolution"]["score"] == 50
        assert body["score"] == 95.0
        assert body["threshold"] == 96.0
        assert body["passing"] is False

    @pytest.mark.parametrize("payload", [
        {"activityBlocks": "none"},
        {"mentorAlerts": {"status": "active"}},
    ])
    def test_wrong_shape_rejected(self, api_client, payload):
        assert api_client.post("/api/audit/health-score", json=payload).status_code == 422

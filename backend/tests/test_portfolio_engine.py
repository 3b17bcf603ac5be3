"""
test_portfolio_engine.py — Unit tests for PortfolioEngine, SummaryCache and
the shadow EVM helpers.

Tests cover:
  - aggregate_reports: totals, delay counts, reason and party breakdowns,
    spread comparison ordering, daily trend ordering, true cost of completion
  - summary_for: cache first, persisted snapshot second, recompute last
  - SummaryCache: get / put / get_or_compute / invalidate / clear
  - calculate_vaac and generate_shadow_evm_data

All tests are pure unit tests; no database or external services required.
"""

import pytest

from app.services.portfolio_engine import (
    PortfolioEngine,
    SummaryCache,
    calculate_vaac,
    generate_shadow_evm_data,
)


@pytest.fixture
def unreasoned_systemic_block():
    """Labour rt=10 under a block-wide SYNC_DELAY with no reason: lost 3 × 85 = 255."""
    return {
        "id": "blk-unreasoned",
        "labour_entries": [{"classification": "Labourer", "rt": 10, "count": 1}],
        "systemic_delay": {"active": True, "status": "SYNC_DELAY"},
    }


@pytest.fixture
def reports(sync_delay_block, systemic_weather_block, simple_labour_block, unreasoned_systemic_block):
    """
    Spread 1 / 03-02: sync delay (10 → 7, $450) + weather (16 → 0, $3760)
    Spread 2 / 03-01: simple labour (20 → 20)
    no spread / 03-02: unreasoned systemic (10 → 7, $255)
    """
    return [
        {"id": "r1", "date": "2026-03-02", "spread": "Spread 1",
         "activity_blocks": [sync_delay_block, systemic_weather_block]},
        {"id": "r2", "date": "2026-03-01", "spread": "Spread 2",
         "activity_blocks": [simple_labour_block]},
        {"id": "r3", "date": "2026-03-02", "spread": None,
         "activity_blocks": [unreasoned_systemic_block]},
    ]


# ===========================================================================
# Class 1: aggregate_reports
# ===========================================================================

class TestAggregateReports:

    def test_totals(self, portfolio_engine, reports):
        """billed 10+16+20+10 = 56, shadow 7+0+20+7 = 34, lost 450+3760+255 = 4465."""
        result = portfolio_engine.aggregate_reports(reports)
        assert result["total_billed_hours"] == 56.0
        assert result["total_shadow_hours"] == 34.0
        assert result["total_value_lost"] == 4465.0
        assert result["overall_inertia_ratio"] == pytest.approx(60.7)
        assert result["report_count"] == 3
        assert result["block_count"] == 4

    def test_delay_counts(self, portfolio_engine, reports):
        result = portfolio_engine.aggregate_reports(reports)
        assert result["systemic_delay_count"] == 2
        assert result["asset_delay_count"] == 1

    def test_reason_breakdown(self, portfolio_engine, reports):
        result = portfolio_engine.aggregate_reports(reports)
        assert result["delay_reason_breakdown"] == {"extreme_weather": 3760.0, "unspecified": 255.0}

    def test_party_breakdown(self, portfolio_engine, reports):
        """Weather is neutral; untagged delays land in unknown (450 + 255)."""
        party = portfolio_engine.aggregate_reports(reports)["party_breakdown"]
        assert party["neutral"] == 3760.0
        assert party["unknown"] == 705.0
        assert party["owner"] == 0.0
        assert party["contractor"] == 0.0
        assert party["total"] == 4465.0

    def test_spread_comparison_worst_first(self, portfolio_engine, reports):
        """Spread 1: 7/26 = 26.9 %, Unknown: 70 %, Spread 2: 100 %."""
        spreads = portfolio_engine.aggregate_reports(reports)["spread_comparison"]
        assert [s["spread"] for s in spreads] == ["Spread 1", "Unknown", "Spread 2"]
        assert spreads[0]["inertia_ratio"] == pytest.approx(26.9)
        assert spreads[0]["systemic_count"] == 1
        assert spreads[0]["asset_count"] == 1
        assert spreads[0]["value_lost"] == 4210.0

    def test_daily_trend_sorted_by_date(self, portfolio_engine, reports):
        trend = portfolio_engine.aggregate_reports(reports)["daily_trend"]
        assert [d["date"] for d in trend] == ["2026-03-01", "2026-03-02"]
        assert trend[0]["inertia_ratio"] == 100.0
        assert trend[1]["billed"] == 36.0
        assert trend[1]["shadow"] == 14.0
        assert trend[1]["value_lost"] == 4465.0

    def test_true_cost_of_completion(self, portfolio_engine, reports):
        """No rework signals in these blocks → true cost equals value lost."""
        reliability = portfolio_engine.aggregate_reports(reports)["reliability"]
        assert reliability["total_rework_cost"] == 0.0
        assert reliability["true_cost_of_completion"] == 4465.0

    def test_true_cost_includes_rework(self, portfolio_engine):
        """
        Welding, 10 joints with 4 repairs, 10 h at 85: rework = 0.4 × 10 × 85 × 3.0 × 0.1 = 102.
        No delays → value lost 0 → true cost 102.
        """
        block = {
            "id": "weld-1",
            "activity_type": "Welding - Mainline",
            "labour_entries": [{"rt": 10}],
            "weld_data": {"joint_numbers": list(range(10)), "repair_joints": [1, 2, 3, 4]},
        }
        result = portfolio_engine.aggregate_reports([{"date": "2026-03-03", "activity_blocks": [block]}])
        assert result["reliability"]["true_cost_of_completion"] == pytest.approx(102.0)

    def test_empty_input(self, portfolio_engine):
        result = portfolio_engine.aggregate_reports([])
        assert result["overall_inertia_ratio"] == 100.0
        assert result["spread_comparison"] == []
        assert result["daily_trend"] == []
        assert result["reliability"]["overall_reliability"] == "RELIABLE"

    def test_junk_reports_are_skipped(self, portfolio_engine, simple_labour_block):
        result = portfolio_engine.aggregate_reports([
            None,
            {"date": "2026-03-01", "activity_blocks": None},
            {"date": "2026-03-01", "activity_blocks": ["junk", simple_labour_block]},
        ])
        assert result["block_count"] == 1
        assert result["total_billed_hours"] == 20.0


# ===========================================================================
# Class 2: Summary sources
# ===========================================================================

class TestSummarySources:

    def test_persisted_summary_is_honoured(self, portfolio_engine):
        block = {
            "id": "persisted-1",
            "labour_entries": [],
            "shadow_audit_summary": {
                "total_billed_hours": 8,
                "total_shadow_hours": 4,
                "total_value_lost": 340,
                "delay_type": "ASSET_SPECIFIC",
            },
        }
        summary = portfolio_engine.summary_for(block)
        assert summary["total_billed_hours"] == 8.0
        assert summary["total_value_lost"] == 340.0
        assert summary["delay_type"] == "ASSET_SPECIFIC"

    def test_empty_persisted_summary_is_recomputed(self, portfolio_engine, simple_labour_block):
        simple_labour_block["shadow_audit_summary"] = {"total_billed_hours": None}
        assert portfolio_engine.summary_for(simple_labour_block)["total_billed_hours"] == 20.0

    def test_cache_wins(self, portfolio_engine, simple_labour_block):
        portfolio_engine.cache.put(simple_labour_block["id"], {
            "total_billed_hours": 1.0, "total_shadow_hours": 1.0, "inertia_ratio": 100.0,
            "total_value_lost": 0.0, "delay_type": "NONE", "block_burn_rate": 0.0, "systemic_delay": None,
        })
        assert portfolio_engine.summary_for(simple_labour_block)["total_billed_hours"] == 1.0

    def test_recompute_after_invalidate(self, portfolio_engine, simple_labour_block):
        first = portfolio_engine.summary_for(simple_labour_block)
        simple_labour_block["labour_entries"][0]["rt"] = 10
        assert portfolio_engine.summary_for(simple_labour_block) is first
        portfolio_engine.cache.invalidate(simple_labour_block["id"])
        assert portfolio_engine.summary_for(simple_labour_block)["total_billed_hours"] == 24.0

    def test_same_block_id_in_two_reports(self, portfolio_engine):
        """
        Report A: block 1, labour rt=8 → 8 billed, nothing lost.
        Report B: block 1, equipment 10 h standby → 10 billed, 10 × 150 = 1500 lost.
        """
        reports = [
            {"id": "A", "date": "2026-03-01", "activity_blocks": [
                {"id": 1, "labour_entries": [{"rt": 8}]},
            ]},
            {"id": "B", "date": "2026-03-02", "activity_blocks": [
                {"id": 1, "equipment_entries": [{"hours": 10, "production_status": "MANAGEMENT_DRAG"}]},
            ]},
        ]
        result = portfolio_engine.aggregate_reports(reports)
        assert result["total_billed_hours"] == 18.0
        assert result["total_value_lost"] == 1500.0
        assert result["party_breakdown"]["total"] == result["total_value_lost"]
        assert result["asset_delay_count"] == 1

    def test_duplicate_block_id_within_report(self, portfolio_engine):
        """Two different blocks sharing id 7 in one report are both counted: 8 + 10 = 18."""
        report = {"id": "r1", "date": "2026-03-01", "activity_blocks": [
            {"id": 7, "labour_entries": [{"rt": 8}]},
            {"id": 7, "equipment_entries": [{"hours": 10, "production_status": "SYNC_DELAY"}]},
        ]}
        result = portfolio_engine.aggregate_reports([report])
        assert result["total_billed_hours"] == 18.0
        assert result["total_value_lost"] == 450.0
        assert result["party_breakdown"]["total"] == 450.0

    def test_statusless_systemic_block_counts_as_systemic(self, portfolio_engine):
        """Override active with no status: SYSTEMIC, lost 0, reason bucket still recorded."""
        block = {
            "id": "b1",
            "labour_entries": [{"rt": 8}],
            "systemic_delay": {"active": True, "reason": "extreme_weather"},
        }
        result = portfolio_engine.aggregate_reports([{"id": "r1", "date": "2026-03-01", "activity_blocks": [block]}])
        assert result["systemic_delay_count"] == 1
        assert result["delay_reason_breakdown"] == {"extreme_weather": 0.0}

    def test_aggregate_value_lost_by_party(self, portfolio_engine, sync_delay_block, systemic_weather_block):
        result = portfolio_engine.aggregate_value_lost_by_party([sync_delay_block, systemic_weather_block, None])
        assert result["unknown"] == 450.0
        assert result["neutral"] == 3760.0
        assert result["total"] == 4210.0


# ===========================================================================
# Class 3: SummaryCache
# ===========================================================================

class TestSummaryCache:

    def test_put_get_len(self):
        cache = SummaryCache()
        cache.put("a", {"x": 1})
        cache.put(7, {"x": 2})
        assert cache.get("a") == {"x": 1}
        assert cache.get("7") == {"x": 2}
        assert len(cache) == 2

    def test_entries_scoped_by_report(self):
        cache = SummaryCache()
        cache.put(1, {"x": "A"}, report_id="A")
        cache.put(1, {"x": "B"}, report_id="B")
        assert cache.get(1, "A") == {"x": "A"}
        assert cache.get(1, "B") == {"x": "B"}
        assert cache.get(1) is None
        assert len(cache) == 2
        assert cache.invalidate(1, "A") is True
        assert cache.get(1, "B") == {"x": "B"}

    def test_none_id_is_never_cached(self):
        cache = SummaryCache()
        cache.put(None, {"x": 1})
        assert cache.get(None) is None
        assert len(cache) == 0

    def test_get_or_compute_calls_once(self):
        cache = SummaryCache()
        calls = []

        def compute():
            calls.append(1)
            return {"x": len(calls)}

        assert cache.get_or_compute("a", compute) == {"x": 1}
        assert cache.get_or_compute("a", compute) == {"x": 1}
        assert len(calls) == 1

    def test_invalidate_and_clear(self):
        cache = SummaryCache()
        cache.put("a", {})
        cache.put("b", {})
        assert cache.invalidate("a") is True
        assert cache.invalidate("a") is False
        cache.clear()
        assert len(cache) == 0


# ===========================================================================
# Class 4: Shadow EVM
# ===========================================================================

class TestShadowEvm:

    def test_vaac(self):
        assert calculate_vaac(1000, 300) == 700.0
        assert calculate_vaac(100, 300) == 0.0
        assert calculate_vaac(None, "junk") == 0.0

    def test_shadow_evm_series(self):
        """Value lost accumulates: 03-01 → 100, 03-02 → 300."""
        evm = [
            {"date": "2026-03-01", "planned_value": 1200, "actual_cost": 1000},
            {"date": "2026-03-02", "planned_value": 2400, "actual_cost": 2500},
        ]
        efficiency = [
            {"date": "2026-03-01", "value_lost": 100},
            {"date": "2026-03-02", "value_lost": 200},
        ]
        result = generate_shadow_evm_data(evm, efficiency)
        assert result[0]["vaac"] == 900.0
        assert result[0]["efficiency_gap"] == 100.0
        assert result[1]["value_lost"] == 300.0
        assert result[1]["vaac"] == 2200.0
        assert result[1]["planned_value"] == 2400

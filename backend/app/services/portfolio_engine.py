"""
portfolio_engine.py — Cross-block / cross-report efficiency roll-up

Covers:
  - Grand totals of billed hours, shadow hours, value lost
  - SYSTEMIC vs ASSET_SPECIFIC delay counts
  - Value lost by systemic delay reason and by responsible party
  - Spread comparison (worst inertia ratio first) and daily trend
  - Reliability verification folded in as True Cost of Completion
  - Shadow EVM: Value-Adjusted Actual Cost alongside the standard AC line

Summaries are memoised in an explicit ``SummaryCache`` keyed by report
and block id; a ``shadow_audit_summary`` already persisted on a block is
honoured, and anything else is recomputed on demand.
"""

from typing import Any, Callable, Dict, List, Optional, Tuple
import logging
import threading

from app.models.taxonomy import DelayType, ResponsibleParty
from app.services.perf_monitor import timed
from app.services.reliability_engine import ReliabilityEngine
from app.services.shadow_audit_engine import ShadowAuditEngine, safe_float

logger = logging.getLogger("pipeaudit-portfolio")

UNSPECIFIED_REASON = "unspecified"
UNKNOWN_SPREAD = "Unknown"


# ---------------------------------------------------------------------------
# Summary cache
# ---------------------------------------------------------------------------

class SummaryCache:
    """
    Thread-safe memo of shadow audit summaries keyed by a stable block id,
    scoped by the owning report id when one is given.

    Lives beside the block data rather than inside it; blocks without an id
    are never cached.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._entries: Dict[Tuple[Optional[str], str], Dict[str, Any]] = {}

    @staticmethod
    def _key(block_id: Any, report_id: Any = None) -> Tuple[Optional[str], str]:
        return (None if report_id is None else str(report_id), str(block_id))

    def get(self, block_id: Any, report_id: Any = None) -> Optional[Dict[str, Any]]:
        if block_id is None:
            return None
        with self._lock:
            return self._entries.get(self._key(block_id, report_id))

    def put(self, block_id: Any, summary: Dict[str, Any], report_id: Any = None) -> None:
        if block_id is None:
            return
        with self._lock:
            self._entries[self._key(block_id, report_id)] = summary

    def get_or_compute(
        self, block_id: Any, compute: Callable[[], Dict[str, Any]], report_id: Any = None
    ) -> Dict[str, Any]:
        cached = self.get(block_id, report_id)
        if cached is not None:
            return cached
        summary = compute()
        self.put(block_id, summary, report_id)
        return summary

    def invalidate(self, block_id: Any, report_id: Any = None) -> bool:
        """Drop one entry (e.g. after the block is edited). Returns True if it existed."""
        if block_id is None:
            return False
        with self._lock:
            return self._entries.pop(self._key(block_id, report_id), None) is not None

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


# ---------------------------------------------------------------------------
# Shadow EVM helpers
# ---------------------------------------------------------------------------

def calculate_vaac(actual_cost: Any, value_lost: Any) -> float:
    """Value-Adjusted Actual Cost: what the work would have cost at 100 % efficiency."""
    return max(0.0, safe_float(actual_cost) - safe_float(value_lost))


def generate_shadow_evm_data(
    evm_points: List[Dict[str, Any]], efficiency_points: List[Dict[str, Any]]
) -> List[Dict[str, Any]]:
    """
    Add ``vaac``, cumulative ``value_lost`` and ``efficiency_gap`` to each EVM point.

    ``efficiency_points`` are ``{date, value_lost}`` rows in date order; the
    value lost is accumulated so each EVM date sees the running total.
    """
    cumulative = 0.0
    lost_by_date: Dict[Any, float] = {}
    for point in efficiency_points or []:
        cumulative += safe_float(point.get("value_lost"))
        lost_by_date[point.get("date")] = cumulative

    result = []
    for point in evm_points or []:
        actual = safe_float(point.get("actual_cost"))
        lost_to_date = lost_by_date.get(point.get("date"), 0.0)
        vaac = calculate_vaac(actual, lost_to_date)
        result.append({
            **point,
            "vaac": round(vaac, 2),
            "value_lost": round(lost_to_date, 2),
            "efficiency_gap": round(actual - vaac, 2),
        })
    return result


def _inertia(billed: float, shadow: float) -> float:
    return shadow / billed * 100 if billed > 0 else 100.0


def _normalise_summary(summary: Dict[str, Any]) -> Dict[str, Any]:
    """Coerce a persisted summary snapshot to the computed shape."""
    delay_type = summary.get("delay_type")
    if delay_type not in {d.value for d in DelayType}:
        delay_type = DelayType.NONE.value
    systemic = summary.get("systemic_delay")
    return {
        "total_billed_hours": safe_float(summary.get("total_billed_hours")),
        "total_shadow_hours": safe_float(summary.get("total_shadow_hours")),
        "inertia_ratio": safe_float(summary.get("inertia_ratio"), 100.0),
        "total_value_lost": safe_float(summary.get("total_value_lost")),
        "delay_type": delay_type,
        "block_burn_rate": safe_float(summary.get("block_burn_rate")),
        "systemic_delay": systemic if isinstance(systemic, dict) else None,
    }


# ---------------------------------------------------------------------------
# PortfolioEngine
# ---------------------------------------------------------------------------

class PortfolioEngine:
    """Aggregates shadow audit metrics over many reports for dashboards."""

    def __init__(
        self,
        shadow_engine: Optional[ShadowAuditEngine] = None,
        reliability_engine: Optional[ReliabilityEngine] = None,
        cache: Optional[SummaryCache] = None,
    ) -> None:
        self.shadow_engine = shadow_engine or ShadowAuditEngine()
        self.reliability_engine = reliability_engine or ReliabilityEngine(self.shadow_engine)
        self.cache = cache if cache is not None else SummaryCache()

    def summary_for(
        self, block: Dict[str, Any], report_id: Any = None, use_cache: bool = True
    ) -> Dict[str, Any]:
        """
        Cached summary, else the block's persisted snapshot, else a fresh computation.

        The cache key is (report_id, block id).  ``use_cache=False`` bypasses
        the memo entirely, for a block whose key is already taken by another block.
        """
        def compute() -> Dict[str, Any]:
            persisted = block.get("shadow_audit_summary")
            if isinstance(persisted, dict) and persisted.get("total_billed_hours") is not None:
                return _normalise_summary(persisted)
            return self.shadow_engine.summarize_block(block)

        if not use_cache:
            return compute()
        return self.cache.get_or_compute(block.get("id"), compute, report_id)

    def aggregate_value_lost_by_party(self, blocks: List[Dict[str, Any]]) -> Dict[str, float]:
        result = {party.value: 0.0 for party in ResponsibleParty}
        result["total"] = 0.0
        for block in blocks or []:
            if not isinstance(block, dict):
                continue
            for key, value in self.shadow_engine.value_lost_by_party(block).items():
                result[key] += value
        return {k: round(v, 2) for k, v in result.items()}

    @timed
    def aggregate_reports(self, reports: List[Dict[str, Any]]) -> Dict[str, Any]:
        """
        Portfolio metrics over reports of the form
        ``{id, date, spread, activity_blocks: [...]}``.

        Returns totals, delay counts, delay_reason_breakdown, party_breakdown,
        spread_comparison (ascending inertia ratio, worst first), daily_trend
        (ascending date) and reliability with true_cost_of_completion.
        """
        total_billed = 0.0
        total_shadow = 0.0
        total_lost = 0.0
        systemic_count = 0
        asset_count = 0
        reason_breakdown: Dict[str, float] = {}
        spreads: Dict[str, Dict[str, float]] = {}
        daily: Dict[str, Dict[str, float]] = {}
        all_blocks: List[Dict[str, Any]] = []
        # (report id, block id) → the block that claimed it in this call
        claimed: Dict[Tuple[str, str], Dict[str, Any]] = {}

        for report in reports or []:
            if not isinstance(report, dict):
                continue
            blocks = [b for b in report.get("activity_blocks") or [] if isinstance(b, dict)]
            spread = report.get("spread") or UNKNOWN_SPREAD
            date = str(report.get("date") or "")
            report_id = report.get("id")
            all_blocks.extend(blocks)

            for block in blocks:
                block_id = block.get("id")
                owner = block if block_id is None else claimed.setdefault((str(report_id), str(block_id)), block)
                if owner is not block:
                    logger.warning(
                        f"Duplicate block id {block_id!r} in report {report_id!r}; "
                        f"summarising it without the cache"
                    )
                summary = self.summary_for(block, report_id, use_cache=owner is block)
                billed = summary["total_billed_hours"]
                shadow = summary["total_shadow_hours"]
                lost = summary["total_value_lost"]
                delay_type = summary["delay_type"]

                total_billed += billed
                total_shadow += shadow
                total_lost += lost

                row = spreads.setdefault(spread, {
                    "billed": 0.0, "shadow": 0.0, "value_lost": 0.0,
                    "systemic_count": 0, "asset_count": 0,
                })
                row["billed"] += billed
                row["shadow"] += shadow
                row["value_lost"] += lost

                if delay_type == DelayType.SYSTEMIC.value:
                    systemic_count += 1
                    row["systemic_count"] += 1
                    reason = (summary.get("systemic_delay") or {}).get("reason") or UNSPECIFIED_REASON
                    reason_breakdown[reason] = reason_breakdown.get(reason, 0.0) + lost
                elif delay_type == DelayType.ASSET_SPECIFIC.value:
                    asset_count += 1
                    row["asset_count"] += 1

                day = daily.setdefault(date, {"billed": 0.0, "shadow": 0.0, "value_lost": 0.0})
                day["billed"] += billed
                day["shadow"] += shadow
                day["value_lost"] += lost

        spread_comparison = [
            {
                "spread": name,
                "billed": round(data["billed"], 2),
                "shadow": round(data["shadow"], 2),
                "value_lost": round(data["value_lost"], 2),
                "systemic_count": data["systemic_count"],
                "asset_count": data["asset_count"],
                "inertia_ratio": round(_inertia(data["billed"], data["shadow"]), 1),
            }
            for name, data in spreads.items()
        ]
        spread_comparison.sort(key=lambda s: (s["inertia_ratio"], -s["value_lost"], s["spread"]))

        daily_trend = [
            {
                "date": date,
                "billed": round(data["billed"], 2),
                "shadow": round(data["shadow"], 2),
                "value_lost": round(data["value_lost"], 2),
                "inertia_ratio": round(_inertia(data["billed"], data["shadow"]), 1),
            }
            for date, data in sorted(daily.items())
        ]

        reliability = self.reliability_engine.aggregate_efficiency_verification(all_blocks)
        reliability["true_cost_of_completion"] = round(total_lost + reliability["total_rework_cost"], 2)

        logger.info(
            f"Portfolio: {len(all_blocks)} blocks across {len(spreads)} spreads, "
            f"value lost ${total_lost:,.2f}, {systemic_count} systemic / {asset_count} asset delays"
        )

        return {
            "total_billed_hours": round(total_billed, 2),
            "total_shadow_hours": round(total_shadow, 2),
            "total_value_lost": round(total_lost, 2),
            "overall_inertia_ratio": round(_inertia(total_billed, total_shadow), 1),
            "systemic_delay_count": systemic_count,
            "asset_delay_count": asset_count,
            "delay_reason_breakdown": {k: round(v, 2) for k, v in reason_breakdown.items()},
            "party_breakdown": self.aggregate_value_lost_by_party(all_blocks),
            "spread_comparison": spread_comparison,
            "daily_trend": daily_trend,
            "reliability": reliability,
            "report_count": len([r for r in reports or [] if isinstance(r, dict)]),
            "block_count": len(all_blocks),
        }

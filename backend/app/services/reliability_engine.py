"""
Reliability verification: protection against gaming the inertia ratio.

Cross-references three independent signals per activity block:
  I_R  inertia ratio      (time efficiency, self-reported via production status)
  L_M  linear metres      (physical output, from KP range or activity data)
  Q_R  quality pass rate  (weld repairs, inspection checks, coating holidays)

Hours billed as "full production" with disproportionately low output, or
with poor quality, are flagged.  Rework cost estimated from failed work is
added to value lost to give the True Cost of Completion.

A check whose signal is missing (no metres recorded, no quality data) is
skipped rather than penalised.
"""
from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from app.services import audit_config as cfg
from app.services.perf_monitor import timed
from app.services.shadow_audit_engine import (
    ShadowAuditEngine,
    calculate_inertia_ratio,
    calculate_total_billed_hours,
    calculate_total_shadow_hours,
    parse_kp_to_metres,
    safe_float,
)

logger = logging.getLogger("pipeaudit-reliability")

RELIABLE = "RELIABLE"
REVIEW_NEEDED = "REVIEW_NEEDED"
QUESTIONABLE = "QUESTIONABLE"
UNRELIABLE = "UNRELIABLE"

GREEN = "GREEN"
AMBER = "AMBER"
RED = "RED"

_PASS_VALUES = {"pass", "yes", "compliant"}
_FAIL_VALUES = {"fail", "no", "non-compliant"}

_STATUS_LABELS = {
    GREEN: ("Reliable", "Metrics align with physical progress"),
    AMBER: ("Review Needed", "Metrics require verification"),
    RED: ("Alert", "High rework rates or metric misalignment"),
}


def _as_dict(value: Any) -> Dict[str, Any]:
    return value if isinstance(value, dict) else {}


def _list_len(value: Any) -> int:
    return len(value) if isinstance(value, list) else 0


class ReliabilityEngine:
    """Triangulates time, output and quality signals for activity blocks."""

    def __init__(
        self,
        shadow_engine: Optional[ShadowAuditEngine] = None,
        production_targets: Optional[Dict[str, float]] = None,
        rework_multipliers: Optional[Dict[str, float]] = None,
    ) -> None:
        self.shadow_engine = shadow_engine or ShadowAuditEngine()
        self.production_targets = {**cfg.DAILY_PRODUCTION_TARGETS, **(production_targets or {})}
        self.rework_multipliers = {**cfg.REWORK_COST_MULTIPLIERS, **(rework_multipliers or {})}

    # -----------------------------------------------------------------------
    # Signals
    # -----------------------------------------------------------------------

    def daily_target(self, activity_type: Any, planned: Any = None) -> float:
        planned_target = safe_float(planned)
        if planned_target > 0:
            return planned_target
        return float(self.production_targets.get(activity_type, cfg.DEFAULT_DAILY_PRODUCTION_TARGET))

    def linear_metres(self, block: Dict[str, Any]) -> float:
        """
        Linear metres achieved.

        Source order: KP range, weld joint count × 12 m, pipe tallied,
        ditch length.  Returns 0 when none is recorded.
        """
        start = parse_kp_to_metres(block.get("start_kp"))
        end = parse_kp_to_metres(block.get("end_kp"))
        if start is not None and end is not None:
            return abs(end - start)

        joints = _list_len(_as_dict(block.get("weld_data")).get("joint_numbers"))
        if joints > 0:
            return joints * cfg.METRES_PER_JOINT

        tallied = safe_float(_as_dict(block.get("string_data")).get("pipe_tallied"))
        if tallied > 0:
            return tallied

        ditch_length = safe_float(_as_dict(block.get("ditch_data")).get("total_length"))
        if ditch_length > 0:
            return ditch_length

        return 0.0

    def quality_pass_rate(self, block: Dict[str, Any]) -> float:
        """Pass rate 0-100 across weld, inspection-field and coating signals; 100 with no data."""
        total_checks = 0.0
        passed_checks = 0.0

        weld = _as_dict(block.get("weld_data"))
        total_joints = _list_len(weld.get("joint_numbers"))
        if total_joints > 0:
            total_checks += total_joints
            passed_checks += total_joints - _list_len(weld.get("repair_joints"))

        for value in _as_dict(block.get("quality_data")).values():
            if isinstance(value, bool):
                total_checks += 1
                passed_checks += 1 if value else 0
            elif isinstance(value, str) and value in _PASS_VALUES:
                total_checks += 1
                passed_checks += 1
            elif isinstance(value, str) and value in _FAIL_VALUES:
                total_checks += 1

        coating = _as_dict(block.get("coating_data"))
        holidays_found = safe_float(coating.get("holidays_found"))
        if holidays_found > 0:
            total_checks += holidays_found
            passed_checks += safe_float(coating.get("holidays_repaired"))

        if total_checks == 0:
            return 100.0
        return max(0.0, min(100.0, passed_checks / total_checks * 100))

    # -----------------------------------------------------------------------
    # Per-block verification
    # -----------------------------------------------------------------------

    def verify_efficiency(
        self, block: Dict[str, Any], planned_daily_target: Any = None
    ) -> Dict[str, Any]:
        """
        Verify one block's efficiency claim against output and quality.

        Alerts:
            PRODUCTIVITY_DRAG     high inertia but output < 80 % of target
            QUALITY_REWORK        quality < 90 %; rework cost estimated
            METRIC_MISMATCH       high hours, low pipe, quality issues
            NO_MEASURABLE_OUTPUT  no metres recorded against > 16 billed hours
        """
        activity_type = block.get("activity_type") or "default"
        target = self.daily_target(activity_type, planned_daily_target)

        inertia = calculate_inertia_ratio(block) / 100
        metres = self.linear_metres(block)
        quality = self.quality_pass_rate(block) / 100
        billed = calculate_total_billed_hours(block)
        production_ratio = metres / target if target > 0 else 1.0
        has_output = metres > 0

        alerts: List[Dict[str, str]] = []
        score = 100.0
        drag_penalty = 0.0
        rework_cost = 0.0

        if has_output and inertia > cfg.HIGH_INERTIA_THRESHOLD and production_ratio < cfg.LOW_PRODUCTION_THRESHOLD:
            alerts.append({
                "type": "PRODUCTIVITY_DRAG",
                "severity": "high",
                "message": (
                    f"High time efficiency ({inertia * 100:.0f}%) but low output "
                    f"({production_ratio * 100:.0f}% of target)"
                ),
                "detail": f"Expected {target:g}m, achieved {metres:g}m",
            })
            drag_penalty = (cfg.HIGH_INERTIA_THRESHOLD - production_ratio) * cfg.PRODUCTIVITY_DRAG_PENALTY_FACTOR
            score -= 25

        if has_output and quality < cfg.REWORK_QUALITY_THRESHOLD:
            multiplier = self.rework_multipliers.get(activity_type, cfg.DEFAULT_REWORK_COST_MULTIPLIER)
            failure_rate = 1 - quality
            burn_rate = self.shadow_engine.block_burn_rate(block)
            rework_cost = failure_rate * billed * burn_rate * multiplier * cfg.REWORK_SCALE_FACTOR
            alerts.append({
                "type": "QUALITY_REWORK",
                "severity": "high" if quality < cfg.SEVERE_QUALITY_THRESHOLD else "medium",
                "message": f"Quality pass rate {quality * 100:.0f}% - rework cost estimated",
                "detail": f"Estimated rework cost: ${rework_cost:,.0f}",
            })
            score -= failure_rate * 30

        if (
            has_output
            and inertia > cfg.MISMATCH_INERTIA_THRESHOLD
            and production_ratio < cfg.MISMATCH_PRODUCTION_THRESHOLD
            and quality < cfg.MISMATCH_QUALITY_THRESHOLD
        ):
            alerts.append({
                "type": "METRIC_MISMATCH",
                "severity": "critical",
                "message": "Metrics do not align - high hours, low pipe, quality issues",
                "detail": "Recommend investigation: time spent not translating to quality output",
            })
            score -= 35

        if not has_output and billed > cfg.NO_OUTPUT_HOURS_THRESHOLD:
            alerts.append({
                "type": "NO_MEASURABLE_OUTPUT",
                "severity": "medium",
                "message": "No measurable linear progress recorded",
                "detail": "Verify KP range is captured or activity type has production data",
            })
            score -= 10

        adjusted_value_lost = self.shadow_engine.value_lost(block) + rework_cost
        adjusted_inertia = max(0.0, inertia - drag_penalty)

        if score < cfg.UNRELIABLE_SCORE_BELOW:
            status = UNRELIABLE
        elif score < cfg.QUESTIONABLE_SCORE_BELOW:
            status = QUESTIONABLE
        elif alerts:
            status = REVIEW_NEEDED
        else:
            status = RELIABLE

        return {
            "inertia_ratio": round(inertia * 100, 1),
            "linear_metres": round(metres),
            "quality_pass_rate": round(quality * 100, 1),
            "production_ratio": round(production_ratio * 100, 1),
            "adjusted_inertia_ratio": round(adjusted_inertia * 100, 1),
            "adjusted_value_lost": round(adjusted_value_lost, 2),
            "productivity_drag_penalty": round(drag_penalty * 100, 1),
            "rework_cost": round(rework_cost, 2),
            "reliability_score": max(0, round(score)),
            "reliability_status": status,
            "alerts": alerts,
            "planned_target": target,
            "activity_type": activity_type,
        }

    @timed
    def aggregate_efficiency_verification(self, blocks: List[Dict[str, Any]]) -> Dict[str, Any]:
        """
        Portfolio-level verification across many blocks.

        Overall reliability: UNRELIABLE when more than 20 % of blocks are
        unreliable, QUESTIONABLE when more than 30 % are questionable,
        REVIEW_NEEDED when any high/critical alert was raised, else RELIABLE.
        """
        blocks = [b for b in blocks or [] if isinstance(b, dict)]
        total_metres = 0.0
        total_planned = 0.0
        quality_checks = 0.0
        quality_passed = 0.0
        total_rework = 0.0
        total_drag_penalty = 0.0
        critical_alerts: List[Dict[str, Any]] = []
        unreliable = 0
        questionable = 0

        for block in blocks:
            result = self.verify_efficiency(block)
            total_metres += result["linear_metres"]
            total_planned += result["planned_target"]
            total_rework += result["rework_cost"]
            total_drag_penalty += result["productivity_drag_penalty"]

            if result["quality_pass_rate"] < 100:
                quality_checks += 100
                quality_passed += result["quality_pass_rate"]

            for alert in result["alerts"]:
                if alert["severity"] in ("critical", "high"):
                    critical_alerts.append({
                        **alert,
                        "activity_type": block.get("activity_type"),
                        "block_id": block.get("id"),
                    })

            if result["reliability_status"] == UNRELIABLE:
                unreliable += 1
            elif result["reliability_status"] == QUESTIONABLE:
                questionable += 1

        count = len(blocks)
        if unreliable > count * cfg.UNRELIABLE_BLOCK_SHARE:
            overall = UNRELIABLE
        elif questionable > count * cfg.QUESTIONABLE_BLOCK_SHARE:
            overall = QUESTIONABLE
        elif critical_alerts:
            overall = REVIEW_NEEDED
        else:
            overall = RELIABLE

        production_ratio = total_metres / total_planned * 100 if total_planned > 0 else 100.0
        quality_rate = quality_passed / quality_checks * 100 if quality_checks > 0 else 100.0

        logger.info(
            f"Verified {count} blocks: {overall}, {unreliable} unreliable, "
            f"{questionable} questionable, {len(critical_alerts)} critical alerts"
        )
        return {
            "overall_reliability": overall,
            "total_linear_metres": round(total_metres),
            "total_planned_metres": round(total_planned),
            "overall_production_ratio": round(production_ratio, 1),
            "overall_quality_rate": round(quality_rate, 1),
            "total_rework_cost": round(total_rework, 2),
            "avg_productivity_drag_penalty": round(total_drag_penalty / count, 1) if count else 0.0,
            "critical_alerts": critical_alerts,
            "unreliable_blocks": unreliable,
            "questionable_blocks": questionable,
            "block_count": count,
        }

    # -----------------------------------------------------------------------
    # Dashboard reliability score (GREEN / AMBER / RED)
    # -----------------------------------------------------------------------

    def calculate_reliability_score(
        self, block: Dict[str, Any], planned_daily_rate: Any = None
    ) -> Dict[str, Any]:
        """
        Three-point triangulation for a single block.

        1. Time integrity:       shadow vs billed hours
        2. Physical alignment:   inertia ratio vs progress against the daily target
        3. Penalty:              "activity without productivity" when I_R > 0.9
                                 but progress < 70 % of target
        """
        activity_type = block.get("activity_type") or "default"
        target = self.daily_target(activity_type, planned_daily_rate)

        billed = calculate_total_billed_hours(block)
        shadow = calculate_total_shadow_hours(block)
        time_integrity = shadow / billed if billed > 0 else 1.0

        inertia = calculate_inertia_ratio(block) / 100
        metres = self.linear_metres(block)
        progress = metres / target if target > 0 else 1.0
        alignment = abs(inertia - progress)
        quality = self.quality_pass_rate(block) / 100

        score = 100.0
        status = GREEN
        flag: Optional[str] = None
        penalty = 0

        if metres > 0 and inertia > cfg.HIGH_INERTIA_THRESHOLD and progress < cfg.ACTIVITY_WITHOUT_PRODUCTIVITY_PROGRESS:
            flag = "ACTIVITY_WITHOUT_PRODUCTIVITY"
            penalty = 35
            score -= penalty
            status = AMBER

        misaligned = (
            metres > 0
            and inertia > cfg.MISMATCH_INERTIA_THRESHOLD
            and progress < cfg.MISMATCH_PRODUCTION_THRESHOLD
        )
        if quality < cfg.HIGH_REWORK_QUALITY_THRESHOLD or misaligned:
            if flag == "ACTIVITY_WITHOUT_PRODUCTIVITY":
                flag = "SYSTEMIC_MISMATCH"
                penalty += 25
                score -= 25
            else:
                flag = "HIGH_REWORK_RATE" if quality < cfg.HIGH_REWORK_QUALITY_THRESHOLD else "METRIC_MISALIGNMENT"
                penalty = 30
                score -= penalty
            status = RED

        if metres == 0 and billed > cfg.NO_PROGRESS_HOURS_THRESHOLD:
            score -= 15
            if flag is None:
                flag = "NO_PHYSICAL_PROGRESS"
                status = AMBER

        label, message = _STATUS_LABELS[status]
        if flag == "ACTIVITY_WITHOUT_PRODUCTIVITY":
            message = "High activity reported but low physical progress"
        elif flag == "SYSTEMIC_MISMATCH":
            message = "Systemic mismatch detected - investigate"

        return {
            "score": round(max(0.0, score)),
            "status": status,
            "label": label,
            "message": message,
            "flag": flag,
            "penalty": penalty,
            "activity_type": activity_type,
            "metrics": {
                "time_integrity_ratio": round(time_integrity * 100),
                "inertia_ratio": round(inertia * 100),
                "progress_ratio": round(progress * 100),
                "quality_rate": round(quality * 100),
                "physical_alignment": round((1 - alignment) * 100),
                "linear_metres": round(metres),
                "billed_hours": round(billed, 1),
                "shadow_hours": round(shadow, 1),
                "planned_target": target,
            },
        }

    def aggregate_reliability_score(self, blocks: List[Dict[str, Any]]) -> Dict[str, Any]:
        """Roll block reliability scores into one dashboard KPI."""
        blocks = [b for b in blocks or [] if isinstance(b, dict)]
        if not blocks:
            return {
                "overall_score": 100,
                "status": GREEN,
                "label": "No Data",
                "green_count": 0,
                "amber_count": 0,
                "red_count": 0,
                "flag_breakdown": {},
                "block_count": 0,
            }

        counts = {GREEN: 0, AMBER: 0, RED: 0}
        flag_breakdown: Dict[str, int] = {}
        total_score = 0

        for block in blocks:
            result = self.calculate_reliability_score(block)
            total_score += result["score"]
            counts[result["status"]] += 1
            if result["flag"]:
                flag_breakdown[result["flag"]] = flag_breakdown.get(result["flag"], 0) + 1

        count = len(blocks)
        overall_score = round(total_score / count)
        if counts[RED] > count * cfg.RED_BLOCK_SHARE or overall_score < cfg.RED_SCORE_BELOW:
            status = RED
        elif counts[AMBER] > count * cfg.AMBER_BLOCK_SHARE or overall_score < cfg.AMBER_SCORE_BELOW:
            status = AMBER
        else:
            status = GREEN

        return {
            "overall_score": overall_score,
            "status": status,
            "label": {GREEN: "Reliable", AMBER: "Review", RED: "Alert"}[status],
            "green_count": counts[GREEN],
            "amber_count": counts[AMBER],
            "red_count": counts[RED],
            "flag_breakdown": flag_breakdown,
            "block_count": count,
        }

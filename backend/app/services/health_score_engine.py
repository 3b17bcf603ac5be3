"""
Report health scoring.

Weighted completeness / compliance score for one report's activity blocks,
shown as a warning on submission (never a hard block):

  Photo completeness       25   concealed-work blocks with photos
  Directive 050            20   drilling-waste volume balance, disposal, additives
  Field completeness       20   required quality fields filled
  Chainage integrity       15   gaps / overlaps carry a documented reason
  Labour / equipment       10   blocks with both kinds of entry
  Mentor alert resolution  10   alerts acknowledged, overridden or resolved

A category with nothing to check scores 100.  The scorer never raises;
bad input degrades to N/A or to an issue string.
"""
from __future__ import annotations

import logging
import math
from typing import Any, Dict, List, Optional

from app.models.field_catalog import QUALITY_FIELDS_BY_ACTIVITY, required_fields
from app.models.taxonomy import CONCEALED_WORK_ACTIVITIES, DRILLING_ACTIVITIES, ActivityType
from app.services import audit_config as cfg
from app.services.perf_monitor import timed, tracker
from app.services.shadow_audit_engine import entry_list, parse_kp_to_metres, safe_float

logger = logging.getLogger("pipeaudit-health")

DEFAULT_SECTION = "Quality Checks"


def _pct(part: float, whole: float) -> int:
    """Percentage rounded half-up to an integer."""
    return int(math.floor(part / whole * 100 + 0.5))


def _is_blank(value: Any) -> bool:
    return value is None or value == ""


def _location(block_num: int, block: Dict[str, Any]) -> str:
    return f'Block #{block_num} "{block.get("activity_type")}" (KP {block.get("start_kp") or "?"})'


def _category(key: str, score: float, issues: List[str]) -> Dict[str, Any]:
    return {"score": score, "weight": cfg.HEALTH_CATEGORY_WEIGHTS[key], "issues": issues}


class ReportHealthScorer:
    """Computes ``{score, details, passing, threshold}`` for a report."""

    def __init__(self, threshold: Optional[float] = None) -> None:
        if threshold is not None and threshold <= 0:
            raise ValueError(f"Health score threshold must be positive; received {threshold}")
        self.threshold = float(threshold) if threshold is not None else cfg.DEFAULT_HEALTH_THRESHOLD

    # ── Categories ────────────────────────────────────────────────────────────

    def score_photo_completeness(self, blocks: List[Dict[str, Any]]) -> Dict[str, Any]:
        concealed = [
            (num, b) for num, b in enumerate(blocks, start=1)
            if ActivityType.parse(b.get("activity_type")) in CONCEALED_WORK_ACTIVITIES
        ]
        if not concealed:
            return _category("photo_completeness", 100, [])

        issues = []
        with_photos = 0
        for num, block in concealed:
            photos = block.get("work_photos")
            if isinstance(photos, list) and photos:
                with_photos += 1
            else:
                issues.append(
                    f"{_location(num, block)} — this work will be buried/hidden. "
                    f'Add photos BEFORE it is covered up in the "Work Photos" section'
                )
        return _category("photo_completeness", _pct(with_photos, len(concealed)), issues)

    def score_directive_050(self, blocks: List[Dict[str, Any]]) -> Dict[str, Any]:
        drilling = [
            (num, b) for num, b in enumerate(blocks, start=1)
            if ActivityType.parse(b.get("activity_type")) in DRILLING_ACTIVITIES
            and isinstance(b.get("waste_data"), dict)
        ]
        if not drilling:
            return _category("directive_050", 100, [])

        total_checks = 0
        passed_checks = 0
        issues = []
        for num, block in drilling:
            waste = block["waste_data"]
            loc = _location(num, block)
            total_mixed = safe_float(waste.get("total_volume_mixed_m3"))
            in_storage = safe_float(waste.get("volume_in_storage_m3"))
            hauled = safe_float(waste.get("volume_hauled_m3"))

            # Volume balance: hauled + storage ≈ total mixed
            total_checks += 1
            if total_mixed > 0 and abs(hauled + in_storage - total_mixed) < cfg.VOLUME_BALANCE_TOLERANCE_M3:
                passed_checks += 1
            elif total_mixed > 0:
                issues.append(
                    f"{loc} — volume balance mismatch: hauled({hauled:g}) + storage({in_storage:g}) "
                    f'≠ total({total_mixed:g}). Fix in "Drilling Waste Management" section'
                )
            else:
                issues.append(f'{loc} — enter "Total Volume Mixed" in the "Drilling Waste Management" section')

            # Disposal facility when anything was hauled
            total_checks += 1
            if hauled <= 0 or waste.get("disposal_facility_name"):
                passed_checks += 1
            else:
                issues.append(
                    f'{loc} — volume hauled > 0 but no disposal facility. '
                    f'Enter "Disposal Facility Name" in "Drilling Waste Management" section'
                )

            total_checks += 1
            additives = waste.get("additives")
            if isinstance(additives, list) and additives:
                passed_checks += 1
            else:
                issues.append(f'{loc} — add drilling fluid additives in the "Drilling Waste Management" section')

        return _category("directive_050", _pct(passed_checks, total_checks), issues)

    def score_field_completeness(self, blocks: List[Dict[str, Any]]) -> Dict[str, Any]:
        total_fields = 0
        filled_fields = 0
        issues = []

        for num, block in enumerate(blocks, start=1):
            raw_type = block.get("activity_type")
            if not raw_type:
                continue
            activity = ActivityType.parse(raw_type)
            if activity is None:
                issues.append(f'Block #{num} — activity type "{raw_type}" is not recognised; quality fields not checked')
                continue
            if activity not in QUALITY_FIELDS_BY_ACTIVITY:
                continue

            fields = required_fields(activity)
            quality = block.get("quality_data") if isinstance(block.get("quality_data"), dict) else {}
            missing = [f for f in fields if _is_blank(quality.get(f.name))]
            total_fields += len(fields)
            filled_fields += len(fields) - len(missing)

            if missing:
                by_section: Dict[str, List[str]] = {}
                for field in missing:
                    by_section.setdefault(field.section or DEFAULT_SECTION, []).append(field.label or field.name)
                details = " | ".join(f"{section}: {', '.join(labels)}" for section, labels in by_section.items())
                plural = "s" if len(missing) != 1 else ""
                issues.append(
                    f"{_location(num, block)} — {len(missing)} quality field{plural} to complete. "
                    f'Open "Quality Checks" and fill in → {details}'
                )

        score = _pct(filled_fields, total_fields) if total_fields > 0 else 100
        return _category("field_completeness", score, issues)

    def score_chainage_integrity(self, blocks: List[Dict[str, Any]]) -> Dict[str, Any]:
        by_type: Dict[str, List[tuple]] = {}
        for num, block in enumerate(blocks, start=1):
            activity = block.get("activity_type")
            start = parse_kp_to_metres(block.get("start_kp"))
            end = parse_kp_to_metres(block.get("end_kp"))
            if not activity or start is None or end is None:
                continue
            by_type.setdefault(activity, []).append((start / 1000, end / 1000, num, block))

        total_issues = 0
        documented = 0
        issues = []
        for activity, rows in by_type.items():
            rows.sort(key=lambda r: r[0])
            for prev, curr in zip(rows, rows[1:]):
                diff = curr[0] - prev[1]
                if abs(diff) <= cfg.CHAINAGE_TOLERANCE_KM:
                    continue
                total_issues += 1
                block = curr[3]
                if block.get("chainage_overlap_reason") or block.get("chainage_gap_reason"):
                    documented += 1
                    continue
                kind = "gap" if diff > 0 else "overlap"
                issues.append(
                    f'Block #{curr[2]} "{activity}" — chainage {kind} between KP {prev[3].get("end_kp")} '
                    f'and KP {block.get("start_kp")}. Check "Start KP" / "End KP" values at the top of the activity block'
                )

        score = _pct(documented, total_issues) if total_issues > 0 else 100
        return _category("chainage_integrity", score, issues)

    def score_labour_equipment(self, blocks: List[Dict[str, Any]]) -> Dict[str, Any]:
        active = [(num, b) for num, b in enumerate(blocks, start=1) if b.get("activity_type")]
        if not active:
            return _category("labour_equipment", 100, [])

        documented = 0
        issues = []
        for num, block in active:
            has_labour = bool(entry_list(block, "labour_entries"))
            has_equipment = bool(entry_list(block, "equipment_entries"))
            loc = _location(num, block)
            if has_labour and has_equipment:
                documented += 1
            elif not has_labour and not has_equipment:
                issues.append(
                    f"{loc} — add labour and equipment. Upload a contractor ticket or "
                    f'manually add rows in the "Labour" and "Equipment" tables'
                )
            elif not has_labour:
                issues.append(f'{loc} — no labour entries. Upload a contractor ticket or add rows in the "Labour" table')
            else:
                issues.append(f'{loc} — no equipment entries. Upload a contractor ticket or add rows in the "Equipment" table')

        return _category("labour_equipment", _pct(documented, len(active)), issues)

    def score_mentor_alert_resolution(self, alerts: List[Dict[str, Any]]) -> Dict[str, Any]:
        alerts = [a for a in alerts or [] if isinstance(a, dict)]
        if not alerts:
            return _category("mentor_alert_resolution", 100, [])

        resolved = sum(1 for a in alerts if a.get("status") in cfg.RESOLVED_ALERT_STATUSES)
        unresolved = sum(1 for a in alerts if a.get("status") == "active")
        issues = []
        if unresolved:
            plural = "s" if unresolved != 1 else ""
            issues.append(
                f"{unresolved} mentor alert{plural} unresolved — look for the yellow alert banners "
                f'within your activity blocks and tap "Acknowledge" or "Override" on each one'
            )
        return _category("mentor_alert_resolution", _pct(resolved, len(alerts)), issues)

    # ── Overall ───────────────────────────────────────────────────────────────

    def resolve_threshold(self, report_data: Optional[Dict[str, Any]]) -> float:
        """Report-level override wins over the scorer's configured threshold."""
        if isinstance(report_data, dict):
            override = safe_float(report_data.get("health_score_threshold"))
            if override > 0:
                return override
        return self.threshold

    @timed
    def compute_health_score(
        self,
        activity_blocks: List[Dict[str, Any]],
        report_data: Optional[Dict[str, Any]] = None,
        mentor_alerts: Optional[List[Dict[str, Any]]] = None,
    ) -> Dict[str, Any]:
        blocks = [b for b in activity_blocks or [] if isinstance(b, dict)]
        details = {
            "photo_completeness": self.score_photo_completeness(blocks),
            "directive_050": self.score_directive_050(blocks),
            "field_completeness": self.score_field_completeness(blocks),
            "chainage_integrity": self.score_chainage_integrity(blocks),
            "labour_equipment": self.score_labour_equipment(blocks),
            "mentor_alert_resolution": self.score_mentor_alert_resolution(mentor_alerts),
        }

        weighted_sum = sum(c["score"] * c["weight"] for c in details.values())
        total_weight = sum(c["weight"] for c in details.values())
        score = round(weighted_sum / total_weight, 2) if total_weight > 0 else 100.0
        threshold = self.resolve_threshold(report_data)

        tracker.record_report_scored()
        logger.info(f"Health score {score} (threshold {threshold:g}) over {len(blocks)} blocks")
        return {
            "score": score,
            "details": details,
            "passing": score >= threshold,
            "threshold": threshold,
        }

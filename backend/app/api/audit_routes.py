"""
Efficiency Audit API Routes

GET  /api/audit/taxonomy      — production statuses, delay reasons, activity types
POST /api/audit/block-summary — shadow audit summary for one activity block
POST /api/audit/portfolio     — roll-up across reports (+ reliability, shadow EVM)
POST /api/audit/reliability   — per-block Goodhart verification and reliability scores
POST /api/audit/health-score  — weighted report health score
"""
import logging
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, HTTPException
from pydantic import BaseModel, ConfigDict, Field

from app.models.audit_schemas import ActivityBlockIn, MentorAlertIn, ReportIn
from app.models.taxonomy import (
    DELAY_REASON_CATALOG,
    ActivityType,
    ProductionStatus,
    validate_delay_selection,
)
from app.services.health_score_engine import ReportHealthScorer
from app.services.portfolio_engine import PortfolioEngine, generate_shadow_evm_data
from app.services.reliability_engine import ReliabilityEngine
from app.services.shadow_audit_engine import ShadowAuditEngine
from app.services import audit_config as cfg

router = APIRouter(prefix="/api/audit", tags=["Efficiency Audit"])
logger = logging.getLogger("pipeaudit-api")


# ── Pydantic Models ─────────────────────────────────────────────────────────

class _AuditRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class RateTables(_AuditRequest):
    labour_rates: Dict[str, Any] = Field(default_factory=dict, alias="labourRates")
    equipment_rates: Dict[str, Any] = Field(default_factory=dict, alias="equipmentRates")
    default_labour_rate: float = Field(cfg.DEFAULT_LABOUR_RATE, gt=0, alias="defaultLabourRate")
    default_equipment_rate: float = Field(cfg.DEFAULT_EQUIPMENT_RATE, gt=0, alias="defaultEquipmentRate")

    def engine(self) -> ShadowAuditEngine:
        return ShadowAuditEngine(
            labour_rates=self.labour_rates,
            equipment_rates=self.equipment_rates,
            default_labour_rate=self.default_labour_rate,
            default_equipment_rate=self.default_equipment_rate,
        )


class BlockSummaryRequest(RateTables):
    block: ActivityBlockIn


class EvmPointIn(_AuditRequest):
    date: str
    planned_value: Any = Field(None, alias="plannedValue")
    earned_value: Any = Field(None, alias="earnedValue")
    actual_cost: Any = Field(None, alias="actualCost")


class PortfolioRequest(RateTables):
    reports: List[ReportIn] = Field(default_factory=list)
    evm_points: List[EvmPointIn] = Field(default_factory=list, alias="evmPoints")


class ReliabilityRequest(RateTables):
    blocks: List[ActivityBlockIn] = Field(default_factory=list)
    production_targets: Dict[str, float] = Field(default_factory=dict, alias="productionTargets")


class ReportDataIn(_AuditRequest):
    health_score_threshold: Optional[float] = Field(None, alias="healthScoreThreshold")


class HealthScoreRequest(_AuditRequest):
    activity_blocks: List[ActivityBlockIn] = Field(default_factory=list, alias="activityBlocks")
    report_data: Optional[ReportDataIn] = Field(None, alias="reportData")
    mentor_alerts: List[MentorAlertIn] = Field(default_factory=list, alias="mentorAlerts")


# ── Helpers ──────────────────────────────────────────────────────────────────

def _selection_problems(block: Dict[str, Any]) -> List[str]:
    """Advisory delay-selection problems for the block override and each entry."""
    problems: List[str] = []
    delay = block.get("systemic_delay")
    if isinstance(delay, dict) and delay.get("active"):
        problems.extend(
            f"Systemic delay: {p}"
            for p in validate_delay_selection(delay.get("status"), delay.get("reason"), delay.get("note"), "ENTIRE_CREW")
        )
    for key, label, name_field in (
        ("labour_entries", "Labour", "classification"),
        ("equipment_entries", "Equipment", "type"),
    ):
        for idx, entry in enumerate(block.get(key) or [], start=1):
            name = entry.get(name_field) or f"row {idx}"
            problems.extend(
                f"{label} {name}: {p}"
                for p in validate_delay_selection(
                    entry.get("production_status"), entry.get("drag_reason"), entry.get("drag_note"), "ASSET_ONLY"
                )
            )
    return problems


# ── Routes ───────────────────────────────────────────────────────────────────

@router.get("/taxonomy")
async def get_taxonomy():
    """Production statuses with multipliers, the delay reason catalog and activity types."""
    return {
        "production_statuses": [
            {"code": s.value, "label": s.label, "multiplier": s.multiplier}
            for s in ProductionStatus
        ],
        "delay_reasons": [
            {
                "code": reason.value,
                "label": info.label,
                "responsible_party": info.responsible_party.value,
                "default_systemic": info.default_systemic,
                "lock_systemic": info.lock_systemic,
                "requires_note": info.requires_note,
            }
            for reason, info in DELAY_REASON_CATALOG.items()
        ],
        "activity_types": [a.value for a in ActivityType],
    }


@router.post("/block-summary")
async def block_summary(req: BlockSummaryRequest):
    """Shadow audit summary, value lost by party and delay-selection advisories for one block."""
    block = req.block.model_dump()
    engine = req.engine()
    try:
        return {
            "summary": engine.summarize_block(block),
            "value_lost_by_party": engine.value_lost_by_party(block),
            "selection_problems": _selection_problems(block),
        }
    except Exception as e:
        logger.error(f"Block summary failed for block {block.get('id')}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Block summary failed: {e}")


@router.post("/portfolio")
async def portfolio(req: PortfolioRequest):
    """
    Portfolio roll-up across reports.

    When EVM points are supplied, a shadow EVM series (VAAC alongside actual
    cost) is built from the daily value-lost trend.
    """
    reports = [r.model_dump() for r in req.reports]
    engine = PortfolioEngine(shadow_engine=req.engine())
    try:
        result = engine.aggregate_reports(reports)
        if req.evm_points:
            result["shadow_evm"] = generate_shadow_evm_data(
                [p.model_dump() for p in req.evm_points],
                [{"date": d["date"], "value_lost": d["value_lost"]} for d in result["daily_trend"]],
            )
        return result
    except Exception as e:
        logger.error(f"Portfolio aggregation failed over {len(reports)} reports: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Portfolio aggregation failed: {e}")


@router.post("/reliability")
async def reliability(req: ReliabilityRequest):
    """Goodhart verification per block plus the portfolio verdict and dashboard KPI."""
    blocks = [b.model_dump() for b in req.blocks]
    engine = ReliabilityEngine(shadow_engine=req.engine(), production_targets=req.production_targets)
    try:
        return {
            "verification": engine.aggregate_efficiency_verification(blocks),
            "reliability_score": engine.aggregate_reliability_score(blocks),
            "blocks": [
                {
                    "block_id": block.get("id"),
                    "verification": engine.verify_efficiency(block),
                    "reliability_score": engine.calculate_reliability_score(block),
                }
                for block in blocks
            ],
        }
    except Exception as e:
        logger.error(f"Reliability verification failed over {len(blocks)} blocks: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Reliability verification failed: {e}")


@router.post("/health-score")
async def health_score(req: HealthScoreRequest):
    """Report health score; a warning for the submitter, never a hard block."""
    scorer = ReportHealthScorer()
    return scorer.compute_health_score(
        [b.model_dump() for b in req.activity_blocks],
        req.report_data.model_dump() if req.report_data else None,
        [a.model_dump() for a in req.mentor_alerts],
    )

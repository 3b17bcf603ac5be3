"""
Closed taxonomies for the efficiency audit.

Production statuses, delay reasons (with accountability metadata) and
activity types are enums so that a typo in stored data resolves to an
explicit ``None`` / fallback rather than silently matching nothing.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional

from app.services.audit_config import STATUS_MULTIPLIERS

logger = logging.getLogger("pipeaudit-taxonomy")


class ProductionStatus(str, Enum):
    """
    Field activity status for a labour or equipment line.

    - ACTIVE: Full Production (×1.0)
    - SYNC_DELAY: Partial Work (×0.7)
    - MANAGEMENT_DRAG: Standby (×0.0)
    """
    ACTIVE = "ACTIVE"
    SYNC_DELAY = "SYNC_DELAY"
    MANAGEMENT_DRAG = "MANAGEMENT_DRAG"

    @property
    def multiplier(self) -> float:
        return STATUS_MULTIPLIERS[self.value]

    @property
    def label(self) -> str:
        return {
            ProductionStatus.ACTIVE: "Full Production",
            ProductionStatus.SYNC_DELAY: "Partial Work",
            ProductionStatus.MANAGEMENT_DRAG: "Standby",
        }[self]

    @classmethod
    def parse(cls, value: Any) -> Optional["ProductionStatus"]:
        """Return the matching status, or None for missing / unknown input."""
        if isinstance(value, cls):
            return value
        if not isinstance(value, str) or not value.strip():
            return None
        try:
            return cls(value.strip().upper())
        except ValueError:
            logger.warning(f"Unknown production status {value!r}")
            return None


class ResponsibleParty(str, Enum):
    OWNER = "owner"
    CONTRACTOR = "contractor"
    NEUTRAL = "neutral"
    UNKNOWN = "unknown"


class DelayType(str, Enum):
    NONE = "NONE"
    ASSET_SPECIFIC = "ASSET_SPECIFIC"   # one or more entries delayed individually
    SYSTEMIC = "SYSTEMIC"               # block-wide override, whole crew stopped


class ImpactScope(str, Enum):
    ASSET_ONLY = "ASSET_ONLY"       # Affects a single entry
    ENTIRE_CREW = "ENTIRE_CREW"     # Affects all entries in the block


@dataclass(frozen=True)
class DelayReasonInfo:
    label: str
    responsible_party: ResponsibleParty
    default_systemic: bool
    lock_systemic: bool      # forces ENTIRE_CREW, per-entry override disallowed
    requires_note: bool      # justification required when Standby is selected


class DelayReason(str, Enum):
    # Owner: permits, land access, environmental windows, engineering
    WAITING_PERMITS = "waiting_permits"
    LAND_ACCESS = "land_access"
    FIRST_NATIONS_MONITOR = "first_nations_monitor"
    SALMON_FISH_WINDOW = "salmon_fish_window"
    COASTAL_TAILED_FROG = "coastal_tailed_frog"
    BIRD_NESTING_WINDOW = "bird_nesting_window"
    ENVIRONMENTAL_WINDOW = "environmental_window"
    ENGINEERING_CHANGE = "engineering_change"
    REGULATORY_HOLD = "regulatory_hold"
    # Contractor: mechanical, supervisory, logistics, workmanship
    MECHANICAL_BREAKDOWN = "mechanical_breakdown"
    SUPERVISORY_LATENCY = "supervisory_latency"
    ROW_CONGESTION = "row_congestion"
    DITCH_SLOUGHING = "ditch_sloughing"
    MISSING_MATERIALS = "missing_materials"
    INCORRECT_GRADE = "incorrect_grade"
    CREW_SHORTAGE = "crew_shortage"
    ILLNESS_PERSONAL = "illness_personal"
    COORDINATION_DELAY = "coordination_delay"
    # Neutral: act of God, safety
    EXTREME_WEATHER = "extreme_weather"
    FORCE_MAJEURE = "force_majeure"
    SAFETY_STANDDOWN = "safety_standdown"
    # Custom
    OTHER = "other"

    @property
    def info(self) -> DelayReasonInfo:
        return DELAY_REASON_CATALOG[self]

    @property
    def label(self) -> str:
        return self.info.label

    @property
    def responsible_party(self) -> ResponsibleParty:
        return self.info.responsible_party

    @classmethod
    def parse(cls, value: Any) -> Optional["DelayReason"]:
        """Match by code (``extreme_weather``) or display label (``Extreme weather``)."""
        if isinstance(value, cls):
            return value
        if not isinstance(value, str) or not value.strip():
            return None
        text = value.strip()
        try:
            return cls(text)
        except ValueError:
            pass
        by_label = _REASON_BY_LABEL.get(text.lower())
        if by_label is None:
            logger.warning(f"Unknown delay reason {value!r}")
        return by_label


_OWNER = ResponsibleParty.OWNER
_CONTRACTOR = ResponsibleParty.CONTRACTOR
_NEUTRAL = ResponsibleParty.NEUTRAL

DELAY_REASON_CATALOG: dict[DelayReason, DelayReasonInfo] = {
    DelayReason.WAITING_PERMITS:       DelayReasonInfo("Waiting for permits", _OWNER, True, False, False),
    DelayReason.LAND_ACCESS:           DelayReasonInfo("Land access issue", _OWNER, True, False, False),
    DelayReason.FIRST_NATIONS_MONITOR: DelayReasonInfo("First Nations monitor", _OWNER, True, False, False),
    DelayReason.SALMON_FISH_WINDOW:    DelayReasonInfo("Salmon fish window", _OWNER, True, True, False),
    DelayReason.COASTAL_TAILED_FROG:   DelayReasonInfo("Coastal tailed frog habitat", _OWNER, True, True, False),
    DelayReason.BIRD_NESTING_WINDOW:   DelayReasonInfo("Bird nesting window", _OWNER, True, True, False),
    DelayReason.ENVIRONMENTAL_WINDOW:  DelayReasonInfo("Other environmental window", _OWNER, True, True, False),
    DelayReason.ENGINEERING_CHANGE:    DelayReasonInfo("Engineering change order", _OWNER, True, False, False),
    DelayReason.REGULATORY_HOLD:       DelayReasonInfo("Regulatory hold", _OWNER, True, False, False),
    DelayReason.MECHANICAL_BREAKDOWN:  DelayReasonInfo("Mechanical breakdown", _CONTRACTOR, False, False, True),
    DelayReason.SUPERVISORY_LATENCY:   DelayReasonInfo("Supervisory latency", _CONTRACTOR, False, False, True),
    DelayReason.ROW_CONGESTION:        DelayReasonInfo("ROW congestion", _CONTRACTOR, False, False, True),
    DelayReason.DITCH_SLOUGHING:       DelayReasonInfo("Ditch sloughing / rework", _CONTRACTOR, False, False, True),
    DelayReason.MISSING_MATERIALS:     DelayReasonInfo("Missing material / logistics", _CONTRACTOR, False, False, True),
    DelayReason.INCORRECT_GRADE:       DelayReasonInfo("Incorrect grade", _CONTRACTOR, False, False, True),
    DelayReason.CREW_SHORTAGE:         DelayReasonInfo("Crew shortage", _CONTRACTOR, False, False, True),
    DelayReason.ILLNESS_PERSONAL:      DelayReasonInfo("Illness / personal reason", _CONTRACTOR, False, False, False),
    DelayReason.COORDINATION_DELAY:    DelayReasonInfo("Coordination delay", _CONTRACTOR, False, False, True),
    DelayReason.EXTREME_WEATHER:       DelayReasonInfo("Extreme weather", _NEUTRAL, True, True, False),
    DelayReason.FORCE_MAJEURE:         DelayReasonInfo("Force majeure", _NEUTRAL, True, True, False),
    DelayReason.SAFETY_STANDDOWN:      DelayReasonInfo("Safety stand-down", _NEUTRAL, True, False, False),
    DelayReason.OTHER:                 DelayReasonInfo("Other", ResponsibleParty.UNKNOWN, False, False, True),
}

_REASON_BY_LABEL: dict[str, DelayReason] = {
    info.label.lower(): reason for reason, info in DELAY_REASON_CATALOG.items()
}


def is_systemic_reason(reason: Any) -> bool:
    """True when the reason defaults to an entire-crew impact."""
    parsed = DelayReason.parse(reason)
    return parsed.info.default_systemic if parsed else False


def get_responsible_party(reason: Any) -> ResponsibleParty:
    parsed = DelayReason.parse(reason)
    return parsed.responsible_party if parsed else ResponsibleParty.UNKNOWN


def validate_delay_selection(
    status: Any,
    reason: Any,
    note: Optional[str] = None,
    impact_scope: Any = None,
) -> list[str]:
    """
    Advisory checks for a status / reason / scope selection.

    Returns human-readable problems; an empty list means the selection is
    acceptable. Never raises.
    """
    problems: list[str] = []
    parsed_status = ProductionStatus.parse(status)
    if parsed_status is None or parsed_status is ProductionStatus.ACTIVE:
        return problems

    parsed_reason = DelayReason.parse(reason)
    if parsed_reason is None:
        problems.append(f"{parsed_status.label} selected without a recognised delay reason")
        return problems

    info = parsed_reason.info
    if info.requires_note and not (note or "").strip():
        problems.append(f'"{info.label}" requires a note explaining the delay')

    scope = impact_scope.value if isinstance(impact_scope, ImpactScope) else impact_scope
    if info.lock_systemic and scope == ImpactScope.ASSET_ONLY.value:
        problems.append(f'"{info.label}" affects the entire crew and cannot be applied to a single asset')

    return problems


class ActivityType(str, Enum):
    CLEARING = "Clearing"
    ACCESS = "Access"
    TOPSOIL = "Topsoil"
    GRADING = "Grading"
    STRINGING = "Stringing"
    BENDING = "Bending"
    WELDING_MAINLINE = "Welding - Mainline"
    WELDING_SECTION_CREW = "Welding - Section Crew"
    WELDING_POOR_BOY = "Welding - Poor Boy"
    WELDING_TIE_IN = "Welding - Tie-in"
    COATING = "Coating"
    TIE_IN_COATING = "Tie-in Coating"
    DITCH = "Ditch"
    LOWER_IN = "Lower-in"
    BACKFILL = "Backfill"
    TIE_IN_BACKFILL = "Tie-in Backfill"
    CLEANUP_MACHINE = "Cleanup - Machine"
    CLEANUP_FINAL = "Cleanup - Final"
    HYDROSTATIC_TESTING = "Hydrostatic Testing"
    HDD = "HDD"
    HD_BORES = "HD Bores"
    PILING = "Piling"
    EQUIPMENT_CLEANING = "Equipment Cleaning"
    HYDROVAC = "Hydrovac"
    WELDER_TESTING = "Welder Testing"
    FROST_PACKING = "Frost Packing"
    PIPE_YARD = "Pipe Yard"
    OTHER = "Other"

    @classmethod
    def parse(cls, value: Any) -> Optional["ActivityType"]:
        if isinstance(value, cls):
            return value
        if not isinstance(value, str) or not value.strip():
            return None
        try:
            return cls(value.strip())
        except ValueError:
            logger.warning(f"Unrecognised activity type {value!r}")
            return None


# Work that is buried or hidden once complete; photos are expected
CONCEALED_WORK_ACTIVITIES: frozenset[ActivityType] = frozenset({
    ActivityType.LOWER_IN,
    ActivityType.BACKFILL,
    ActivityType.COATING,
    ActivityType.HD_BORES,
    ActivityType.HDD,
})

# Activities that produce drilling waste (Directive 050)
DRILLING_ACTIVITIES: frozenset[ActivityType] = frozenset({
    ActivityType.HDD,
    ActivityType.HD_BORES,
})

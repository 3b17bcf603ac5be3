"""
Efficiency audit configuration — single source of truth for multipliers,
default rates, health-score weights and reliability thresholds.

Import from here in all engines rather than hardcoding values.
Deployment overrides are read from the environment once at import time.
"""
from __future__ import annotations

import logging
import os

logger = logging.getLogger("pipeaudit-config")


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        value = float(raw)
    except ValueError:
        logger.warning(f"Ignoring malformed {name}={raw!r}; using default {default}")
        return default
    if value <= 0:
        logger.warning(f"Ignoring non-positive {name}={raw!r}; using default {default}")
        return default
    return value


# ── Production status multipliers ─────────────────────────────────────────────
# Shadow hours = billed hours × multiplier(status)
STATUS_MULTIPLIERS: dict[str, float] = {
    "ACTIVE":          1.0,   # Full production
    "SYNC_DELAY":      0.7,   # Partial work: materials, sync, minor site issues
    "MANAGEMENT_DRAG": 0.0,   # Standby: permits, instructions, regulatory clearance
}

# Unknown / unparseable status resolves to this multiplier
UNKNOWN_STATUS_MULTIPLIER: float = 1.0


# ── Default hourly burn rates (currency units per hour) ───────────────────────
DEFAULT_LABOUR_RATE: float = _env_float("AUDIT_DEFAULT_LABOUR_RATE", 85.0)
DEFAULT_EQUIPMENT_RATE: float = _env_float("AUDIT_DEFAULT_EQUIPMENT_RATE", 150.0)


# ── Report health score ───────────────────────────────────────────────────────
DEFAULT_HEALTH_THRESHOLD: float = _env_float("HEALTH_SCORE_THRESHOLD", 90.0)

# Category weights sum to 100
HEALTH_CATEGORY_WEIGHTS: dict[str, int] = {
    "photo_completeness":      25,
    "directive_050":           20,
    "field_completeness":      20,
    "chainage_integrity":      15,
    "labour_equipment":        10,
    "mentor_alert_resolution": 10,
}

# Drilling-waste volume balance tolerance (m³)
VOLUME_BALANCE_TOLERANCE_M3: float = 0.5

# Chainage gap/overlap tolerance (km)
CHAINAGE_TOLERANCE_KM: float = 0.001

RESOLVED_ALERT_STATUSES: frozenset[str] = frozenset({"acknowledged", "overridden", "resolved"})


# ── Goodhart verification thresholds ──────────────────────────────────────────
HIGH_INERTIA_THRESHOLD: float = 0.90         # "full production" claim
LOW_PRODUCTION_THRESHOLD: float = 0.80       # share of daily target
MISMATCH_INERTIA_THRESHOLD: float = 0.85
MISMATCH_PRODUCTION_THRESHOLD: float = 0.50
MISMATCH_QUALITY_THRESHOLD: float = 0.85
REWORK_QUALITY_THRESHOLD: float = 0.90
SEVERE_QUALITY_THRESHOLD: float = 0.70
NO_OUTPUT_HOURS_THRESHOLD: float = 16.0
PRODUCTIVITY_DRAG_PENALTY_FACTOR: float = 0.3
REWORK_SCALE_FACTOR: float = 0.1

# Block-level reliability score → status bands
UNRELIABLE_SCORE_BELOW: float = 50.0
QUESTIONABLE_SCORE_BELOW: float = 75.0

# Portfolio-level status: share of blocks that trips each band
UNRELIABLE_BLOCK_SHARE: float = 0.20
QUESTIONABLE_BLOCK_SHARE: float = 0.30

# Dashboard reliability score (GREEN / AMBER / RED)
ACTIVITY_WITHOUT_PRODUCTIVITY_PROGRESS: float = 0.70
HIGH_REWORK_QUALITY_THRESHOLD: float = 0.80
NO_PROGRESS_HOURS_THRESHOLD: float = 8.0
RED_BLOCK_SHARE: float = 0.10
AMBER_BLOCK_SHARE: float = 0.20
RED_SCORE_BELOW: float = 60.0
AMBER_SCORE_BELOW: float = 80.0

# Average pipe joint length used when only joint numbers are recorded (m)
METRES_PER_JOINT: float = 12.0


# ── Daily production targets by activity type (metres per full crew day) ─────
DAILY_PRODUCTION_TARGETS: dict[str, float] = {
    "Welding - Mainline":     400,   # ~25-30 joints per day
    "Welding - Section Crew": 300,
    "Welding - Tie-in":       100,
    "Stringing":             1500,
    "Bending":                800,
    "Coating":                600,
    "Ditch":                  500,
    "Lower-in":               800,
    "Backfill":              1000,
    "Grading":               1200,
    "Clearing":               800,
    "Cleanup - Machine":     1500,
    "Cleanup - Final":       1000,
    "HDD":                    200,   # Varies greatly by ground conditions
    "Hydrostatic Testing":   5000,   # Per test section
}
DEFAULT_DAILY_PRODUCTION_TARGET: float = 500

# Cost to redo failed work, as a multiple of the original
REWORK_COST_MULTIPLIERS: dict[str, float] = {
    "Welding - Mainline":     3.0,
    "Welding - Section Crew": 2.5,
    "Welding - Tie-in":       2.5,
    "Coating":                1.5,
    "Ditch":                  1.8,
    "HDD":                    4.0,
}
DEFAULT_REWORK_COST_MULTIPLIER: float = 1.5

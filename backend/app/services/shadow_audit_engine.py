"""
shadow_audit_engine.py — Shadow (true productive) hours vs billed hours

Covers:
  - Billed hours per labour / equipment line
  - Shadow effective hours from production status multipliers, with manual override
  - Block-wide ("systemic") delay override: whole crew stopped together
  - Inertia ratio, block burn rate, value lost to inefficiency
  - Delay classification (NONE / ASSET_SPECIFIC / SYSTEMIC)
  - Value lost attributed to the responsible party of the selected delay reason

Field data is imperfect: numeric fields are parsed leniently (blank or
malformed hours → 0, count → 1) and nothing here raises for data-shape
variance. Blocks are plain dicts with snake_case keys; see
``app.models.audit_schemas`` for the HTTP-facing shape.
"""

from typing import Any, Dict, Iterator, List, NamedTuple, Optional
import logging
import math
import re

from app.models.taxonomy import (
    DelayType,
    ProductionStatus,
    ResponsibleParty,
    get_responsible_party,
)
from app.services.audit_config import (
    DEFAULT_EQUIPMENT_RATE,
    DEFAULT_LABOUR_RATE,
    UNKNOWN_STATUS_MULTIPLIER,
)
from app.services.perf_monitor import timed, tracker

logger = logging.getLogger("pipeaudit-shadow")

_KP_PATTERN = re.compile(r"^(\d+)\+(\d+(?:\.\d+)?)$")


# ---------------------------------------------------------------------------
# Lenient parsing
# ---------------------------------------------------------------------------

def safe_float(value: Any, default: float = 0.0) -> float:
    """Parse a number from field data; blanks, junk, NaN and booleans → ``default``."""
    if value is None or isinstance(value, bool):
        return default
    if isinstance(value, (int, float)):
        number = float(value)
    else:
        text = str(value).strip()
        if not text:
            return default
        try:
            number = float(text)
        except ValueError:
            logger.warning(f"Malformed numeric value {value!r}; using {default}")
            return default
    if math.isnan(number) or math.isinf(number):
        return default
    return number


def safe_hours(value: Any) -> float:
    """Hours are never negative."""
    return max(0.0, safe_float(value))


def safe_count(value: Any) -> float:
    """Headcount / unit count; missing, non-numeric or non-positive → 1."""
    count = safe_float(value, 1.0)
    return count if count > 0 else 1.0


def parse_kp_to_metres(kp: Any) -> Optional[float]:
    """
    Parse a chainage marker to metres.

    ``"6+500"`` → 6500.  Plain numbers ≥ 100 are taken as metres, smaller
    ones as kilometres (``"6.5"`` → 6500).  Returns None when unparseable.
    """
    if kp is None or isinstance(kp, bool):
        return None
    text = str(kp).strip()
    if not text:
        return None
    match = _KP_PATTERN.match(text)
    if match:
        return int(match.group(1)) * 1000 + float(match.group(2))
    try:
        number = float(text)
    except ValueError:
        return None
    if math.isnan(number) or math.isinf(number):
        return None
    return number if number >= 100 else number * 1000


def entry_list(block: Dict[str, Any], key: str) -> List[Dict[str, Any]]:
    """Return ``block[key]`` as a list of dict entries, tolerating absence and junk."""
    value = block.get(key) if isinstance(block, dict) else None
    if not isinstance(value, list):
        return []
    return [e for e in value if isinstance(e, dict)]


# ---------------------------------------------------------------------------
# Entry-level hour calculator
# ---------------------------------------------------------------------------

def get_status_multiplier(status: Any) -> float:
    """Multiplier for a production status; unknown statuses count as full production."""
    parsed = ProductionStatus.parse(status)
    return parsed.multiplier if parsed else UNKNOWN_STATUS_MULTIPLIER


def entry_status(entry: Dict[str, Any]) -> ProductionStatus:
    return ProductionStatus.parse(entry.get("production_status")) or ProductionStatus.ACTIVE


def calculate_shadow_hours(
    billed_hours: Any, status: Any, manual_override: Any = None
) -> float:
    """
    Shadow effective hours = billed hours × multiplier(status).

    A manual override (anything other than None) wins outright and the
    status is ignored.
    """
    if manual_override is not None:
        return safe_hours(manual_override)
    return safe_hours(billed_hours) * get_status_multiplier(status)


def labour_billed_hours(entry: Dict[str, Any]) -> float:
    """(RT + OT) × count."""
    return (safe_hours(entry.get("rt")) + safe_hours(entry.get("ot"))) * safe_count(entry.get("count"))


def equipment_billed_hours(entry: Dict[str, Any]) -> float:
    """hours × count."""
    return safe_hours(entry.get("hours")) * safe_count(entry.get("count"))


class EntryLine(NamedTuple):
    kind: str                 # "labour" | "equipment"
    entry: Dict[str, Any]
    rate_key: Any             # classification or equipment type
    count: float
    billed_hours: float
    shadow_hours: float
    status: ProductionStatus


def iter_entry_lines(block: Dict[str, Any]) -> Iterator[EntryLine]:
    """Yield every labour line, then every equipment line, with per-entry hours computed."""
    for entry in entry_list(block, "labour_entries"):
        billed = labour_billed_hours(entry)
        status = entry_status(entry)
        yield EntryLine(
            "labour", entry, entry.get("classification"), safe_count(entry.get("count")),
            billed, calculate_shadow_hours(billed, status, entry.get("shadow_effective_hours")), status,
        )
    for entry in entry_list(block, "equipment_entries"):
        billed = equipment_billed_hours(entry)
        status = entry_status(entry)
        yield EntryLine(
            "equipment", entry, entry.get("type"), safe_count(entry.get("count")),
            billed, calculate_shadow_hours(billed, status, entry.get("shadow_effective_hours")), status,
        )


# ---------------------------------------------------------------------------
# Block-level aggregation (rate independent)
# ---------------------------------------------------------------------------

def is_delay_status(status: Any) -> bool:
    """
    True for any recorded status other than ACTIVE.

    Unrecognised statuses still count as a delay for classification; only
    their multiplier falls back to full production.
    """
    if status is None or (isinstance(status, str) and not status.strip()):
        return False
    return ProductionStatus.parse(status) is not ProductionStatus.ACTIVE


def systemic_delay_multiplier(block: Dict[str, Any]) -> Optional[float]:
    """Multiplier every entry takes while a block-wide delay is in force, else None."""
    delay = block.get("systemic_delay") if isinstance(block, dict) else None
    if not isinstance(delay, dict) or not delay.get("active"):
        return None
    status = delay.get("status")
    if ProductionStatus.parse(status) is ProductionStatus.ACTIVE:
        return None
    return get_status_multiplier(status)


def has_systemic_delay(block: Dict[str, Any]) -> bool:
    return systemic_delay_multiplier(block) is not None


def calculate_total_billed_hours(block: Dict[str, Any]) -> float:
    return sum(line.billed_hours for line in iter_entry_lines(block))


def calculate_total_shadow_hours(block: Dict[str, Any]) -> float:
    """
    Systemic delay: every entry takes the block status, individual statuses
    and manual overrides are suppressed.  Otherwise: sum of per-entry shadow hours.
    """
    multiplier = systemic_delay_multiplier(block)
    if multiplier is not None:
        return calculate_total_billed_hours(block) * multiplier
    return sum(line.shadow_hours for line in iter_entry_lines(block))


def calculate_inertia_ratio(block: Dict[str, Any]) -> float:
    """Shadow / billed × 100; a block with no billed hours is 100 % efficient."""
    billed = calculate_total_billed_hours(block)
    if billed == 0:
        return 100.0
    return calculate_total_shadow_hours(block) / billed * 100


def get_delay_type(block: Dict[str, Any]) -> DelayType:
    if has_systemic_delay(block):
        return DelayType.SYSTEMIC
    if any(is_delay_status(line.entry.get("production_status")) for line in iter_entry_lines(block)):
        return DelayType.ASSET_SPECIFIC
    return DelayType.NONE


# ---------------------------------------------------------------------------
# ShadowAuditEngine
# ---------------------------------------------------------------------------

class ShadowAuditEngine:
    """
    Rate-aware block auditor.

    Rate tables map a labour classification / equipment type to an hourly
    rate; anything missing (or non-positive) falls back to the default rate.
    The engine holds no mutable state and is safe to share across threads.
    """

    def __init__(
        self,
        labour_rates: Optional[Dict[str, Any]] = None,
        equipment_rates: Optional[Dict[str, Any]] = None,
        default_labour_rate: float = DEFAULT_LABOUR_RATE,
        default_equipment_rate: float = DEFAULT_EQUIPMENT_RATE,
    ) -> None:
        if default_labour_rate <= 0:
            raise ValueError(f"default_labour_rate must be positive; received {default_labour_rate}")
        if default_equipment_rate <= 0:
            raise ValueError(f"default_equipment_rate must be positive; received {default_equipment_rate}")
        self.labour_rates: Dict[str, Any] = dict(labour_rates or {})
        self.equipment_rates: Dict[str, Any] = dict(equipment_rates or {})
        self.default_labour_rate = float(default_labour_rate)
        self.default_equipment_rate = float(default_equipment_rate)

    # -----------------------------------------------------------------------
    # Rates
    # -----------------------------------------------------------------------

    def labour_rate(self, classification: Any) -> float:
        rate = safe_float(self.labour_rates.get(classification)) if classification is not None else 0.0
        return rate if rate > 0 else self.default_labour_rate

    def equipment_rate(self, equipment_type: Any) -> float:
        rate = safe_float(self.equipment_rates.get(equipment_type)) if equipment_type is not None else 0.0
        return rate if rate > 0 else self.default_equipment_rate

    def rate_for(self, line: EntryLine) -> float:
        if line.kind == "labour":
            return self.labour_rate(line.rate_key)
        return self.equipment_rate(line.rate_key)

    def block_burn_rate(self, block: Dict[str, Any]) -> float:
        """Σ rate × count over every labour and equipment line ($/hour for the whole block)."""
        return sum(self.rate_for(line) * line.count for line in iter_entry_lines(block))

    # -----------------------------------------------------------------------
    # Value lost
    # -----------------------------------------------------------------------

    def value_lost(self, block: Dict[str, Any]) -> float:
        """
        Value lost to inefficiency.

        Systemic path: (billed − shadow) × block burn rate.  The burn rate
        stands in for an average hourly rate across the mixed crew; historical
        report totals were produced with this approximation, so it is kept.

        Per-entry path: Σ (billed − shadow) × rate(entry).
        """
        if has_systemic_delay(block):
            total_billed = calculate_total_billed_hours(block)
            total_shadow = calculate_total_shadow_hours(block)
            burn_rate = self.block_burn_rate(block) if total_billed > 0 else 0.0
            return (total_billed - total_shadow) * burn_rate

        return sum(
            (line.billed_hours - line.shadow_hours) * self.rate_for(line)
            for line in iter_entry_lines(block)
        )

    def value_lost_by_party(self, block: Dict[str, Any]) -> Dict[str, float]:
        """
        Attribute lost value to owner / contractor / neutral / unknown.

        A systemic block is charged in full to the party behind
        ``systemic_delay.reason``; otherwise each entry's positive loss goes
        to the party behind its own ``drag_reason``.
        """
        result = {party.value: 0.0 for party in ResponsibleParty}
        result["total"] = 0.0

        if has_systemic_delay(block):
            lost = self.value_lost(block)
            if lost > 0:
                party = get_responsible_party(block["systemic_delay"].get("reason"))
                result[party.value] += lost
                result["total"] += lost
        else:
            for line in iter_entry_lines(block):
                hours_lost = line.billed_hours - line.shadow_hours
                if hours_lost <= 0:
                    continue
                lost = hours_lost * self.rate_for(line)
                party = get_responsible_party(line.entry.get("drag_reason"))
                result[party.value] += lost
                result["total"] += lost

        return {k: round(v, 2) for k, v in result.items()}

    # -----------------------------------------------------------------------
    # Summary
    # -----------------------------------------------------------------------

    @timed
    def summarize_block(self, block: Dict[str, Any]) -> Dict[str, Any]:
        """
        Shadow audit summary for one activity block.

        Returns total_billed_hours, total_shadow_hours, inertia_ratio (1 dp),
        total_value_lost, delay_type, block_burn_rate (2 dp) and the block's
        systemic_delay record (or None).
        """
        if not isinstance(block, dict):
            block = {}
        total_billed = calculate_total_billed_hours(block)
        total_shadow = calculate_total_shadow_hours(block)
        inertia = calculate_inertia_ratio(block)
        value_lost = self.value_lost(block)
        delay_type = get_delay_type(block)
        burn_rate = self.block_burn_rate(block)

        systemic_delay = block.get("systemic_delay")
        summary = {
            "total_billed_hours": round(total_billed, 2),
            "total_shadow_hours": round(total_shadow, 2),
            "inertia_ratio": round(inertia, 1),
            "total_value_lost": round(value_lost, 2),
            "delay_type": delay_type.value,
            "block_burn_rate": round(burn_rate, 2),
            "systemic_delay": dict(systemic_delay) if isinstance(systemic_delay, dict) else None,
        }
        tracker.record_blocks_audited()
        logger.debug(
            f"Block {block.get('id', '?')} ({block.get('activity_type') or 'untyped'}): "
            f"billed={summary['total_billed_hours']} shadow={summary['total_shadow_hours']} "
            f"delay={summary['delay_type']}"
        )
        return summary

    def summarize_blocks(self, blocks: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        return [self.summarize_block(block) for block in blocks or []]

"""
Inbound activity-block payload models.

Reports are stored by the field app as camelCase JSON (``labourEntries``,
``productionStatus``, ``startKP``); these models accept that shape as well
as snake_case names, and ``model_dump()`` hands the engines snake_case
dicts.  Numeric fields are typed ``Any`` on purpose: field data is parsed
leniently by the engines, so only the structure is validated here.
"""
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class _FieldDataModel(BaseModel):
    """Accepts alias or field name; keeps unknown keys so nothing entered in the field is dropped."""
    model_config = ConfigDict(populate_by_name=True, extra="allow")


class LabourEntryIn(_FieldDataModel):
    classification: Optional[str] = None
    count: Any = None
    rt: Any = None
    ot: Any = None
    production_status: Optional[str] = Field(None, alias="productionStatus")
    shadow_effective_hours: Any = Field(None, alias="shadowEffectiveHours")
    drag_reason: Optional[str] = Field(None, alias="dragReason")
    drag_note: Optional[str] = Field(None, alias="dragNote")


class EquipmentEntryIn(_FieldDataModel):
    type: Optional[str] = None
    count: Any = None
    hours: Any = None
    production_status: Optional[str] = Field(None, alias="productionStatus")
    shadow_effective_hours: Any = Field(None, alias="shadowEffectiveHours")
    drag_reason: Optional[str] = Field(None, alias="dragReason")
    drag_note: Optional[str] = Field(None, alias="dragNote")


class SystemicDelayIn(_FieldDataModel):
    active: bool = False
    status: Optional[str] = None
    reason: Optional[str] = None
    note: Optional[str] = None


class WasteDataIn(_FieldDataModel):
    """Directive 050 drilling-waste record (HDD / HD Bores)."""
    total_volume_mixed_m3: Any = Field(None, alias="totalVolumeMixedM3")
    volume_in_storage_m3: Any = Field(None, alias="volumeInStorageM3")
    volume_hauled_m3: Any = Field(None, alias="volumeHauledM3")
    disposal_facility_name: Optional[str] = Field(None, alias="disposalFacilityName")
    additives: List[Any] = Field(default_factory=list)


class WeldDataIn(_FieldDataModel):
    joint_numbers: List[Any] = Field(default_factory=list, alias="jointNumbers")
    repair_joints: List[Any] = Field(default_factory=list, alias="repairJoints")


class StringDataIn(_FieldDataModel):
    pipe_tallied: Any = Field(None, alias="pipeTallied")


class DitchDataIn(_FieldDataModel):
    total_length: Any = Field(None, alias="totalLength")


class CoatingDataIn(_FieldDataModel):
    holidays_found: Any = Field(None, alias="holidaysFound")
    holidays_repaired: Any = Field(None, alias="holidaysRepaired")


class ShadowAuditSummaryIn(_FieldDataModel):
    """Summary snapshot the field app may already have stored on a block."""
    total_billed_hours: Any = Field(None, alias="totalBilledHours")
    total_shadow_hours: Any = Field(None, alias="totalShadowHours")
    inertia_ratio: Any = Field(None, alias="inertiaRatio")
    total_value_lost: Any = Field(None, alias="totalValueLost")
    delay_type: Optional[str] = Field(None, alias="delayType")
    block_burn_rate: Any = Field(None, alias="blockBurnRate")
    systemic_delay: Optional[SystemicDelayIn] = Field(None, alias="systemicDelay")


class ActivityBlockIn(_FieldDataModel):
    id: Any = None
    activity_type: Optional[str] = Field(None, alias="activityType")
    start_kp: Any = Field(None, alias="startKP")
    end_kp: Any = Field(None, alias="endKP")
    labour_entries: List[LabourEntryIn] = Field(default_factory=list, alias="labourEntries")
    equipment_entries: List[EquipmentEntryIn] = Field(default_factory=list, alias="equipmentEntries")
    quality_data: Dict[str, Any] = Field(default_factory=dict, alias="qualityData")
    work_photos: List[Any] = Field(default_factory=list, alias="workPhotos")
    systemic_delay: Optional[SystemicDelayIn] = Field(None, alias="systemicDelay")
    chainage_overlap_reason: Optional[str] = Field(None, alias="chainageOverlapReason")
    chainage_gap_reason: Optional[str] = Field(None, alias="chainageGapReason")
    waste_data: Optional[WasteDataIn] = Field(None, alias="wasteData")
    weld_data: Optional[WeldDataIn] = Field(None, alias="weldData")
    string_data: Optional[StringDataIn] = Field(None, alias="stringData")
    ditch_data: Optional[DitchDataIn] = Field(None, alias="ditchData")
    coating_data: Optional[CoatingDataIn] = Field(None, alias="coatingData")
    shadow_audit_summary: Optional[ShadowAuditSummaryIn] = Field(None, alias="shadowAuditSummary")


class ReportIn(_FieldDataModel):
    id: Any = None
    date: Optional[str] = None
    spread: Optional[str] = None
    activity_blocks: List[ActivityBlockIn] = Field(default_factory=list, alias="activityBlocks")


class MentorAlertIn(_FieldDataModel):
    id: Any = None
    status: Optional[str] = None
    message: Optional[str] = None

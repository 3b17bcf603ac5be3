"""
Quality-check field catalog per activity type (API 1169 based).

Each activity type maps to the fields an inspector is expected to fill in
``quality_data``. Collapsible sections are flattened here; each field keeps
the label of the section it came from so missing-field messages can point
the inspector at the right part of the form.

Activity types handled by a dedicated log component carry an empty catalog.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from app.models.taxonomy import ActivityType

# Field types that never count toward completeness
NON_INPUT_FIELD_TYPES = frozenset({"calculated", "info", "header"})


@dataclass(frozen=True)
class QualityField:
    name: str
    label: str
    type: str = "text"
    section: Optional[str] = None
    read_only: bool = False

    @property
    def is_required(self) -> bool:
        return self.type not in NON_INPUT_FIELD_TYPES and not self.read_only


def _section(label: str, *fields: tuple) -> tuple[QualityField, ...]:
    return tuple(QualityField(name, field_label, ftype, section=label) for name, field_label, ftype in fields)


def _flat(*fields: tuple) -> tuple[QualityField, ...]:
    return tuple(QualityField(name, field_label, ftype) for name, field_label, ftype in fields)


QUALITY_FIELDS_BY_ACTIVITY: dict[ActivityType, tuple[QualityField, ...]] = {
    ActivityType.ACCESS: _flat(
        ("accessWidth", "Access Width (m)", "number"),
        ("surfaceCondition", "Surface Condition", "select"),
        ("drainageCulverts", "Drainage/Culverts", "select"),
        ("escStatus", "ESC Status (Silt Fence/Wattles)", "select"),
        ("mattingIntegrity", "Matting Integrity", "select"),
        ("gateFenceSecurity", "Gate/Fence Security", "select"),
        ("cleaningStationActive", "Cleaning Station Active", "select"),
        ("waterbarsFunctional", "Waterbars Functional", "select"),
    ),
    ActivityType.TOPSOIL: (
        _section(
            "Horizon Separation & Stripping Depth",
            ("horizonSeparationConfirmed", "Horizon Separation Confirmed?", "select"),
            ("colorChangeVisible", "Color Change Visible?", "select"),
            ("horizonPhotoTaken", "Photo Taken?", "select"),
            ("easSpecDepth", "EAS Spec Depth (cm)", "number"),
            ("actualDepth", "Actual Depth (cm)", "number"),
            ("depthVariance", "Depth Variance (cm)", "calculated"),
            ("depthCompliance", "Depth Compliance", "calculated"),
            ("measurementMethod", "Measurement Method", "select"),
            ("measurementPoints", "# of Measurement Points", "number"),
        )
        + _section(
            "Admixture Assessment",
            ("admixtureVisual", "Visual Assessment", "select"),
            ("admixtureCompliance", "Compliance", "select"),
            ("admixtureCause", "Cause (if >5%)", "select"),
            ("admixtureCorrectiveAction", "Corrective Action", "text"),
            ("admixturePhotoTaken", "Photo Taken?", "select"),
        )
        + _section(
            "Stockpile Management",
            ("stockpileSeparationDistance", "Separation Distance (m)", "number"),
            ("stockpileSeparationCompliance", "Separation Compliance (>=1.0m)", "select"),
            ("topsoilPileLocation", "Topsoil Pile Location", "select"),
            ("stockpilePhotoTaken", "Photo Taken?", "select"),
        )
        + _section(
            "Windrows & Wildlife Passage",
            ("windrowBreaksPresent", "Breaks Present?", "select"),
            ("windrowBreakSpacing", "Break Spacing (m)", "number"),
            ("wildlifePassageOK", "Wildlife Passage OK?", "select"),
            ("crossDrainageOK", "Cross-Drainage OK?", "select"),
            ("windrowPhotoTaken", "Photo Taken?", "select"),
        )
        + _section(
            "Buffer & Setback Compliance",
            ("bufferZonesPresent", "Buffer Zones Present?", "select"),
            ("stakesVisible", "Stakes Visible?", "select"),
            ("strippingStoppedAtStakes", "Stripping Stopped at Stakes?", "select"),
            ("bufferEncroachment", "Buffer Encroachment?", "select"),
            ("bufferKPLocation", "Buffer Location (KP)", "text"),
            ("bufferGPSMarked", "GPS Location Recorded?", "select"),
            ("bufferPhotoTaken", "Buffer Photo Taken?", "select"),
        )
        + _section(
            "Weather & Erosion Risk",
            ("currentWeatherConditions", "Current Conditions", "select"),
            ("rainForecast24hr", "Rain in Next 24hr?", "select"),
            ("pilesStabilizedBeforeRain", "Piles Stabilized?", "select"),
            ("erosionRiskLevel", "Erosion Risk Level", "select"),
            ("escMeasuresInPlace", "ESC Measures in Place?", "select"),
        )
    ),
    ActivityType.STRINGING: (
        _section(
            "Pipe Receiving Inspection",
            ("truckNumber", "Truck/Load Number", "text"),
            ("tallyNumber", "Tally Number", "text"),
            ("jointsReceived", "# Joints Received", "number"),
            ("pipeSize", "Pipe Size (NPS)", "select"),
            ("pipeGrade", "Pipe Grade", "select"),
            ("wallThicknessSpec", "Wall Thickness (mm)", "number"),
            ("coatingType", "Coating Type", "select"),
        )
        + _section(
            "Mill Certification Verification",
            ("heatNumbersRecorded", "Heat Numbers Recorded?", "select"),
            ("heatNumbersMatch", "Heat Numbers Match Mill Cert?", "select"),
            ("wallThicknessVerified", "Wall Thickness per Spec?", "select"),
            ("gradeMatchesSpec", "Grade Matches Specification?", "select"),
            ("ndtCertPresent", "NDT Certification Present?", "select"),
            ("millCertPhotoTaken", "Mill Cert Photo Taken?", "select"),
        )
        + _section(
            "Visual Inspection",
            ("coatingCondition", "Coating Condition", "select"),
            ("pipeEndCondition", "Pipe End/Bevel Condition", "select"),
            ("dentsDeformations", "Dents or Deformations?", "select"),
            ("damageLocation", "Damage Location/Description", "text"),
            ("visualInspectionPhoto", "Damage Photo Taken?", "select"),
        )
        + _section(
            "Dimensional Verification",
            ("sampleFrequency", "Sample Frequency", "text"),
            ("odMeasured", "OD Measurement (mm)", "number"),
            ("odWithinTolerance", "OD Within Tolerance?", "select"),
            ("wtMeasured", "Wall Thickness Measured (mm)", "number"),
            ("wtWithinTolerance", "WT Within Tolerance?", "select"),
            ("ovalityCheck", "Ovality Within Spec?", "select"),
        )
        + _section(
            "Stringing Operations",
            ("stringingMethod", "Stringing Method", "select"),
            ("equipmentUsed", "Equipment Used", "select"),
            ("pipeHandling", "Pipe Handling", "select"),
            ("skidsBlocksUsed", "Skids/Blocks Used?", "select"),
            ("groundCondition", "Ground Condition", "select"),
        )
        + _section(
            "Acceptance & Disposition",
            ("pipeAccepted", "Pipe Accepted?", "select"),
            ("rejectedJoints", "# Joints Rejected", "number"),
            ("rejectionReason", "Rejection Reason", "select"),
            ("disposition", "Rejected Pipe Disposition", "select"),
            ("acceptanceNotes", "Notes", "textarea"),
        )
    ),
    ActivityType.BENDING: _flat(
        ("bendAngle", "Bend Angle (deg)", "number"),
        ("bendRadius", "Bend Radius (m)", "number"),
        ("ovalityPercent", "Ovality %", "number"),
        ("wrinkleCheck", "Wrinkle Check", "select"),
        ("bendTemp", "Temperature (C)", "number"),
        ("distanceToWeld", "Distance to Nearest Weld (m)", "number"),
    ),
    ActivityType.WELDING_MAINLINE: _flat(
        ("weldNumber", "Weld Number", "text"),
        ("welderID", "Welder ID", "text"),
        ("wpsNumber", "WPS Number", "text"),
        ("preheatTemp", "Preheat Temp (C)", "number"),
        ("ndtType", "NDT Type", "select"),
        ("ndtResult", "NDT Result", "select"),
        ("repairRequired", "Repair Required", "select"),
        ("repairType", "Repair Type", "select"),
        ("repairPass", "Repair Pass #", "text"),
        ("rootOpening", "Root Opening (mm)", "number"),
        ("hiLo", "Hi-Lo (mm)", "number"),
        ("gap", "Gap (mm)", "number"),
    ),
    ActivityType.LOWER_IN: _flat(
        ("beddingPadding", "Bedding/Padding", "select"),
        ("clearance", "Foreign Line Clearance (m)", "number"),
        ("liftPlanVerified", "Lift Plan Verified", "select"),
        ("equipmentInspected", "Equipment Inspected", "select"),
    ),
    ActivityType.BACKFILL: _flat(
        ("liftThickness", "Lift Thickness (cm)", "number"),
        ("compactionPercent", "Compaction %", "number"),
        ("rockShield", "Rock Shield Used", "select"),
    ),
    ActivityType.HD_BORES: _flat(
        ("boreLength", "Bore Length (m)", "number"),
        ("casingSize", "Casing Size (in)", "number"),
        ("carrierPipeSize", "Carrier Pipe Size (in)", "number"),
        ("annularSpace", "Annular Space Filled", "select"),
    ),
    ActivityType.FROST_PACKING: _flat(
        ("frostPackMaterial", "Packing Material", "select"),
        ("frostPackDepth", "Cover Depth (cm)", "number"),
        ("frostPackMethod", "Placement Method", "select"),
        ("groundCondition", "Ground Condition", "select"),
        ("frostDepth", "Frost Depth (cm)", "number"),
        ("ambientTemp", "Ambient Temp (C)", "number"),
        ("pipeProtection", "Pipe Protection in Place", "select"),
        ("compactionAchieved", "Compaction Achieved", "select"),
    ),
}


def required_fields(activity_type: ActivityType) -> tuple[QualityField, ...]:
    """Required (user-entered) fields for an activity type; empty when none are catalogued."""
    return tuple(f for f in QUALITY_FIELDS_BY_ACTIVITY.get(activity_type, ()) if f.is_required)

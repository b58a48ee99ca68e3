"""Scan quality classification.

Scan quality is never rolled: it follows from which scan actions the operator
actually ran during the encounter and whether a piece of equipment was down
while they ran. The hold-to-scan helpers map a press duration onto the same
four levels for front ends that use the pressure mechanic.
"""

from __future__ import annotations

from enum import Enum
from typing import FrozenSet, Iterable, List, Optional

from .seeded import seeded_random


class ScanQuality(Enum):
    PARTIAL = "PARTIAL"
    STANDARD = "STANDARD"
    DEEP = "DEEP"
    COMPLETE = "COMPLETE"


class EquipmentType(Enum):
    BIOMETRIC_SCANNER = "BIOMETRIC_SCANNER"
    BPM_MONITOR = "BPM_MONITOR"


_QUALITY_ORDER = (
    ScanQuality.PARTIAL,
    ScanQuality.STANDARD,
    ScanQuality.DEEP,
    ScanQuality.COMPLETE,
)

_DESCRIPTIONS = {
    ScanQuality.PARTIAL: "Basic identity only - incomplete data",
    ScanQuality.STANDARD: "Full identity + basic anomalies",
    ScanQuality.DEEP: "Full identity + detailed analysis",
    ScanQuality.COMPLETE: "Perfect scan with all details",
}

_WARNINGS = {
    ScanQuality.PARTIAL: "SCAN INTERRUPTED - Partial data only. Critical information may be missing.",
    ScanQuality.STANDARD: "SCAN INCOMPLETE - Standard resolution. Some details may be unclear.",
    ScanQuality.DEEP: None,
    ScanQuality.COMPLETE: None,
}

_COMPLETENESS = {
    ScanQuality.PARTIAL: 0.4,
    ScanQuality.STANDARD: 0.7,
    ScanQuality.DEEP: 0.9,
    ScanQuality.COMPLETE: 1.0,
}

# Fraction of the full hold needed to reach each level.
_PRESSURE_THRESHOLDS = {
    ScanQuality.PARTIAL: 0.0,
    ScanQuality.STANDARD: 0.33,
    ScanQuality.DEEP: 0.66,
    ScanQuality.COMPLETE: 0.9,
}

# Percent chance per subject that each device is down.
_FAILURE_RATES = {
    EquipmentType.BPM_MONITOR: 30,
    EquipmentType.BIOMETRIC_SCANNER: 25,
}


def classify_scan_quality(
    identity_scanned: bool,
    health_scanned: bool,
    equipment_failure: bool = False,
) -> ScanQuality:
    """Classify the encounter's scan coverage.

    No scan -> PARTIAL, one of identity/health -> STANDARD, both -> COMPLETE.
    An equipment failure during the scans costs one level.
    """
    ran = int(bool(identity_scanned)) + int(bool(health_scanned))
    if ran == 0:
        level = 0
    elif ran == 1:
        level = 1
    else:
        level = 3
    if equipment_failure:
        level = max(0, level - 1)
    return _QUALITY_ORDER[level]


def is_incomplete_scan(quality: ScanQuality) -> bool:
    return quality in (ScanQuality.PARTIAL, ScanQuality.STANDARD)


def get_incomplete_scan_warning(quality: ScanQuality) -> Optional[str]:
    """Operator-facing warning shown beside a dossier revealed from this scan."""
    return _WARNINGS[quality]


def scan_quality_description(quality: ScanQuality) -> str:
    return _DESCRIPTIONS[quality]


def scan_completeness(quality: ScanQuality) -> float:
    return _COMPLETENESS[quality]


def determine_scan_quality(pressure: float) -> ScanQuality:
    """Map a normalized hold pressure (0..1) to a scan quality."""
    if pressure < _PRESSURE_THRESHOLDS[ScanQuality.STANDARD]:
        return ScanQuality.PARTIAL
    if pressure < _PRESSURE_THRESHOLDS[ScanQuality.DEEP]:
        return ScanQuality.STANDARD
    if pressure < _PRESSURE_THRESHOLDS[ScanQuality.COMPLETE]:
        return ScanQuality.DEEP
    return ScanQuality.COMPLETE


def determine_scan_quality_from_duration(duration_ms: float, max_duration_ms: float = 3000) -> ScanQuality:
    if max_duration_ms <= 0:
        raise ValueError("max_duration_ms must be positive")
    pressure = min(1.0, max(0.0, duration_ms / max_duration_ms))
    return determine_scan_quality(pressure)


def min_duration_for_quality(quality: ScanQuality, max_duration_ms: float = 3000) -> int:
    return int(max_duration_ms * _PRESSURE_THRESHOLDS[quality])


def determine_equipment_failures(subject_id: str) -> FrozenSet[EquipmentType]:
    """Seeded per-subject equipment failures.

    Each device rolls against its own seed so the two failures are
    independent of each other.
    """
    failures: List[EquipmentType] = []
    for equipment, rate in _FAILURE_RATES.items():
        roll = int(seeded_random(f"{subject_id}:{equipment.value}") * 100)
        if roll < rate:
            failures.append(equipment)
    return frozenset(failures)


def coerce_equipment(values: Iterable[object]) -> FrozenSet[EquipmentType]:
    out = set()
    for v in values:
        out.add(v if isinstance(v, EquipmentType) else EquipmentType(str(v)))
    return frozenset(out)

"""Dossier gap generation.

Every subject's dossier arrives with between one and four of its five
identity fields redacted. Which fields are redacted is a pure function of the
subject id, so a subject shows the same gaps on every playthrough.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, FrozenSet, Mapping, Optional, Tuple

from . import metrics
from .scan_quality import ScanQuality
from .seeded import seeded_random

logger = logging.getLogger("amber_engine")

REDACTED = "[REDACTED]"
MIN_GAPS = 1
MAX_GAPS = 4


class DossierField(Enum):
    NAME = "name"
    DATE_OF_BIRTH = "date_of_birth"
    ADDRESS = "address"
    OCCUPATION = "occupation"
    SEX = "sex"


# Field index is part of the seed; do not reorder.
DOSSIER_FIELDS: Tuple[DossierField, ...] = (
    DossierField.NAME,
    DossierField.DATE_OF_BIRTH,
    DossierField.ADDRESS,
    DossierField.OCCUPATION,
    DossierField.SEX,
)

# (base, spread) for the gap count when a scan quality is known.
_QUALITY_GAP_BANDS = {
    ScanQuality.PARTIAL: (3, 2),
    ScanQuality.STANDARD: (2, 2),
    ScanQuality.DEEP: (1, 2),
    ScanQuality.COMPLETE: (1, 1),
}


@dataclass(frozen=True)
class DossierGaps:
    subject_id: str
    redacted: FrozenSet[DossierField]

    def __len__(self) -> int:
        return len(self.redacted)

    def __contains__(self, item: object) -> bool:
        return item in self.redacted

    def is_missing(self, field: DossierField) -> bool:
        return field in self.redacted

    def ordered(self) -> Tuple[DossierField, ...]:
        return tuple(f for f in DOSSIER_FIELDS if f in self.redacted)

    def apply(self, identity: Mapping[str, Any]) -> Dict[str, Any]:
        """Return a copy of ``identity`` with redacted fields replaced."""
        out = dict(identity)
        for f in DOSSIER_FIELDS:
            if f in self.redacted:
                out[f.value] = REDACTED
        return out

    def as_dict(self) -> Dict[str, bool]:
        return {f.value: f in self.redacted for f in DOSSIER_FIELDS}


def _gap_count(subject_id: str, scan_quality: Optional[ScanQuality]) -> int:
    r = seeded_random(subject_id)
    if scan_quality is None:
        count = int(r * 4) + 1
    else:
        base, spread = _QUALITY_GAP_BANDS[scan_quality]
        count = base + int(r * spread)
    return max(MIN_GAPS, min(MAX_GAPS, count))


def generate_dossier_gaps(subject_id: str, scan_quality: Optional[ScanQuality] = None) -> DossierGaps:
    """Pick the redacted identity fields for a subject.

    Fields are ranked by a per-field seeded value (seed = subject id + field
    index) and the first ``gap_count`` are redacted.
    """
    if not isinstance(subject_id, str) or not subject_id.strip():
        logger.warning("Dossier requested for blank subject id %r; using minimum gaps", subject_id)
        metrics.record_content_warning("blank_subject_id")
        subject_id = "" if subject_id is None else str(subject_id)
        return DossierGaps(subject_id=subject_id, redacted=frozenset(DOSSIER_FIELDS[:MIN_GAPS]))

    count = _gap_count(subject_id, scan_quality)
    ranked = sorted(
        range(len(DOSSIER_FIELDS)),
        key=lambda i: (seeded_random(subject_id + str(i)), i),
    )
    chosen = frozenset(DOSSIER_FIELDS[i] for i in ranked[:count])
    return DossierGaps(subject_id=subject_id, redacted=chosen)


def is_field_missing(gaps: DossierGaps, field: DossierField) -> bool:
    return gaps.is_missing(field)


def redacted_value(field: DossierField) -> str:
    return REDACTED

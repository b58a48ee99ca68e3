"""Ambiguous biometric readings.

Vital signs are a deliberately soft interrogation signal. A reading shows a
BPM window around the subject's baseline, a stability class and a confidence
score, and some fraction of readings come back as equipment errors. The
reading never exposes the baseline itself.

The random source is pluggable. ``BiometricPolicy.SEEDED`` derives it from the
subject id and the observation key, ``BiometricPolicy.EPHEMERAL`` rolls fresh
entropy per observation. Either way the encounter latches the first reading
per observation key (see ``amber_engine.encounter``).
"""

from __future__ import annotations

import logging
import random
import re
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional, Protocol, Union

from . import metrics
from .seeded import SeededRandom

logger = logging.getLogger("amber_engine")

DEFAULT_BASELINE_BPM = 78
DEFAULT_EQUIPMENT_RELIABILITY = 85
MIN_DISPLAY_BPM = 40

STABLE_MAX_BPM = 85
FLUCTUATING_MAX_BPM = 100

_INT_RE = re.compile(r"\d+")


class RandomSource(Protocol):
    def random(self) -> float:
        ...


class Stability(Enum):
    STABLE = "STABLE"
    FLUCTUATING = "FLUCTUATING"
    ANOMALOUS = "ANOMALOUS"
    ERROR = "ERROR"


class BiometricPolicy(Enum):
    SEEDED = "seeded"
    EPHEMERAL = "ephemeral"


_CONFIDENCE_PENALTY = {
    Stability.STABLE: 0,
    Stability.FLUCTUATING: 15,
    Stability.ANOMALOUS: 25,
}


@dataclass(frozen=True)
class BpmRange:
    min: int
    max: int


@dataclass(frozen=True)
class AmbiguousBiometrics:
    bpm_range: BpmRange
    stability: Stability
    confidence: int
    is_error: bool

    @classmethod
    def error(cls) -> "AmbiguousBiometrics":
        return cls(bpm_range=BpmRange(0, 0), stability=Stability.ERROR, confidence=0, is_error=True)

    def display(self) -> str:
        if self.is_error:
            return "ERR"
        return f"{self.bpm_range.min}-{self.bpm_range.max} BPM"

    def as_dict(self) -> Dict[str, Any]:
        return {
            "bpm_range": {"min": self.bpm_range.min, "max": self.bpm_range.max},
            "stability": self.stability.value,
            "confidence": self.confidence,
            "is_error": self.is_error,
        }


def parse_baseline_bpm(baseline: Union[int, float, str, None]) -> Optional[int]:
    """Normalize an authored baseline to an integer BPM.

    Returns None when the text marks an equipment error ("ERROR").
    Unusable values fall back to the default baseline with a content warning.
    """
    if isinstance(baseline, bool):
        baseline = None
    if isinstance(baseline, (int, float)):
        if baseline > 0:
            return int(baseline)
        logger.warning("Non-positive baseline BPM %r; using %d", baseline, DEFAULT_BASELINE_BPM)
        metrics.record_content_warning("baseline_bpm")
        return DEFAULT_BASELINE_BPM
    if isinstance(baseline, str):
        if "ERROR" in baseline.upper():
            return None
        m = _INT_RE.search(baseline)
        if m:
            return int(m.group(0))
        return DEFAULT_BASELINE_BPM
    logger.warning("Missing baseline BPM (%r); using %d", baseline, DEFAULT_BASELINE_BPM)
    metrics.record_content_warning("baseline_bpm")
    return DEFAULT_BASELINE_BPM


def classify_stability(bpm: int) -> Stability:
    if bpm > FLUCTUATING_MAX_BPM:
        return Stability.ANOMALOUS
    if bpm > STABLE_MAX_BPM:
        return Stability.FLUCTUATING
    return Stability.STABLE


def random_source_for(
    policy: BiometricPolicy,
    subject_id: str,
    observation_key: str = "bpm",
) -> RandomSource:
    if policy is BiometricPolicy.SEEDED:
        return SeededRandom(f"{subject_id}:{observation_key}")
    return random.Random()


def generate_ambiguous_biometrics(
    baseline_bpm: Union[int, float, str, None],
    equipment_reliability: float = DEFAULT_EQUIPMENT_RELIABILITY,
    rng: Optional[RandomSource] = None,
) -> AmbiguousBiometrics:
    """Turn a true baseline into a displayed reading.

    With probability ``1 - equipment_reliability/100`` the reading is a hard
    ERROR. Otherwise the window is baseline +/- 4..8 BPM (floored at 40) and
    confidence starts at 85..100 before the stability penalty, floored at 50.
    """
    rng = rng or random.Random()
    bpm = parse_baseline_bpm(baseline_bpm)
    if bpm is None:
        metrics.record_equipment_error()
        return AmbiguousBiometrics.error()

    reliability = min(100.0, max(0.0, float(equipment_reliability)))
    if rng.random() > reliability / 100.0:
        logger.debug("Biometric equipment error (reliability=%s)", reliability)
        metrics.record_equipment_error()
        return AmbiguousBiometrics.error()

    variance = 4 + int(rng.random() * 5)
    low = max(MIN_DISPLAY_BPM, bpm - variance)
    high = max(low, bpm + variance)

    stability = classify_stability(bpm)
    confidence = 85 + int(rng.random() * 16)
    confidence = max(50, confidence - _CONFIDENCE_PENALTY[stability])

    return AmbiguousBiometrics(
        bpm_range=BpmRange(low, high),
        stability=stability,
        confidence=confidence,
        is_error=False,
    )

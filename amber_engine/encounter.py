"""Encounter: one operator's review of one subject.

An encounter owns the protocol gate for the subject, caches the derived
dossier gaps, latches biometric observations, and performs the decision
commit. The commit holds the encounter lock while it checks legality, freezes
the gate and scores the frozen snapshot, so no operator action can land
between the freeze and the scoring.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, Optional, Union

from . import metrics
from .biometrics import AmbiguousBiometrics, generate_ambiguous_biometrics, random_source_for
from .config import EngineConfig
from .consequence import Consequence, compute_consequence
from .dossier import DossierGaps, generate_dossier_gaps
from .errors import AMB_E_DECISION_COMMITTED, AMB_E_DECISION_ILLEGAL, invariant_violation
from .protocol import (
    Decision,
    GateRequirements,
    ProtocolAction,
    ProtocolGate,
    ProtocolStatus,
    is_decision_legal,
)
from .scan_quality import (
    EquipmentType,
    ScanQuality,
    determine_equipment_failures,
    get_incomplete_scan_warning,
)
from .subjects import Subject

logger = logging.getLogger("amber_engine")


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass(frozen=True)
class DecisionRecord:
    """Everything archived about one committed decision."""

    subject_id: str
    decision: Decision
    status: ProtocolStatus
    consequence: Consequence
    committed_at_utc: str

    def as_dict(self) -> Dict[str, Any]:
        return {
            "subject_id": self.subject_id,
            "decision": self.decision.value,
            "status": self.status.as_dict(),
            "consequence": self.consequence.as_dict(),
            "committed_at_utc": self.committed_at_utc,
        }


class Encounter:
    def __init__(
        self,
        subject: Subject,
        config: Optional[EngineConfig] = None,
        requirements: Optional[GateRequirements] = None,
        equipment_failures: Optional[Iterable[EquipmentType]] = None,
    ):
        self.subject = subject
        self.config = config or EngineConfig()
        if equipment_failures is None:
            equipment_failures = determine_equipment_failures(subject.id)
        self.gate = ProtocolGate(
            requirements,
            equipment_failures=equipment_failures,
            max_questions=self.config.max_questions,
        )
        self._lock = threading.RLock()
        self._gaps: Dict[Optional[ScanQuality], DossierGaps] = {}
        self._readings: Dict[str, AmbiguousBiometrics] = {}
        self._record: Optional[DecisionRecord] = None

    @property
    def status(self) -> ProtocolStatus:
        return self.gate.status

    @property
    def record(self) -> Optional[DecisionRecord]:
        return self._record

    def perform(self, action: Union[ProtocolAction, str]) -> bool:
        with self._lock:
            return self.gate.dispatch(action)

    def dossier_gaps(self) -> DossierGaps:
        """Redacted fields for this subject.

        With ``quality_scaled_gaps`` the count follows the current scan
        quality; each quality's gaps are cached so a level never re-rolls.
        """
        quality = self.scan_quality() if self.config.quality_scaled_gaps else None
        with self._lock:
            gaps = self._gaps.get(quality)
            if gaps is None:
                gaps = generate_dossier_gaps(self.subject.id, quality)
                self._gaps[quality] = gaps
            return gaps

    def dossier_view(self) -> Dict[str, Any]:
        """Identity fields as displayed, with the scan-quality warning."""
        quality = self.scan_quality()
        return {
            "identity": self.dossier_gaps().apply(self.subject.identity.as_dict()),
            "scan_quality": quality.value,
            "warning": get_incomplete_scan_warning(quality),
        }

    def scan_quality(self) -> ScanQuality:
        return self.gate.status.scan_quality()

    def observe_biometrics(self, observation_key: str = "bpm") -> AmbiguousBiometrics:
        """Take (or replay) the reading for one scan action.

        The first reading per key is latched; re-renders get the same value.
        """
        with self._lock:
            cached = self._readings.get(observation_key)
            if cached is not None:
                return cached
            if EquipmentType.BPM_MONITOR in self.gate.status.equipment_failures:
                metrics.record_equipment_error()
                reading = AmbiguousBiometrics.error()
            else:
                rng = random_source_for(self.config.biometric_policy, self.subject.id, observation_key)
                reading = generate_ambiguous_biometrics(
                    self.subject.baseline_bpm,
                    self.config.equipment_reliability,
                    rng=rng,
                )
            self._readings[observation_key] = reading
            return reading

    def commit_decision(self, decision: Union[Decision, str]) -> DecisionRecord:
        """Freeze the gate and score the decision. Callable exactly once."""
        if not isinstance(decision, Decision):
            try:
                decision = Decision(str(decision).strip().upper())
            except ValueError:
                raise invariant_violation(AMB_E_DECISION_ILLEGAL, f"unknown decision {decision!r}") from None

        with self._lock:
            if self._record is not None or self.gate.has_decision:
                raise invariant_violation(
                    AMB_E_DECISION_COMMITTED,
                    "a decision was already committed for this encounter",
                    subject_id=self.subject.id,
                )
            if not is_decision_legal(self.gate.status, decision):
                raise invariant_violation(
                    AMB_E_DECISION_ILLEGAL,
                    f"{decision.value} is not permitted yet: {self.gate.next_step_prompt()}",
                    subject_id=self.subject.id,
                    decision=decision.value,
                )
            frozen = self.gate.freeze()
            consequence = compute_consequence(decision, frozen, self.subject, self.config.penalty_table)
            self._record = DecisionRecord(
                subject_id=self.subject.id,
                decision=decision,
                status=frozen,
                consequence=consequence,
                committed_at_utc=_now_iso(),
            )

        metrics.record_decision(decision.value, consequence.type.value)
        logger.info(
            "Decision committed: subject=%s decision=%s consequence=%s",
            self.subject.id,
            decision.value,
            consequence.type.value,
        )
        return self._record

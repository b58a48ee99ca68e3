"""Protocol gate: evidence-gathering state and decision legality.

The gate is a per-encounter state machine. Every field is a one-way latch
flipped by exactly one operator action, and all mutation goes through
``ProtocolGate.dispatch``. Front ends read frozen ``ProtocolStatus``
snapshots to enable the decision buttons and show a single next-step prompt.

Legality:
- DENY needs scan, credential viewed and database query.
- APPROVE additionally needs the warrant check and credential verification
  when the shift requires them. Refusal requires less certainty than
  admission.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import asdict, dataclass, field, replace
from enum import Enum
from typing import Any, Dict, FrozenSet, Iterable, Optional

from .errors import (
    AMB_E_GATE_FROZEN,
    AMB_E_UNKNOWN_ACTION,
    invariant_violation,
)
from .scan_quality import EquipmentType, ScanQuality, classify_scan_quality

logger = logging.getLogger("amber_engine")

PROTOCOL_COMPLETE = "PROTOCOL COMPLETE"
DEFAULT_MAX_QUESTIONS = 3


class Decision(Enum):
    APPROVE = "APPROVE"
    DENY = "DENY"


class ProtocolAction(Enum):
    COMPLETE_SCAN = "COMPLETE_SCAN"
    VIEW_CREDENTIAL = "VIEW_CREDENTIAL"
    RUN_DATABASE_QUERY = "RUN_DATABASE_QUERY"
    VERIFY_CREDENTIAL = "VERIFY_CREDENTIAL"
    CHECK_WARRANT = "CHECK_WARRANT"
    RUN_IDENTITY_SCAN = "RUN_IDENTITY_SCAN"
    RUN_HEALTH_SCAN = "RUN_HEALTH_SCAN"
    REVIEW_TRANSIT_LOG = "REVIEW_TRANSIT_LOG"
    REVIEW_INCIDENT_HISTORY = "REVIEW_INCIDENT_HISTORY"
    ASK_QUESTION = "ASK_QUESTION"


class ProtocolStep(Enum):
    """Gate requirements in prompt priority order."""

    SCAN = "COMPLETE BIOMETRIC SCAN"
    CREDENTIAL = "REVIEW CREDENTIAL"
    DATABASE = "QUERY DATABASE"
    WARRANT = "CHECK WARRANT STATUS"
    VERIFY = "VERIFY CREDENTIAL"


# Latch flipped by each boolean action.
_LATCHES: Dict[ProtocolAction, str] = {
    ProtocolAction.COMPLETE_SCAN: "scan_complete",
    ProtocolAction.VIEW_CREDENTIAL: "credential_viewed",
    ProtocolAction.RUN_DATABASE_QUERY: "database_queried",
    ProtocolAction.VERIFY_CREDENTIAL: "credential_verified",
    ProtocolAction.CHECK_WARRANT: "warrant_checked",
    ProtocolAction.RUN_IDENTITY_SCAN: "identity_scanned",
    ProtocolAction.RUN_HEALTH_SCAN: "health_scanned",
    ProtocolAction.REVIEW_TRANSIT_LOG: "transit_log_reviewed",
    ProtocolAction.REVIEW_INCIDENT_HISTORY: "incident_history_reviewed",
}

# Shift directive rule codes -> requirement flag.
_RULE_REQUIREMENTS: Dict[str, str] = {
    "CHECK_WARRANTS": "warrant_check_required",
    "VERIFY_CREDENTIALS": "credential_verification_required",
    "CHECK_CREDENTIALS": "credential_verification_required",
}


@dataclass(frozen=True)
class GateRequirements:
    """Requirement flags fixed when an encounter starts."""

    credential_verification_required: bool = False
    warrant_check_required: bool = False

    @classmethod
    def from_rules(cls, rules: Optional[Iterable[str]]) -> "GateRequirements":
        flags = {"credential_verification_required": False, "warrant_check_required": False}
        for rule in rules or ():
            key = _RULE_REQUIREMENTS.get(str(rule).strip().upper())
            if key:
                flags[key] = True
            else:
                logger.debug("Directive rule %r does not affect the protocol gate", rule)
        return cls(**flags)


@dataclass(frozen=True)
class ProtocolStatus:
    """Immutable snapshot of the gate state."""

    scan_complete: bool = False
    credential_viewed: bool = False
    credential_verification_required: bool = False
    credential_verified: bool = False
    database_queried: bool = False
    warrant_check_required: bool = False
    warrant_checked: bool = False

    # Evidence coverage used when scoring the decision.
    identity_scanned: bool = False
    health_scanned: bool = False
    transit_log_reviewed: bool = False
    incident_history_reviewed: bool = False
    questions_asked: int = 0

    equipment_failures: FrozenSet[EquipmentType] = field(default_factory=frozenset)
    has_decision: bool = False

    @property
    def approve_enabled(self) -> bool:
        return approve_enabled(self)

    @property
    def deny_enabled(self) -> bool:
        return deny_enabled(self)

    @property
    def interrogated(self) -> bool:
        return self.questions_asked > 0

    def next_step_prompt(self) -> str:
        return next_step_prompt(self)

    def scan_quality(self) -> ScanQuality:
        return classify_scan_quality(
            self.identity_scanned,
            self.health_scanned,
            equipment_failure=EquipmentType.BIOMETRIC_SCANNER in self.equipment_failures,
        )

    def as_dict(self) -> Dict[str, Any]:
        d = asdict(self)
        d["equipment_failures"] = sorted(e.value for e in self.equipment_failures)
        return d


def deny_enabled(status: ProtocolStatus) -> bool:
    if status.has_decision:
        return False
    return status.scan_complete and status.credential_viewed and status.database_queried


def approve_enabled(status: ProtocolStatus) -> bool:
    if not deny_enabled(status):
        return False
    if status.credential_verification_required and not status.credential_verified:
        return False
    if status.warrant_check_required and not status.warrant_checked:
        return False
    return True


def is_decision_legal(status: ProtocolStatus, decision: Decision) -> bool:
    if decision is Decision.APPROVE:
        return approve_enabled(status)
    return deny_enabled(status)


def next_unmet_step(status: ProtocolStatus) -> Optional[ProtocolStep]:
    if not status.scan_complete:
        return ProtocolStep.SCAN
    if not status.credential_viewed:
        return ProtocolStep.CREDENTIAL
    if not status.database_queried:
        return ProtocolStep.DATABASE
    if status.warrant_check_required and not status.warrant_checked:
        return ProtocolStep.WARRANT
    if status.credential_verification_required and not status.credential_verified:
        return ProtocolStep.VERIFY
    return None


def next_step_prompt(status: ProtocolStatus) -> str:
    """The single next action the operator should take."""
    step = next_unmet_step(status)
    return PROTOCOL_COMPLETE if step is None else step.value


class ProtocolGate:
    """Mutable per-encounter gate. Mutate only through ``dispatch``."""

    def __init__(
        self,
        requirements: Optional[GateRequirements] = None,
        *,
        equipment_failures: Iterable[EquipmentType] = (),
        max_questions: int = DEFAULT_MAX_QUESTIONS,
    ):
        req = requirements or GateRequirements()
        self._status = ProtocolStatus(
            credential_verification_required=req.credential_verification_required,
            warrant_check_required=req.warrant_check_required,
            equipment_failures=frozenset(equipment_failures),
        )
        self._max_questions = max(0, int(max_questions))
        self._lock = threading.RLock()

    @property
    def status(self) -> ProtocolStatus:
        return self._status

    @property
    def has_decision(self) -> bool:
        return self._status.has_decision

    @property
    def approve_enabled(self) -> bool:
        return approve_enabled(self._status)

    @property
    def deny_enabled(self) -> bool:
        return deny_enabled(self._status)

    def next_step_prompt(self) -> str:
        return next_step_prompt(self._status)

    def dispatch(self, action: ProtocolAction) -> bool:
        """Apply an operator action. Returns True if the state changed."""
        if not isinstance(action, ProtocolAction):
            try:
                action = ProtocolAction(str(action))
            except ValueError:
                raise invariant_violation(AMB_E_UNKNOWN_ACTION, f"unknown protocol action {action!r}") from None

        with self._lock:
            s = self._status
            if s.has_decision:
                raise invariant_violation(
                    AMB_E_GATE_FROZEN,
                    "protocol actions are disabled after the decision commit",
                    action=action.value,
                )

            if action is ProtocolAction.ASK_QUESTION:
                if s.questions_asked >= self._max_questions:
                    return False
                self._status = replace(s, questions_asked=s.questions_asked + 1)
                return True

            if action is ProtocolAction.VERIFY_CREDENTIAL and not s.credential_verification_required:
                logger.debug("Credential verification not required this shift; ignoring")
                return False

            latch = _LATCHES[action]
            if getattr(s, latch):
                return False
            self._status = replace(s, **{latch: True})
            return True

    # Named shortcuts so call sites read like the operator's actions.
    def complete_scan(self) -> bool:
        return self.dispatch(ProtocolAction.COMPLETE_SCAN)

    def view_credential(self) -> bool:
        return self.dispatch(ProtocolAction.VIEW_CREDENTIAL)

    def run_database_query(self) -> bool:
        return self.dispatch(ProtocolAction.RUN_DATABASE_QUERY)

    def verify_credential(self) -> bool:
        return self.dispatch(ProtocolAction.VERIFY_CREDENTIAL)

    def check_warrant(self) -> bool:
        return self.dispatch(ProtocolAction.CHECK_WARRANT)

    def freeze(self) -> ProtocolStatus:
        """Latch ``has_decision`` and return the frozen snapshot."""
        with self._lock:
            if self._status.has_decision:
                raise invariant_violation(AMB_E_GATE_FROZEN, "gate already frozen")
            self._status = replace(self._status, has_decision=True)
            return self._status

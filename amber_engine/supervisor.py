"""Supervisor warning patterns.

Tracks repeated risky approvals over a shift and produces at most one
supervisor warning per decision. Denials are never flagged.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional

from .protocol import Decision, ProtocolStatus

REPEAT_THRESHOLD = 2


class WarningKind(Enum):
    NO_VERIFICATION = "NO_VERIFICATION"
    EQUIPMENT_FAILURE = "EQUIPMENT_FAILURE"


@dataclass(frozen=True)
class SupervisorWarning:
    kind: WarningKind
    count: int
    message: str


@dataclass
class PatternTracker:
    approvals_without_verification: int = 0
    approvals_without_warrant_check: int = 0
    approvals_without_health_scan: int = 0
    equipment_failures_noted: int = 0

    def observe(self, decision: Decision, status: ProtocolStatus) -> Optional[SupervisorWarning]:
        """Update the counters for one committed decision."""
        if decision is not Decision.APPROVE:
            return None

        if not (
            status.warrant_checked
            or status.identity_scanned
            or status.health_scanned
            or status.transit_log_reviewed
            or status.incident_history_reviewed
        ):
            self.approvals_without_verification += 1
            if self.approvals_without_verification >= REPEAT_THRESHOLD:
                return SupervisorWarning(
                    WarningKind.NO_VERIFICATION,
                    self.approvals_without_verification,
                    f"Operator, you've approved {self.approvals_without_verification} subjects without "
                    "database verification this shift. This is a violation of protocol.",
                )

        if not status.warrant_checked:
            self.approvals_without_warrant_check += 1
            if self.approvals_without_warrant_check >= REPEAT_THRESHOLD:
                return SupervisorWarning(
                    WarningKind.NO_VERIFICATION,
                    self.approvals_without_warrant_check,
                    f"Operator, you've approved {self.approvals_without_warrant_check} subjects without "
                    "warrant verification. Active warrants must be checked before approval.",
                )

        if not status.health_scanned:
            self.approvals_without_health_scan += 1
            if self.approvals_without_health_scan >= REPEAT_THRESHOLD:
                return SupervisorWarning(
                    WarningKind.NO_VERIFICATION,
                    self.approvals_without_health_scan,
                    f"Operator, you've approved {self.approvals_without_health_scan} subjects without "
                    "health verification. Synthetic entity detection requires health scan.",
                )

        if status.equipment_failures and self.equipment_failures_noted == 0:
            self.equipment_failures_noted = 1
            return SupervisorWarning(
                WarningKind.EQUIPMENT_FAILURE,
                1,
                "Operator, equipment malfunction detected. Proceed with caution. Some data may be unreliable.",
            )

        return None

    def reset(self) -> None:
        self.approvals_without_verification = 0
        self.approvals_without_warrant_check = 0
        self.approvals_without_health_scan = 0
        self.equipment_failures_noted = 0

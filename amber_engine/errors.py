"""Stable error taxonomy for the adjudication engine.

This module defines machine-readable error codes and a single exception family
used across the gate, the consequence engine, and the subject catalog.

Only programming-contract violations are raised to callers. Content defects
are recovered locally (see ``ContentShapeError``) and equipment failures are
ordinary values on the biometric reading.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict


# Content / authoring
AMB_E_CONTENT_SHAPE = "AMB_E_CONTENT_SHAPE"
AMB_E_UNKNOWN_SUBJECT = "AMB_E_UNKNOWN_SUBJECT"

# Protocol gate / decision commit
AMB_E_DECISION_ILLEGAL = "AMB_E_DECISION_ILLEGAL"
AMB_E_DECISION_COMMITTED = "AMB_E_DECISION_COMMITTED"
AMB_E_GATE_FROZEN = "AMB_E_GATE_FROZEN"
AMB_E_UNKNOWN_ACTION = "AMB_E_UNKNOWN_ACTION"

# Configuration
AMB_E_CONFIG_INVALID = "AMB_E_CONFIG_INVALID"

# Decision log
AMB_E_LOG_SIGNER = "AMB_E_LOG_SIGNER"


@dataclass
class AmberError(Exception):
    """Base engine exception with stable error code."""

    code: str
    message: str
    details: Dict[str, Any] = field(default_factory=dict)

    def as_dict(self) -> Dict[str, Any]:
        d: Dict[str, Any] = {
            "code": self.code,
            "message": self.message,
        }
        if self.details:
            d["details"] = self.details
        return d

    def __str__(self) -> str:
        return f"{self.code}: {self.message}"


@dataclass
class ContentShapeError(AmberError):
    """A subject record is missing fields or carries the wrong types.

    Raised internally while coercing records; callers at the engine boundary
    catch it, log a content warning, and continue with safe defaults.
    """


@dataclass
class InvariantViolation(AmberError):
    """The caller broke the engine contract (e.g. committed an illegal decision)."""


def amber_error(code: str, message: str, **details: Any) -> AmberError:
    return AmberError(code=code, message=message, details=details)


def content_shape_error(message: str, **details: Any) -> ContentShapeError:
    return ContentShapeError(code=AMB_E_CONTENT_SHAPE, message=message, details=details)


def invariant_violation(code: str, message: str, **details: Any) -> InvariantViolation:
    return InvariantViolation(code=code, message=message, details=details)

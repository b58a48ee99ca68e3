"""Amber adjudication engine.

Rules library behind the checkpoint: which decisions are legal given the
evidence gathered, the deterministic uncertainty shown to the operator
(dossier gaps, ambiguous biometrics), and the consequence scored against
ground truth when a decision is committed.

Convenience imports
------------------
The package avoids import-time side effects. These are available as
top-level imports and are loaded lazily:

    from amber_engine import Encounter, SubjectCatalog, compute_consequence
"""

from __future__ import annotations

import re
from importlib import import_module
from pathlib import Path
from typing import Any


def _read_version_from_pyproject() -> str | None:
    """Best-effort version discovery for dev/test environments."""

    try:
        pyproject = Path(__file__).resolve().parents[1] / "pyproject.toml"
        txt = pyproject.read_text(encoding="utf-8")
        m = re.search(r"^version\s*=\s*\"([^\"]+)\"\s*$", txt, flags=re.MULTILINE)
        return m.group(1) if m else None
    except OSError:
        return None


__version__ = _read_version_from_pyproject() or "0.3.0"

__all__ = [
    "__version__",
    "AmberError",
    "ContentShapeError",
    "InvariantViolation",
    "EngineConfig",
    "seeded_random",
    "generate_dossier_gaps",
    "generate_ambiguous_biometrics",
    "BiometricPolicy",
    "ScanQuality",
    "is_incomplete_scan",
    "get_incomplete_scan_warning",
    "Decision",
    "ProtocolAction",
    "ProtocolGate",
    "ProtocolStatus",
    "GateRequirements",
    "compute_consequence",
    "Consequence",
    "ConsequenceType",
    "MissedInformation",
    "PenaltyTable",
    "Subject",
    "SubjectFacts",
    "SubjectCatalog",
    "Encounter",
    "DecisionRecord",
    "ShiftDecisionLog",
    "LogSigner",
    "PatternTracker",
    "configure_logging",
]

# Lazy export map: name -> (module, attribute)
_LAZY_EXPORTS: dict[str, tuple[str, str]] = {
    "AmberError": ("amber_engine.errors", "AmberError"),
    "ContentShapeError": ("amber_engine.errors", "ContentShapeError"),
    "InvariantViolation": ("amber_engine.errors", "InvariantViolation"),
    "EngineConfig": ("amber_engine.config", "EngineConfig"),
    "seeded_random": ("amber_engine.seeded", "seeded_random"),
    "generate_dossier_gaps": ("amber_engine.dossier", "generate_dossier_gaps"),
    "generate_ambiguous_biometrics": ("amber_engine.biometrics", "generate_ambiguous_biometrics"),
    "BiometricPolicy": ("amber_engine.biometrics", "BiometricPolicy"),
    "ScanQuality": ("amber_engine.scan_quality", "ScanQuality"),
    "is_incomplete_scan": ("amber_engine.scan_quality", "is_incomplete_scan"),
    "get_incomplete_scan_warning": ("amber_engine.scan_quality", "get_incomplete_scan_warning"),
    "Decision": ("amber_engine.protocol", "Decision"),
    "ProtocolAction": ("amber_engine.protocol", "ProtocolAction"),
    "ProtocolGate": ("amber_engine.protocol", "ProtocolGate"),
    "ProtocolStatus": ("amber_engine.protocol", "ProtocolStatus"),
    "GateRequirements": ("amber_engine.protocol", "GateRequirements"),
    "compute_consequence": ("amber_engine.consequence", "compute_consequence"),
    "Consequence": ("amber_engine.consequence", "Consequence"),
    "ConsequenceType": ("amber_engine.consequence", "ConsequenceType"),
    "MissedInformation": ("amber_engine.consequence", "MissedInformation"),
    "PenaltyTable": ("amber_engine.consequence", "PenaltyTable"),
    "Subject": ("amber_engine.subjects", "Subject"),
    "SubjectFacts": ("amber_engine.subjects", "SubjectFacts"),
    "SubjectCatalog": ("amber_engine.subjects", "SubjectCatalog"),
    "Encounter": ("amber_engine.encounter", "Encounter"),
    "DecisionRecord": ("amber_engine.encounter", "DecisionRecord"),
    "ShiftDecisionLog": ("amber_engine.decision_log", "ShiftDecisionLog"),
    "LogSigner": ("amber_engine.decision_log", "LogSigner"),
    "PatternTracker": ("amber_engine.supervisor", "PatternTracker"),
    "configure_logging": ("amber_engine.logging_config", "configure_logging"),
}


def __getattr__(name: str) -> Any:
    if name in _LAZY_EXPORTS:
        module_name, attr = _LAZY_EXPORTS[name]
        module = import_module(module_name)
        value = getattr(module, attr)
        # Cache the resolved attribute on the module for faster future access.
        globals()[name] = value
        return value
    raise AttributeError(f"module 'amber_engine' has no attribute {name!r}")


def __dir__() -> list[str]:
    return sorted(set(list(globals().keys()) + list(_LAZY_EXPORTS.keys())))

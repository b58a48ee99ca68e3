"""Prometheus metrics for the adjudication engine.

Metrics goals:
- low-cardinality labels (enum values only, never subject ids)
- visibility into decision outcomes and content defects in shipped data
"""
from __future__ import annotations

from prometheus_client import Counter


DECISIONS_TOTAL = Counter(
    "amber_decisions_total",
    "Total committed decisions",
    ["decision", "consequence"],
)
CONTENT_WARNINGS_TOTAL = Counter(
    "amber_content_warnings_total",
    "Subject content defects recovered with safe defaults",
    ["kind"],
)
EQUIPMENT_ERRORS_TOTAL = Counter(
    "amber_equipment_errors_total",
    "Biometric readings that came back as equipment errors",
)


def record_decision(decision: str, consequence: str) -> None:
    DECISIONS_TOTAL.labels(decision=str(decision), consequence=str(consequence)).inc()


def record_content_warning(kind: str) -> None:
    CONTENT_WARNINGS_TOTAL.labels(kind=str(kind)).inc()


def record_equipment_error() -> None:
    EQUIPMENT_ERRORS_TOTAL.inc()

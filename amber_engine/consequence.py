"""Consequence engine.

Scores a committed decision against ground truth the operator may never have
seen. The engine looks at which fact categories the subject actually had,
which of them the operator never surfaced, and whether the decision matched
the correct outcome.

Classification (most severe first):
- SERIOUS_INFRACTION: a warrant was missed, or an approval let in a subject
  who was harmful if approved.
- CITATION: a medium-severity category was missed, or the decision
  contradicts ground truth.
- WARNING: only low-severity categories were missed.
- NONE: nothing missed and the decision was correct.

Penalties never live in the classification branches. They come from one
``PenaltyTable`` so balance can be tuned without touching the rules.

Fail-closed semantics: malformed subject facts are a content defect. The
engine logs a content warning and returns the most lenient classification
instead of raising mid-play.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple, Union

from . import metrics
from .errors import AMB_E_DECISION_ILLEGAL, ContentShapeError, content_shape_error, invariant_violation
from .protocol import Decision, ProtocolStatus
from .subjects import SubjectFacts

logger = logging.getLogger("amber_engine")


class ConsequenceType(Enum):
    NONE = "NONE"
    WARNING = "WARNING"
    CITATION = "CITATION"
    SERIOUS_INFRACTION = "SERIOUS_INFRACTION"

    @property
    def rank(self) -> int:
        return _TYPE_RANK[self]

    def __lt__(self, other: "ConsequenceType") -> bool:
        if not isinstance(other, ConsequenceType):
            return NotImplemented
        return self.rank < other.rank


_TYPE_RANK: Dict[ConsequenceType, int] = {
    ConsequenceType.NONE: 0,
    ConsequenceType.WARNING: 1,
    ConsequenceType.CITATION: 2,
    ConsequenceType.SERIOUS_INFRACTION: 3,
}


class Severity(Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    CRITICAL = "CRITICAL"


class MissedInformation(Enum):
    WARRANT = "WARRANT"
    INCIDENT_HISTORY = "INCIDENT_HISTORY"
    TRANSIT_LOG = "TRANSIT_LOG"
    HEALTH_SCAN = "HEALTH_SCAN"
    IDENTITY_SCAN = "IDENTITY_SCAN"
    INTERROGATION = "INTERROGATION"

    @property
    def severity(self) -> Severity:
        return _MISSED_SEVERITY[self]

    @property
    def label(self) -> str:
        return _MISSED_LABELS[self]


_MISSED_SEVERITY: Dict[MissedInformation, Severity] = {
    MissedInformation.WARRANT: Severity.CRITICAL,
    MissedInformation.INCIDENT_HISTORY: Severity.MEDIUM,
    MissedInformation.IDENTITY_SCAN: Severity.MEDIUM,
    MissedInformation.HEALTH_SCAN: Severity.MEDIUM,
    MissedInformation.TRANSIT_LOG: Severity.LOW,
    MissedInformation.INTERROGATION: Severity.LOW,
}

# Diegetic citation wording: what the record held, not which button was skipped.
_MISSED_LABELS: Dict[MissedInformation, str] = {
    MissedInformation.WARRANT: "ACTIVE WARRANT",
    MissedInformation.INCIDENT_HISTORY: "PRIOR INCIDENTS ON FILE",
    MissedInformation.TRANSIT_LOG: "FLAGGED TRANSIT ENTRIES",
    MissedInformation.HEALTH_SCAN: "SYNTHETIC BIOLOGICAL MARKERS",
    MissedInformation.IDENTITY_SCAN: "DOSSIER IDENTITY DISCREPANCY",
    MissedInformation.INTERROGATION: "CONTRADICTORY TESTIMONY",
}

# Reporting order for missed categories.
MISSED_ORDER: Tuple[MissedInformation, ...] = (
    MissedInformation.WARRANT,
    MissedInformation.INCIDENT_HISTORY,
    MissedInformation.TRANSIT_LOG,
    MissedInformation.HEALTH_SCAN,
    MissedInformation.IDENTITY_SCAN,
    MissedInformation.INTERROGATION,
)

# category -> (subject possessed it, operator surfaced it)
_CATEGORY_RULES: Dict[
    MissedInformation,
    Tuple[Callable[[SubjectFacts], bool], Callable[[ProtocolStatus], bool]],
] = {
    MissedInformation.WARRANT: (lambda f: f.has_warrant, lambda s: s.warrant_checked),
    MissedInformation.INCIDENT_HISTORY: (lambda f: f.incident_count > 0, lambda s: s.incident_history_reviewed),
    MissedInformation.TRANSIT_LOG: (lambda f: f.flagged_transit, lambda s: s.transit_log_reviewed),
    MissedInformation.HEALTH_SCAN: (lambda f: f.synthetic, lambda s: s.health_scanned),
    MissedInformation.IDENTITY_SCAN: (lambda f: f.identity_anomaly, lambda s: s.identity_scanned),
    MissedInformation.INTERROGATION: (lambda f: f.interrogation_tell, lambda s: s.interrogated),
}

_MESSAGES: Dict[ConsequenceType, str] = {
    ConsequenceType.NONE: "Decision processed. No issues detected.",
    ConsequenceType.WARNING: "Warning: Some information was not verified before decision.",
    ConsequenceType.CITATION: "Citation issued: Decision made without sufficient verification.",
    ConsequenceType.SERIOUS_INFRACTION: "Serious infraction: Critical information missed or protocol violated.",
}


def _check_exhaustive(name: str, table: Mapping[Any, Any], enum_cls: Any) -> None:
    missing = [m for m in enum_cls if m not in table]
    if missing:
        raise RuntimeError(f"{name} does not cover {', '.join(m.value for m in missing)}")


for _name, _table, _enum in (
    ("_TYPE_RANK", _TYPE_RANK, ConsequenceType),
    ("_MISSED_SEVERITY", _MISSED_SEVERITY, MissedInformation),
    ("_MISSED_LABELS", _MISSED_LABELS, MissedInformation),
    ("_CATEGORY_RULES", _CATEGORY_RULES, MissedInformation),
    ("_MESSAGES", _MESSAGES, ConsequenceType),
):
    _check_exhaustive(_name, _table, _enum)


@dataclass(frozen=True)
class PenaltyBand:
    """Credits and infractions for one consequence type.

    ``credits`` is charged for the first missed item; each further missed
    item adds ``credits_per_extra_missed`` up to ``max_credits``.
    """

    credits: int
    infractions: int
    credits_per_extra_missed: int = 0
    max_credits: Optional[int] = None

    def credits_for(self, missed_count: int) -> int:
        extra = max(0, missed_count - 1) * self.credits_per_extra_missed
        total = self.credits + extra
        cap = self.credits if self.max_credits is None else self.max_credits
        return min(total, cap)

    @property
    def ceiling(self) -> int:
        return self.credits if self.max_credits is None else self.max_credits


@dataclass(frozen=True)
class PenaltyTable:
    """Balance constants for every consequence type.

    Bands must be monotone: every credit amount a type can charge is at least
    the ceiling of the type below it, and infraction counts never decrease.
    """

    bands: Mapping[ConsequenceType, PenaltyBand] = field(
        default_factory=lambda: {
            ConsequenceType.NONE: PenaltyBand(credits=0, infractions=0),
            ConsequenceType.WARNING: PenaltyBand(credits=1, infractions=1),
            ConsequenceType.CITATION: PenaltyBand(credits=2, infractions=1, credits_per_extra_missed=1, max_credits=3),
            ConsequenceType.SERIOUS_INFRACTION: PenaltyBand(
                credits=4, infractions=2, credits_per_extra_missed=1, max_credits=6
            ),
        }
    )

    def __post_init__(self) -> None:
        _check_exhaustive("PenaltyTable.bands", self.bands, ConsequenceType)
        ordered = sorted(self.bands.items(), key=lambda kv: kv[0].rank)
        for (lower_t, lower), (upper_t, upper) in zip(ordered, ordered[1:]):
            if upper.credits < lower.ceiling or upper.infractions < lower.infractions:
                raise ValueError(f"penalty band {upper_t.value} is below {lower_t.value}")
        if ordered[0][1].credits != 0 or ordered[0][1].infractions != 0:
            raise ValueError("NONE must carry no penalty")

    def band(self, consequence_type: ConsequenceType) -> PenaltyBand:
        return self.bands[consequence_type]

    @classmethod
    def lenient(cls) -> "PenaltyTable":
        return cls(
            bands={
                ConsequenceType.NONE: PenaltyBand(credits=0, infractions=0),
                ConsequenceType.WARNING: PenaltyBand(credits=0, infractions=0),
                ConsequenceType.CITATION: PenaltyBand(credits=1, infractions=1),
                ConsequenceType.SERIOUS_INFRACTION: PenaltyBand(credits=2, infractions=1),
            }
        )

    @classmethod
    def harsh(cls) -> "PenaltyTable":
        return cls(
            bands={
                ConsequenceType.NONE: PenaltyBand(credits=0, infractions=0),
                ConsequenceType.WARNING: PenaltyBand(credits=1, infractions=1, credits_per_extra_missed=1, max_credits=2),
                ConsequenceType.CITATION: PenaltyBand(credits=3, infractions=1, credits_per_extra_missed=1, max_credits=5),
                ConsequenceType.SERIOUS_INFRACTION: PenaltyBand(
                    credits=6, infractions=3, credits_per_extra_missed=2, max_credits=10
                ),
            }
        )


DEFAULT_PENALTY_TABLE = PenaltyTable()


@dataclass(frozen=True)
class Consequence:
    type: ConsequenceType
    missed_information: Tuple[MissedInformation, ...]
    credits_penalty: int
    infraction_count: int
    decision_correct: bool = True
    message: str = ""

    def labels(self) -> List[str]:
        """Human-readable missed-fact labels for the citation banner."""
        return [m.label for m in self.missed_information]

    def as_dict(self) -> Dict[str, Any]:
        return {
            "type": self.type.value,
            "missed_information": [m.value for m in self.missed_information],
            "credits_penalty": self.credits_penalty,
            "infraction_count": self.infraction_count,
            "decision_correct": self.decision_correct,
            "message": self.message,
        }


def find_missed_information(status: ProtocolStatus, facts: SubjectFacts) -> Tuple[MissedInformation, ...]:
    missed = []
    for category in MISSED_ORDER:
        possessed, surfaced = _CATEGORY_RULES[category]
        if possessed(facts) and not surfaced(status):
            missed.append(category)
    return tuple(missed)


def classify_consequence(
    decision: Decision,
    missed: Tuple[MissedInformation, ...],
    facts: SubjectFacts,
) -> ConsequenceType:
    severities = {m.severity for m in missed}
    correct = decision is facts.correct_decision
    harmful_admission = decision is Decision.APPROVE and facts.harmful_if_approved

    if Severity.CRITICAL in severities or harmful_admission:
        return ConsequenceType.SERIOUS_INFRACTION
    if Severity.MEDIUM in severities or not correct:
        return ConsequenceType.CITATION
    if missed:
        return ConsequenceType.WARNING
    return ConsequenceType.NONE


def _coerce_facts(subject_facts: Any) -> SubjectFacts:
    if isinstance(subject_facts, SubjectFacts):
        return subject_facts
    if hasattr(subject_facts, "facts") and callable(subject_facts.facts):
        try:
            facts = subject_facts.facts()
        except (AttributeError, TypeError, ValueError) as e:
            raise content_shape_error(
                "subject record could not be projected to facts", error=f"{type(e).__name__}: {e}"
            ) from e
        if not isinstance(facts, SubjectFacts):
            raise content_shape_error("facts() did not return SubjectFacts", got=type(facts).__name__)
        return facts
    return SubjectFacts.from_mapping(subject_facts)


def _coerce_decision(decision: Union[Decision, str]) -> Decision:
    if isinstance(decision, Decision):
        return decision
    try:
        return Decision(str(decision).strip().upper())
    except ValueError:
        raise invariant_violation(AMB_E_DECISION_ILLEGAL, f"unknown decision {decision!r}") from None


def _fail_closed(decision: Decision, reason: str) -> Consequence:
    logger.warning("Content defect while scoring %s decision: %s; no consequence applied", decision.value, reason)
    metrics.record_content_warning("subject_facts")
    return Consequence(
        type=ConsequenceType.NONE,
        missed_information=(),
        credits_penalty=0,
        infraction_count=0,
        decision_correct=True,
        message=_MESSAGES[ConsequenceType.NONE],
    )


def compute_consequence(
    decision: Union[Decision, str],
    protocol_status: ProtocolStatus,
    subject_facts: Union[SubjectFacts, Mapping[str, Any], Any],
    table: Optional[PenaltyTable] = None,
) -> Consequence:
    """Score one decision against the frozen protocol snapshot.

    ``subject_facts`` may be SubjectFacts, a Subject, or a plain mapping.
    Legality is checked by the caller at commit time, not here.
    """
    decision = _coerce_decision(decision)
    table = table or DEFAULT_PENALTY_TABLE

    try:
        facts = _coerce_facts(subject_facts)
    except ContentShapeError as e:
        return _fail_closed(decision, str(e))

    missed = find_missed_information(protocol_status, facts)
    ctype = classify_consequence(decision, missed, facts)
    band = table.band(ctype)

    message = _MESSAGES[ctype]
    if missed:
        message = f"{message} Record held: {missed[0].label}."

    return Consequence(
        type=ctype,
        missed_information=missed,
        credits_penalty=band.credits_for(len(missed)),
        infraction_count=band.infractions,
        decision_correct=decision is facts.correct_decision,
        message=message,
    )

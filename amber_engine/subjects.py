"""Subject content records and the read-only subject catalog.

Subjects are authored data. The catalog is built once when content loads and
never changes afterwards; the engine only ever asks it ``get_subject(id)``.

Records are validated against ``schemas/subject.schema.json`` (JSON Schema
Draft 2020-12). A record that fails validation is still loaded: each defect is
logged as a content warning and the offending field falls back to a safe
default, because a content bug must never stop a shift mid-play.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from types import MappingProxyType
from typing import Any, Dict, Iterable, Iterator, List, Mapping, Optional, Union

import jsonschema

from . import metrics
from .errors import AMB_E_UNKNOWN_SUBJECT, ContentShapeError, amber_error, content_shape_error
from .protocol import Decision

logger = logging.getLogger("amber_engine")

SCHEMA_PATH = Path(__file__).resolve().parent / "schemas" / "subject.schema.json"

NO_WARRANT = "NONE"


class SubjectType(Enum):
    HUMAN = "HUMAN"
    HUMAN_CYBORG = "HUMAN_CYBORG"
    ROBOT_CYBORG = "ROBOT_CYBORG"
    REPLICANT = "REPLICANT"
    PLAGUE_CARRIER = "PLAGUE_CARRIER"
    UNKNOWN = "UNKNOWN"


SYNTHETIC_TYPES = frozenset({SubjectType.REPLICANT, SubjectType.ROBOT_CYBORG})


class DossierAnomaly(Enum):
    NONE = "NONE"
    MISMATCH = "MISMATCH"
    MISSING_INFO = "MISSING_INFO"
    CORRUPTED = "CORRUPTED"
    SURGERY = "SURGERY"


class BpmTell(Enum):
    NORMAL = "NORMAL"
    CONTRADICTION = "CONTRADICTION"
    FALSE_POSITIVE = "FALSE_POSITIVE"
    FALSE_NEGATIVE = "FALSE_NEGATIVE"


@dataclass(frozen=True)
class IdentityFields:
    name: str = ""
    date_of_birth: str = ""
    address: str = ""
    occupation: str = ""
    sex: str = "X"

    def as_dict(self) -> Dict[str, str]:
        return {
            "name": self.name,
            "date_of_birth": self.date_of_birth,
            "address": self.address,
            "occupation": self.occupation,
            "sex": self.sex,
        }


@dataclass(frozen=True)
class SubjectFacts:
    """Private ground truth consulted only when scoring a decision.

    Construction validates every field and raises ContentShapeError on a
    defect; the consequence engine catches it and fails closed.
    """

    has_warrant: bool
    incident_count: int
    flagged_transit: bool
    synthetic: bool
    identity_anomaly: bool
    interrogation_tell: bool
    correct_decision: Decision
    harmful_if_approved: bool = False

    REQUIRED_KEYS = (
        "has_warrant",
        "incident_count",
        "flagged_transit",
        "synthetic",
        "identity_anomaly",
        "interrogation_tell",
        "correct_decision",
    )

    def __post_init__(self) -> None:
        for key in (
            "has_warrant",
            "flagged_transit",
            "synthetic",
            "identity_anomaly",
            "interrogation_tell",
            "harmful_if_approved",
        ):
            value = getattr(self, key)
            if not isinstance(value, bool):
                raise content_shape_error(f"{key} must be a boolean", value=repr(value))
        count = self.incident_count
        if isinstance(count, bool) or not isinstance(count, int) or count < 0:
            raise content_shape_error("incident_count must be a non-negative integer", value=repr(count))
        try:
            correct = _as_decision(self.correct_decision)
        except ValueError:
            raise content_shape_error(
                "correct_decision must be APPROVE or DENY", value=repr(self.correct_decision)
            ) from None
        object.__setattr__(self, "correct_decision", correct)
        # A subject harmful to admit can never be a correct approval.
        if correct is Decision.APPROVE and self.harmful_if_approved:
            raise content_shape_error("ground truth marks a harmful subject as a correct approval")

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "SubjectFacts":
        """Strictly parse facts supplied as a mapping."""
        if not isinstance(data, Mapping):
            raise content_shape_error("subject facts must be a mapping", got=type(data).__name__)
        missing = [k for k in cls.REQUIRED_KEYS if k not in data]
        if missing:
            raise content_shape_error("subject facts missing keys", missing=missing)
        return cls(
            has_warrant=data["has_warrant"],
            incident_count=data["incident_count"],
            flagged_transit=data["flagged_transit"],
            synthetic=data["synthetic"],
            identity_anomaly=data["identity_anomaly"],
            interrogation_tell=data["interrogation_tell"],
            correct_decision=data["correct_decision"],
            harmful_if_approved=data.get("harmful_if_approved", False),
        )


@dataclass(frozen=True)
class Subject:
    id: str
    identity: IdentityFields = field(default_factory=IdentityFields)
    baseline_bpm: Union[int, str] = 78
    warrant: str = NO_WARRANT
    incidents: int = 0
    dossier_anomaly: DossierAnomaly = DossierAnomaly.NONE
    subject_type: SubjectType = SubjectType.HUMAN
    flagged_transit: bool = False
    bpm_tell: BpmTell = BpmTell.NORMAL
    correct_decision: Decision = Decision.APPROVE
    harmful_if_approved: bool = False

    @property
    def has_warrant(self) -> bool:
        return self.warrant.strip().upper() != NO_WARRANT

    @property
    def synthetic(self) -> bool:
        return self.subject_type in SYNTHETIC_TYPES

    def facts(self) -> SubjectFacts:
        return SubjectFacts(
            has_warrant=self.has_warrant,
            incident_count=self.incidents,
            flagged_transit=self.flagged_transit,
            synthetic=self.synthetic,
            identity_anomaly=self.dossier_anomaly is not DossierAnomaly.NONE,
            interrogation_tell=self.bpm_tell is BpmTell.CONTRADICTION,
            correct_decision=self.correct_decision,
            harmful_if_approved=self.harmful_if_approved,
        )

    @classmethod
    def from_record(cls, record: Mapping[str, Any]) -> "Subject":
        """Build a subject, replacing defective fields with safe defaults.

        Only a missing or blank ``id`` is unrecoverable (ContentShapeError).
        """
        if not isinstance(record, Mapping):
            raise content_shape_error("subject record must be an object", got=type(record).__name__)
        subject_id = record.get("id")
        if not isinstance(subject_id, str) or not subject_id.strip():
            raise content_shape_error("subject record has no id", record_keys=sorted(map(str, record.keys())))

        def warn(field_name: str, value: Any, default: Any) -> Any:
            logger.warning(
                "Content defect in subject %s: %s=%r; using %r", subject_id, field_name, value, default
            )
            metrics.record_content_warning(field_name)
            return default

        identity_raw = record.get("identity")
        if not isinstance(identity_raw, Mapping):
            identity_raw = warn("identity", identity_raw, {})
        identity = IdentityFields(
            **{k: str(identity_raw[k]) for k in IdentityFields.__dataclass_fields__ if identity_raw.get(k) is not None}
        )

        bpm = record.get("baseline_bpm")
        if isinstance(bpm, bool) or not isinstance(bpm, (int, str)):
            bpm = warn("baseline_bpm", bpm, 78)

        warrant = record.get("warrant", NO_WARRANT)
        if not isinstance(warrant, str):
            warrant = warn("warrant", warrant, NO_WARRANT)

        incidents = record.get("incidents", 0)
        if isinstance(incidents, bool) or not isinstance(incidents, int) or incidents < 0:
            incidents = warn("incidents", incidents, 0)

        flagged = record.get("flagged_transit", False)
        if not isinstance(flagged, bool):
            flagged = warn("flagged_transit", flagged, False)

        anomaly = _enum_or_default(DossierAnomaly, record.get("dossier_anomaly"), DossierAnomaly.NONE, warn, "dossier_anomaly")
        subject_type = _enum_or_default(SubjectType, record.get("subject_type"), SubjectType.HUMAN, warn, "subject_type")
        tell = _enum_or_default(BpmTell, record.get("bpm_tell"), BpmTell.NORMAL, warn, "bpm_tell")

        truth = record.get("ground_truth")
        if not isinstance(truth, Mapping):
            truth = {}
        harmful = truth.get("harmful_if_approved", False)
        if not isinstance(harmful, bool):
            harmful = warn("harmful_if_approved", harmful, False)
        try:
            correct = _as_decision(truth["correct_decision"])
        except (KeyError, ValueError):
            # Fall back to the decision the visible record supports.
            inferred = (
                Decision.DENY
                if warrant.strip().upper() != NO_WARRANT or subject_type in SYNTHETIC_TYPES or harmful
                else Decision.APPROVE
            )
            correct = warn("correct_decision", truth.get("correct_decision"), inferred)
        if correct is Decision.APPROVE and harmful:
            # Contradictory ground truth scores as the lenient reading.
            harmful = warn("harmful_if_approved", harmful, False)

        return cls(
            id=subject_id,
            identity=identity,
            baseline_bpm=bpm,
            warrant=warrant,
            incidents=incidents,
            dossier_anomaly=anomaly,
            subject_type=subject_type,
            flagged_transit=flagged,
            bpm_tell=tell,
            correct_decision=correct,
            harmful_if_approved=harmful,
        )


def _as_decision(value: Any) -> Decision:
    if isinstance(value, Decision):
        return value
    return Decision(str(value).strip().upper())


def _enum_or_default(enum_cls, value, default, warn, field_name):
    if value is None:
        return default
    try:
        return enum_cls(str(value).strip().upper())
    except ValueError:
        return warn(field_name, value, default)


def _load_validator() -> jsonschema.Draft202012Validator:
    with SCHEMA_PATH.open("r", encoding="utf-8") as f:
        schema = json.load(f)
    return jsonschema.Draft202012Validator(schema)


def schema_issues(record: Any, validator: Optional[jsonschema.Draft202012Validator] = None) -> List[str]:
    """Return human-readable schema violations for one record (empty if valid)."""
    validator = validator or _load_validator()
    issues = []
    for e in sorted(validator.iter_errors(record), key=lambda e: list(e.absolute_path)):
        loc = "/".join(str(p) for p in e.absolute_path) or "<root>"
        issues.append(f"{loc}: {e.message}")
    return issues


class SubjectCatalog:
    """Immutable id -> Subject lookup, loaded once at content init."""

    def __init__(self, subjects: Iterable[Subject] = ()):
        table: Dict[str, Subject] = {}
        for s in subjects:
            if s.id in table:
                logger.warning("Duplicate subject id %s in content; keeping the first record", s.id)
                metrics.record_content_warning("duplicate_id")
                continue
            table[s.id] = s
        self._subjects: Mapping[str, Subject] = MappingProxyType(table)

    @classmethod
    def from_records(cls, records: Iterable[Mapping[str, Any]]) -> "SubjectCatalog":
        validator = _load_validator()
        subjects: List[Subject] = []
        for i, record in enumerate(records):
            for issue in schema_issues(record, validator):
                logger.warning("Subject record[%d] schema: %s", i, issue)
                metrics.record_content_warning("schema")
            try:
                subjects.append(Subject.from_record(record))
            except ContentShapeError as e:
                logger.warning("Skipping subject record[%d]: %s", i, e)
                metrics.record_content_warning("unindexable")
        return cls(subjects)

    @classmethod
    def from_json_file(cls, path: Union[str, Path]) -> "SubjectCatalog":
        """Load a JSON array of subject records (or ``{"subjects": [...]}``)."""
        with Path(path).open("r", encoding="utf-8") as f:
            data = json.load(f)
        if isinstance(data, Mapping):
            data = data.get("subjects", [])
        if not isinstance(data, list):
            logger.warning("Subject content %s is not a list; loading nothing", path)
            metrics.record_content_warning("content_root")
            data = []
        return cls.from_records(data)

    def get_subject(self, subject_id: str) -> Subject:
        try:
            return self._subjects[subject_id]
        except KeyError:
            raise amber_error(AMB_E_UNKNOWN_SUBJECT, f"no subject with id {subject_id!r}") from None

    def __contains__(self, subject_id: object) -> bool:
        return subject_id in self._subjects

    def __iter__(self) -> Iterator[Subject]:
        return iter(self._subjects.values())

    def __len__(self) -> int:
        return len(self._subjects)

    def ids(self) -> List[str]:
        return list(self._subjects.keys())

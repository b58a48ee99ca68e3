"""Engine configuration.

Scenario tuning lives in one ``EngineConfig``. Values come from code, from
the ``strict``/``relaxed`` presets, or from environment variables:

    AMBER_EQUIPMENT_RELIABILITY   percent, 0..100 (default 85)
    AMBER_BIOMETRIC_POLICY        seeded|ephemeral (default ephemeral)
    AMBER_MAX_QUESTIONS           interrogation questions per subject (default 3)
    AMBER_PENALTY_PROFILE         default|lenient|harsh (default default)
    AMBER_QUALITY_SCALED_GAPS     1|true|yes|on scales dossier gaps by scan quality (default off)
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from typing import Optional

from .biometrics import DEFAULT_EQUIPMENT_RELIABILITY, BiometricPolicy
from .consequence import PenaltyTable
from .errors import AMB_E_CONFIG_INVALID, amber_error
from .protocol import DEFAULT_MAX_QUESTIONS

logger = logging.getLogger("amber_engine")

_PENALTY_PROFILES = {
    "default": PenaltyTable,
    "lenient": PenaltyTable.lenient,
    "harsh": PenaltyTable.harsh,
}


def _env_str(name: str) -> Optional[str]:
    v = (os.getenv(name, "") or "").strip()
    return v or None


def _env_bool(name: str, default: bool = False) -> bool:
    v = (os.getenv(name, "") or "").strip().lower()
    if not v:
        return default
    return v in ("1", "true", "yes", "on")


@dataclass(frozen=True)
class EngineConfig:
    equipment_reliability: float = DEFAULT_EQUIPMENT_RELIABILITY
    biometric_policy: BiometricPolicy = BiometricPolicy.EPHEMERAL
    max_questions: int = DEFAULT_MAX_QUESTIONS
    penalty_table: PenaltyTable = field(default_factory=PenaltyTable)
    quality_scaled_gaps: bool = False

    def __post_init__(self) -> None:
        if not 0 <= float(self.equipment_reliability) <= 100:
            raise amber_error(
                AMB_E_CONFIG_INVALID,
                "equipment_reliability must be between 0 and 100",
                value=self.equipment_reliability,
            )
        if int(self.max_questions) < 0:
            raise amber_error(AMB_E_CONFIG_INVALID, "max_questions must be non-negative", value=self.max_questions)

    @classmethod
    def strict(cls) -> "EngineConfig":
        """Unreliable equipment, reproducible readings, harsh penalties."""
        return cls(
            equipment_reliability=70,
            biometric_policy=BiometricPolicy.SEEDED,
            max_questions=2,
            penalty_table=PenaltyTable.harsh(),
        )

    @classmethod
    def relaxed(cls) -> "EngineConfig":
        """Reliable equipment and light penalties, for tutorials and demos."""
        return cls(
            equipment_reliability=100,
            biometric_policy=BiometricPolicy.SEEDED,
            max_questions=3,
            penalty_table=PenaltyTable.lenient(),
        )

    @classmethod
    def from_env(cls) -> "EngineConfig":
        kwargs = {}

        reliability = _env_str("AMBER_EQUIPMENT_RELIABILITY")
        if reliability is not None:
            try:
                kwargs["equipment_reliability"] = float(reliability)
            except ValueError:
                raise amber_error(
                    AMB_E_CONFIG_INVALID, "AMBER_EQUIPMENT_RELIABILITY must be a number", value=reliability
                ) from None

        policy = _env_str("AMBER_BIOMETRIC_POLICY")
        if policy is not None:
            try:
                kwargs["biometric_policy"] = BiometricPolicy(policy.lower())
            except ValueError:
                raise amber_error(
                    AMB_E_CONFIG_INVALID, "AMBER_BIOMETRIC_POLICY must be seeded or ephemeral", value=policy
                ) from None

        questions = _env_str("AMBER_MAX_QUESTIONS")
        if questions is not None:
            try:
                kwargs["max_questions"] = int(questions)
            except ValueError:
                raise amber_error(
                    AMB_E_CONFIG_INVALID, "AMBER_MAX_QUESTIONS must be an integer", value=questions
                ) from None

        profile = _env_str("AMBER_PENALTY_PROFILE")
        if profile is not None:
            factory = _PENALTY_PROFILES.get(profile.lower())
            if factory is None:
                raise amber_error(
                    AMB_E_CONFIG_INVALID,
                    f"AMBER_PENALTY_PROFILE must be one of {', '.join(sorted(_PENALTY_PROFILES))}",
                    value=profile,
                )
            kwargs["penalty_table"] = factory()

        kwargs["quality_scaled_gaps"] = _env_bool("AMBER_QUALITY_SCALED_GAPS")

        config = cls(**kwargs)
        logger.debug("Engine config from env: %s", config)
        return config

import pytest

from amber_engine.biometrics import BiometricPolicy
from amber_engine.config import EngineConfig
from amber_engine.consequence import ConsequenceType, PenaltyTable
from amber_engine.errors import AMB_E_CONFIG_INVALID, AmberError

_ENV = (
    "AMBER_EQUIPMENT_RELIABILITY",
    "AMBER_BIOMETRIC_POLICY",
    "AMBER_MAX_QUESTIONS",
    "AMBER_PENALTY_PROFILE",
    "AMBER_QUALITY_SCALED_GAPS",
)


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    for name in _ENV:
        monkeypatch.delenv(name, raising=False)


def test_defaults():
    cfg = EngineConfig()
    assert cfg.equipment_reliability == 85
    assert cfg.biometric_policy is BiometricPolicy.EPHEMERAL
    assert cfg.max_questions == 3
    assert cfg.penalty_table == PenaltyTable()
    assert EngineConfig.from_env() == cfg


def test_presets():
    strict = EngineConfig.strict()
    relaxed = EngineConfig.relaxed()
    assert strict.equipment_reliability < relaxed.equipment_reliability
    assert strict.biometric_policy is BiometricPolicy.SEEDED
    sev = ConsequenceType.SERIOUS_INFRACTION
    assert strict.penalty_table.band(sev).credits > relaxed.penalty_table.band(sev).credits


def test_from_env(monkeypatch):
    monkeypatch.setenv("AMBER_EQUIPMENT_RELIABILITY", "92.5")
    monkeypatch.setenv("AMBER_BIOMETRIC_POLICY", "SEEDED")
    monkeypatch.setenv("AMBER_MAX_QUESTIONS", "1")
    monkeypatch.setenv("AMBER_PENALTY_PROFILE", "harsh")
    cfg = EngineConfig.from_env()
    assert cfg.equipment_reliability == 92.5
    assert cfg.biometric_policy is BiometricPolicy.SEEDED
    assert cfg.max_questions == 1
    assert cfg.penalty_table == PenaltyTable.harsh()


def test_blank_env_values_use_defaults(monkeypatch):
    monkeypatch.setenv("AMBER_MAX_QUESTIONS", "   ")
    assert EngineConfig.from_env().max_questions == 3


@pytest.mark.parametrize(
    "name,value",
    [
        ("AMBER_EQUIPMENT_RELIABILITY", "high"),
        ("AMBER_EQUIPMENT_RELIABILITY", "140"),
        ("AMBER_BIOMETRIC_POLICY", "quantum"),
        ("AMBER_MAX_QUESTIONS", "two"),
        ("AMBER_MAX_QUESTIONS", "-1"),
        ("AMBER_PENALTY_PROFILE", "brutal"),
    ],
)
def test_invalid_env_values_raise(monkeypatch, name, value):
    monkeypatch.setenv(name, value)
    with pytest.raises(AmberError) as ei:
        EngineConfig.from_env()
    assert ei.value.code == AMB_E_CONFIG_INVALID


def test_configure_logging_installs_one_handler():
    import logging

    from amber_engine.logging_config import configure_logging

    logger = logging.getLogger("amber_engine")
    saved = list(logger.handlers), logger.level
    try:
        logger.handlers = []
        assert configure_logging(verbose=True) is logger
        configure_logging()
        assert len(logger.handlers) == 1
        assert logger.level == logging.INFO
    finally:
        logger.handlers, level = saved
        logger.setLevel(level)


def test_quality_scaled_gaps_flag_from_env(monkeypatch):
    assert EngineConfig.from_env().quality_scaled_gaps is False
    monkeypatch.setenv("AMBER_QUALITY_SCALED_GAPS", "on")
    assert EngineConfig.from_env().quality_scaled_gaps is True
    monkeypatch.setenv("AMBER_QUALITY_SCALED_GAPS", "0")
    assert EngineConfig.from_env().quality_scaled_gaps is False


def test_log_timestamps_are_utc():
    import logging
    import time

    from amber_engine.logging_config import configure_logging

    logger = logging.getLogger("amber_engine")
    saved = list(logger.handlers), logger.level
    try:
        logger.handlers = []
        configure_logging()
        formatter = logger.handlers[0].formatter
        assert formatter.converter is time.gmtime
        record = logging.LogRecord("amber_engine", logging.INFO, __file__, 1, "x", None, None)
        record.created = 0.0
        assert formatter.formatTime(record, formatter.datefmt) == "1970-01-01T00:00:00Z"
    finally:
        logger.handlers, level = saved
        logger.setLevel(level)

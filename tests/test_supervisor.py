from amber_engine.protocol import Decision, ProtocolStatus
from amber_engine.scan_quality import EquipmentType
from amber_engine.supervisor import PatternTracker, WarningKind


def _bare():
    return ProtocolStatus(scan_complete=True, credential_viewed=True, database_queried=True)


def test_repeated_unverified_approvals_warn():
    tracker = PatternTracker()
    assert tracker.observe(Decision.APPROVE, _bare()) is None
    w = tracker.observe(Decision.APPROVE, _bare())
    assert w is not None
    assert w.kind is WarningKind.NO_VERIFICATION
    assert w.count == 2
    assert "without database verification" in w.message


def test_denials_never_warn():
    tracker = PatternTracker()
    for _ in range(5):
        assert tracker.observe(Decision.DENY, _bare()) is None
    assert tracker.approvals_without_verification == 0


def test_missing_warrant_checks_warn():
    tracker = PatternTracker()
    status = ProtocolStatus(scan_complete=True, credential_viewed=True, database_queried=True, health_scanned=True)
    assert tracker.observe(Decision.APPROVE, status) is None
    w = tracker.observe(Decision.APPROVE, status)
    assert "warrant verification" in w.message


def test_equipment_warning_fires_once():
    tracker = PatternTracker()
    status = ProtocolStatus(
        warrant_checked=True,
        health_scanned=True,
        equipment_failures=frozenset({EquipmentType.BPM_MONITOR}),
    )
    w = tracker.observe(Decision.APPROVE, status)
    assert w.kind is WarningKind.EQUIPMENT_FAILURE
    assert tracker.observe(Decision.APPROVE, status) is None
    tracker.reset()
    assert tracker.observe(Decision.APPROVE, status).kind is WarningKind.EQUIPMENT_FAILURE

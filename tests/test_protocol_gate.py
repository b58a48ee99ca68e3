import itertools
import random
from dataclasses import fields

import pytest

from amber_engine.errors import (
    AMB_E_GATE_FROZEN,
    AMB_E_UNKNOWN_ACTION,
    InvariantViolation,
)
from amber_engine.protocol import (
    PROTOCOL_COMPLETE,
    Decision,
    GateRequirements,
    ProtocolAction,
    ProtocolGate,
    ProtocolStatus,
    approve_enabled,
    deny_enabled,
    is_decision_legal,
    next_step_prompt,
)
from amber_engine.scan_quality import EquipmentType, ScanQuality

_BOOL_FIELDS = [f.name for f in fields(ProtocolStatus) if f.type in ("bool", bool)]


def _gate(verify=False, warrant=False, **kw):
    return ProtocolGate(
        GateRequirements(credential_verification_required=verify, warrant_check_required=warrant),
        **kw,
    )


def _core(gate):
    gate.complete_scan()
    gate.view_credential()
    gate.run_database_query()


def test_fresh_gate_blocks_both_decisions():
    gate = _gate()
    assert not gate.deny_enabled
    assert not gate.approve_enabled
    assert gate.next_step_prompt() == "COMPLETE BIOMETRIC SCAN"


def test_core_steps_enable_both_without_requirements():
    gate = _gate()
    _core(gate)
    assert gate.deny_enabled
    assert gate.approve_enabled
    assert gate.next_step_prompt() == PROTOCOL_COMPLETE


def test_required_checks_gate_approval_only():
    gate = _gate(verify=True, warrant=True)
    _core(gate)
    assert gate.deny_enabled
    assert not gate.approve_enabled
    assert gate.next_step_prompt() == "CHECK WARRANT STATUS"
    gate.check_warrant()
    assert not gate.approve_enabled
    assert gate.next_step_prompt() == "VERIFY CREDENTIAL"
    gate.verify_credential()
    assert gate.approve_enabled
    assert gate.next_step_prompt() == PROTOCOL_COMPLETE


def test_prompt_follows_priority_order():
    gate = _gate(verify=True, warrant=True)
    seen = [gate.next_step_prompt()]
    for step in (gate.complete_scan, gate.view_credential, gate.run_database_query, gate.check_warrant, gate.verify_credential):
        step()
        seen.append(gate.next_step_prompt())
    assert seen == [
        "COMPLETE BIOMETRIC SCAN",
        "REVIEW CREDENTIAL",
        "QUERY DATABASE",
        "CHECK WARRANT STATUS",
        "VERIFY CREDENTIAL",
        PROTOCOL_COMPLETE,
    ]


def test_prompt_ignores_out_of_order_progress():
    gate = _gate(warrant=True)
    gate.check_warrant()
    gate.run_database_query()
    assert gate.next_step_prompt() == "COMPLETE BIOMETRIC SCAN"


def test_verify_is_noop_when_not_required():
    gate = _gate(verify=False)
    assert gate.verify_credential() is False
    assert gate.status.credential_verified is False


def test_actions_are_idempotent():
    gate = _gate()
    assert gate.complete_scan() is True
    before = gate.status
    assert gate.complete_scan() is False
    assert gate.status == before


def test_latches_never_revert_under_random_sequences():
    rng = random.Random(7)
    actions = list(ProtocolAction)
    for _ in range(50):
        gate = _gate(verify=rng.random() < 0.5, warrant=rng.random() < 0.5)
        prev = gate.status
        for _ in range(30):
            gate.dispatch(rng.choice(actions))
            cur = gate.status
            for name in _BOOL_FIELDS:
                if getattr(prev, name):
                    assert getattr(cur, name), name
            assert cur.questions_asked >= prev.questions_asked
            prev = cur


def test_approve_implies_deny_for_every_state():
    for values in itertools.product([False, True], repeat=len(_BOOL_FIELDS)):
        status = ProtocolStatus(**dict(zip(_BOOL_FIELDS, values)))
        if approve_enabled(status):
            assert deny_enabled(status)
        if status.has_decision:
            assert not deny_enabled(status)
            assert not approve_enabled(status)
        assert is_decision_legal(status, Decision.APPROVE) == approve_enabled(status)
        assert is_decision_legal(status, Decision.DENY) == deny_enabled(status)
        assert next_step_prompt(status)


def test_questions_are_capped():
    gate = _gate(max_questions=2)
    assert gate.dispatch(ProtocolAction.ASK_QUESTION) is True
    assert gate.dispatch("ASK_QUESTION") is True
    assert gate.dispatch(ProtocolAction.ASK_QUESTION) is False
    assert gate.status.questions_asked == 2
    assert gate.status.interrogated


def test_unknown_action_is_rejected():
    with pytest.raises(InvariantViolation) as ei:
        _gate().dispatch("OPEN_AIRLOCK")
    assert ei.value.code == AMB_E_UNKNOWN_ACTION


def test_frozen_gate_rejects_actions():
    gate = _gate()
    _core(gate)
    frozen = gate.freeze()
    assert frozen.has_decision
    assert not frozen.deny_enabled
    assert not frozen.approve_enabled
    with pytest.raises(InvariantViolation) as ei:
        gate.check_warrant()
    assert ei.value.code == AMB_E_GATE_FROZEN
    with pytest.raises(InvariantViolation):
        gate.freeze()


def test_requirements_from_shift_rules():
    req = GateRequirements.from_rules(["check_warrants", "VERIFY_CREDENTIALS", "NO_SYNTHETICS"])
    assert req.warrant_check_required
    assert req.credential_verification_required
    assert GateRequirements.from_rules(None) == GateRequirements()


def test_status_scan_quality_and_dict():
    gate = _gate(equipment_failures=[EquipmentType.BIOMETRIC_SCANNER])
    gate.dispatch(ProtocolAction.RUN_IDENTITY_SCAN)
    gate.dispatch(ProtocolAction.RUN_HEALTH_SCAN)
    assert gate.status.scan_quality() is ScanQuality.DEEP
    d = gate.status.as_dict()
    assert d["equipment_failures"] == ["BIOMETRIC_SCANNER"]
    assert d["identity_scanned"] is True

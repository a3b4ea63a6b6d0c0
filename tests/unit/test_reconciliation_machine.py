from unittest.mock import Mock

import pytest

from app.client.reconciliation import (
    EXPIRED_MESSAGE,
    TIMEOUT_MESSAGE,
    ModalState,
    PaymentReconciliationMachine,
    StatusSnapshot,
)

WAITING = StatusSnapshot()
APPROVED = StatusSnapshot(payment_approved=True)
READY = StatusSnapshot(True, True, True, True)


def _check(machine, snapshot):
    assert machine.begin_check()
    return machine.apply_status(snapshot)


def test_ready_goes_straight_to_success():
    on_success = Mock()
    machine = PaymentReconciliationMachine(max_attempts=3, on_success=on_success)

    assert _check(machine, WAITING) == ModalState.WAITING
    assert _check(machine, READY) == ModalState.SUCCESS
    assert machine.is_terminal
    on_success.assert_called_once()


def test_approved_without_activation_stops_polling():
    machine = PaymentReconciliationMachine(max_attempts=36)

    assert _check(machine, APPROVED) == ModalState.AWAITING_ACTIVATION
    assert machine.begin_check() is False
    assert machine.attempts == 1


def test_attempt_budget_ends_in_timeout_error():
    machine = PaymentReconciliationMachine(max_attempts=3)
    for _ in range(2):
        assert _check(machine, WAITING) == ModalState.WAITING

    assert _check(machine, WAITING) == ModalState.ERROR
    assert machine.error_message == TIMEOUT_MESSAGE
    assert machine.begin_check() is False


def test_network_failures_count_as_attempts():
    machine = PaymentReconciliationMachine(max_attempts=2)
    machine.begin_check()
    assert machine.apply_check_failure("timeout") == ModalState.WAITING
    machine.begin_check()
    assert machine.apply_check_failure("timeout") == ModalState.ERROR


def test_expiry_wins_over_in_flight_check():
    machine = PaymentReconciliationMachine(max_attempts=36)
    machine.begin_check()

    assert machine.expire() is True
    # resposta que chega depois da expiração é descartada
    assert machine.apply_status(READY) == ModalState.ERROR
    assert machine.error_message == EXPIRED_MESSAGE


def test_expiry_does_not_touch_awaiting_or_terminal_states():
    machine = PaymentReconciliationMachine(max_attempts=36)
    _check(machine, APPROVED)
    assert machine.expire() is False
    assert machine.state == ModalState.AWAITING_ACTIVATION

    done = PaymentReconciliationMachine(max_attempts=36)
    _check(done, READY)
    assert done.expire() is False
    assert done.state == ModalState.SUCCESS


def test_manual_failure_stays_awaiting_with_message():
    on_success = Mock()
    machine = PaymentReconciliationMachine(max_attempts=36, on_success=on_success)
    _check(machine, APPROVED)

    assert machine.begin_manual()
    assert machine.begin_manual() is False
    assert machine.apply_manual_result(False, "Pagamento ainda não confirmado") == ModalState.AWAITING_ACTIVATION
    assert machine.error_message == "Pagamento ainda não confirmado"

    assert machine.begin_manual()
    assert machine.error_message is None
    assert machine.apply_manual_result(True) == ModalState.SUCCESS
    on_success.assert_called_once()


def test_recheck_can_reach_success_without_manual_activation():
    machine = PaymentReconciliationMachine(max_attempts=36)
    _check(machine, APPROVED)

    assert machine.begin_recheck()
    assert machine.apply_recheck(APPROVED) == ModalState.AWAITING_ACTIVATION
    assert machine.begin_recheck()
    assert machine.apply_recheck(READY) == ModalState.SUCCESS


def test_success_side_effect_fires_once():
    on_success = Mock()
    machine = PaymentReconciliationMachine(max_attempts=36, on_success=on_success)
    _check(machine, APPROVED)
    machine.begin_manual()
    machine.begin_recheck()

    machine.apply_recheck(READY)
    machine.apply_manual_result(True)

    assert machine.state == ModalState.SUCCESS
    on_success.assert_called_once()


def test_manual_actions_need_awaiting_state():
    machine = PaymentReconciliationMachine(max_attempts=36)
    assert machine.begin_manual() is False
    assert machine.begin_recheck() is False


def test_failing_success_callback_does_not_break_machine():
    machine = PaymentReconciliationMachine(max_attempts=1, on_success=Mock(side_effect=RuntimeError("x")))
    assert _check(machine, READY) == ModalState.SUCCESS


def test_ready_flag_alone_is_not_trusted():
    snapshot = StatusSnapshot.from_response({"ready": True, "paymentApproved": True})
    assert snapshot.ready is False
    assert StatusSnapshot.from_response({
        "paymentApproved": True,
        "profileActivated": True,
        "subscriptionCreated": True,
        "ready": True,
    }).ready is True


def test_non_object_status_body_is_rejected():
    with pytest.raises(ValueError):
        StatusSnapshot.from_response(["unexpected"])
    with pytest.raises(ValueError):
        StatusSnapshot.from_response(None)


def test_invalid_attempt_budget():
    with pytest.raises(ValueError):
        PaymentReconciliationMachine(max_attempts=0)

# tests/unit/test_state_machine.py

import pytest

from booking_engine.domain.state_machine import PaymentIntentStateMachine, PaymentIntentStatus
from booking_engine.domain.exceptions import InvalidStateTransitionError


# ---------------------
# VALID TRANSITIONS
# ---------------------

def test_valid_happy_path():
    assert PaymentIntentStateMachine.can_transition(
        PaymentIntentStatus.IDLE,
        PaymentIntentStatus.INTENT_REQUESTED,
    )

    assert PaymentIntentStateMachine.can_transition(
        PaymentIntentStatus.INTENT_REQUESTED,
        PaymentIntentStatus.INTENT_READY,
    )

    assert PaymentIntentStateMachine.can_transition(
        PaymentIntentStatus.INTENT_READY,
        PaymentIntentStatus.CONFIRMING,
    )

    assert PaymentIntentStateMachine.can_transition(
        PaymentIntentStatus.CONFIRMING,
        PaymentIntentStatus.SUCCEEDED,
    )


def test_declined_card_can_be_resubmitted():
    assert PaymentIntentStateMachine.can_transition(
        PaymentIntentStatus.CONFIRMING,
        PaymentIntentStatus.FAILED,
    )
    assert PaymentIntentStateMachine.can_transition(
        PaymentIntentStatus.FAILED,
        PaymentIntentStatus.CONFIRMING,
    )


def test_cancel_returns_to_idle():
    assert PaymentIntentStateMachine.can_transition(
        PaymentIntentStatus.INTENT_READY,
        PaymentIntentStatus.CANCELLED,
    )
    assert PaymentIntentStateMachine.get_allowed_transitions(PaymentIntentStatus.CANCELLED) == {
        PaymentIntentStatus.IDLE,
    }


# ---------------------
# INVALID TRANSITIONS
# ---------------------

def test_cannot_confirm_without_intent():
    with pytest.raises(InvalidStateTransitionError):
        PaymentIntentStateMachine.validate_transition(
            PaymentIntentStatus.IDLE,
            PaymentIntentStatus.CONFIRMING,
        )


def test_cannot_cancel_while_confirming():
    with pytest.raises(InvalidStateTransitionError):
        PaymentIntentStateMachine.validate_transition(
            PaymentIntentStatus.CONFIRMING,
            PaymentIntentStatus.CANCELLED,
        )


def test_terminal_state_succeeded():
    assert PaymentIntentStateMachine.is_terminal(PaymentIntentStatus.SUCCEEDED)

    with pytest.raises(InvalidStateTransitionError) as exc_info:
        PaymentIntentStateMachine.validate_transition(
            PaymentIntentStatus.SUCCEEDED,
            PaymentIntentStatus.IDLE,
        )
    assert exc_info.value.from_state == "SUCCEEDED"


def test_failed_is_not_terminal():
    assert not PaymentIntentStateMachine.is_terminal(PaymentIntentStatus.FAILED)


def test_pending_states():
    assert PaymentIntentStateMachine.is_pending(PaymentIntentStatus.INTENT_READY)
    assert PaymentIntentStateMachine.is_pending(PaymentIntentStatus.CONFIRMING)
    assert not PaymentIntentStateMachine.is_pending(PaymentIntentStatus.IDLE)
    assert not PaymentIntentStateMachine.is_pending(PaymentIntentStatus.SUCCEEDED)


def test_invalid_type_guard():
    with pytest.raises(TypeError):
        PaymentIntentStateMachine.validate_transition(
            "IDLE",  # invalid type
            PaymentIntentStatus.INTENT_REQUESTED,
        )

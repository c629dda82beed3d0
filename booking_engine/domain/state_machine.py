# booking_engine/domain/state_machine.py

from enum import Enum
from typing import Dict, Set

from booking_engine.domain.exceptions import InvalidStateTransitionError


class PaymentIntentStatus(str, Enum):
    IDLE = "IDLE"
    INTENT_REQUESTED = "INTENT_REQUESTED"
    INTENT_READY = "INTENT_READY"
    CONFIRMING = "CONFIRMING"
    SUCCEEDED = "SUCCEEDED"
    FAILED = "FAILED"
    CANCELLED = "CANCELLED"


class PaymentIntentStateMachine:
    """
    Lifecycle rules for one card payment attempt.
    Defines the legal state transitions.
    """

    _ALLOWED_TRANSITIONS: Dict[PaymentIntentStatus, Set[PaymentIntentStatus]] = {
        PaymentIntentStatus.IDLE: {
            PaymentIntentStatus.INTENT_REQUESTED,
        },
        PaymentIntentStatus.INTENT_REQUESTED: {
            PaymentIntentStatus.INTENT_READY,
            PaymentIntentStatus.FAILED,
        },
        PaymentIntentStatus.INTENT_READY: {
            PaymentIntentStatus.CONFIRMING,
            PaymentIntentStatus.CANCELLED,
        },
        PaymentIntentStatus.CONFIRMING: {
            PaymentIntentStatus.SUCCEEDED,
            PaymentIntentStatus.FAILED,
        },
        # A declined card keeps its client secret, so the user can
        # resubmit card details; a failed creation goes back to IDLE.
        PaymentIntentStatus.FAILED: {
            PaymentIntentStatus.IDLE,
            PaymentIntentStatus.CONFIRMING,
            PaymentIntentStatus.CANCELLED,
        },
        PaymentIntentStatus.CANCELLED: {
            PaymentIntentStatus.IDLE,
        },
        PaymentIntentStatus.SUCCEEDED: set(),
    }

    @classmethod
    def can_transition(
        cls,
        from_status: PaymentIntentStatus,
        to_status: PaymentIntentStatus,
    ) -> bool:
        """
        Returns True if transition is allowed.
        """
        cls._ensure_valid_status(from_status)
        cls._ensure_valid_status(to_status)

        return to_status in cls._ALLOWED_TRANSITIONS.get(from_status, set())

    @classmethod
    def validate_transition(
        cls,
        from_status: PaymentIntentStatus,
        to_status: PaymentIntentStatus,
    ) -> None:
        """
        Raises InvalidStateTransitionError if transition is illegal.
        """
        if not cls.can_transition(from_status, to_status):
            raise InvalidStateTransitionError(
                from_state=from_status.value,
                to_state=to_status.value,
            )

    @classmethod
    def is_terminal(cls, status: PaymentIntentStatus) -> bool:
        cls._ensure_valid_status(status)
        return len(cls._ALLOWED_TRANSITIONS.get(status, set())) == 0

    @classmethod
    def is_pending(cls, status: PaymentIntentStatus) -> bool:
        """
        Returns True while an intent exists that has neither
        succeeded nor been discarded.
        """
        cls._ensure_valid_status(status)
        return status in {
            PaymentIntentStatus.INTENT_REQUESTED,
            PaymentIntentStatus.INTENT_READY,
            PaymentIntentStatus.CONFIRMING,
        }

    @classmethod
    def get_allowed_transitions(
        cls, status: PaymentIntentStatus
    ) -> Set[PaymentIntentStatus]:
        cls._ensure_valid_status(status)
        return cls._ALLOWED_TRANSITIONS.get(status, set())

    @staticmethod
    def _ensure_valid_status(status: PaymentIntentStatus) -> None:
        if not isinstance(status, PaymentIntentStatus):
            raise TypeError(
                f"Expected PaymentIntentStatus, got {type(status)}"
            )

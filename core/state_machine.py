"""
Round state machine: the single place that knows which status changes are legal.

    IDLE -> ACTIVE -> VOTING -> RESOLVING -> IDLE
    ACTIVE | VOTING -> IDLE      (abandon)
    ACTIVE | VOTING -> IDLE -> ACTIVE   (restart, one storage transaction)
"""
from models import RoundStatus
from core.exceptions import InvalidStateTransition


class RoundStateMachine:
    """Validates round status transitions"""

    TRANSITIONS = {
        RoundStatus.IDLE: {RoundStatus.ACTIVE},
        RoundStatus.ACTIVE: {RoundStatus.VOTING, RoundStatus.IDLE},
        RoundStatus.VOTING: {RoundStatus.RESOLVING, RoundStatus.IDLE},
        RoundStatus.RESOLVING: {RoundStatus.IDLE},
    }

    @classmethod
    def can_transition(cls, current: RoundStatus, target: RoundStatus) -> bool:
        return target in cls.TRANSITIONS.get(current, set())

    @classmethod
    def validate(cls, current: RoundStatus, target: RoundStatus) -> None:
        """
        Raise if current -> target is not an allowed transition.

        Raises:
            InvalidStateTransition: the transition is not in TRANSITIONS
        """
        if not cls.can_transition(current, target):
            raise InvalidStateTransition(
                f"Cannot transition round from {current.value} to {target.value}"
            )

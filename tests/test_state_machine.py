import pytest

from models import RoundStatus
from core.exceptions import InvalidStateTransition, PreconditionFailed
from core.state_machine import RoundStateMachine


class TestRoundStateMachine:
    @pytest.mark.parametrize("current,target", [
        (RoundStatus.IDLE, RoundStatus.ACTIVE),
        (RoundStatus.ACTIVE, RoundStatus.VOTING),
        (RoundStatus.VOTING, RoundStatus.RESOLVING),
        (RoundStatus.RESOLVING, RoundStatus.IDLE),
        (RoundStatus.ACTIVE, RoundStatus.IDLE),
        (RoundStatus.VOTING, RoundStatus.IDLE),
    ])
    def test_allowed(self, current, target):
        assert RoundStateMachine.can_transition(current, target)
        RoundStateMachine.validate(current, target)

    @pytest.mark.parametrize("current,target", [
        (RoundStatus.IDLE, RoundStatus.VOTING),
        (RoundStatus.ACTIVE, RoundStatus.RESOLVING),
        (RoundStatus.RESOLVING, RoundStatus.ACTIVE),
        (RoundStatus.IDLE, RoundStatus.IDLE),
        (RoundStatus.COMPLETED, RoundStatus.ACTIVE),
    ])
    def test_rejected(self, current, target):
        assert not RoundStateMachine.can_transition(current, target)
        with pytest.raises(InvalidStateTransition):
            RoundStateMachine.validate(current, target)

    def test_invalid_transition_is_a_precondition_failure(self):
        assert issubclass(InvalidStateTransition, PreconditionFailed)

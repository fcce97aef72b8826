"""
Custom exceptions.

All game errors live here so the API layer can map them in one place:
- PreconditionFailed: the operation is not allowed in the current state
- VoteRejected: a vote attempt was invalid (the voter's allowance is kept)
- NotFound: an unknown participant or round
"""


class MafiaLeagueException(Exception):
    """Base class for all game errors"""
    pass


# ============ Precondition violations ============

class PreconditionFailed(MafiaLeagueException):
    """Operation rejected with no state change"""
    pass


class AlreadyInProgress(PreconditionFailed):
    """A round is already running on this server"""
    def __init__(self, server_id):
        self.server_id = server_id
        super().__init__(f"A round is already in progress on server {server_id}")


class InsufficientPlayers(PreconditionFailed):
    """Not enough eligible participants to start a round"""
    def __init__(self, available: int, required: int):
        self.available = available
        self.required = required
        super().__init__(f"Need at least {required} active players, got {available}")


class NotInProgress(PreconditionFailed):
    """The operation needs a live round (or a specific live status)"""
    pass


class RoundInProgress(PreconditionFailed):
    """The roster and settings are frozen while a round is live"""
    pass


class AlreadyJoined(PreconditionFailed):
    def __init__(self, user_id):
        self.user_id = user_id
        super().__init__(f"Player {user_id} has already joined")


class MaxActiveReached(PreconditionFailed):
    def __init__(self, max_active: int):
        self.max_active = max_active
        super().__init__(f"Maximum active players ({max_active}) already reached")


class OutPlayerInactive(PreconditionFailed):
    def __init__(self, user_id):
        self.user_id = user_id
        super().__init__(f"Player {user_id} is not in the active roster")


class InPlayerAlreadyActive(PreconditionFailed):
    def __init__(self, user_id):
        self.user_id = user_id
        super().__init__(f"Player {user_id} is already in the active roster")


class InvalidSetting(PreconditionFailed):
    """A configuration value outside its allowed range"""
    pass


class InvalidStateTransition(PreconditionFailed):
    """Illegal round status transition"""
    pass


# ============ Vote validity ============

class VoteRejected(MafiaLeagueException):
    """A vote attempt was refused"""
    def __init__(self, message, voter_id=None, suspect_id=None):
        self.voter_id = voter_id
        self.suspect_id = suspect_id
        super().__init__(message)


class InvalidVote(VoteRejected):
    """The voter is not eligible to vote"""
    pass


class VotingClosed(InvalidVote):
    """The collection window has already closed"""
    pass


class InvalidSuspect(VoteRejected):
    """The suspect is not in the active roster"""
    pass


class SelfVote(VoteRejected):
    pass


# ============ Lookup failures ============

class NotFound(MafiaLeagueException):
    pass


class PlayerNotFound(NotFound):
    def __init__(self, user_id):
        self.user_id = user_id
        super().__init__(f"Player {user_id} not found")


class RoundNotFound(NotFound):
    def __init__(self, round_id):
        self.round_id = round_id
        super().__init__(f"Round {round_id} not found")

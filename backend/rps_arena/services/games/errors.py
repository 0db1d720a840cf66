class MatchError(Exception):
    """Base class for match-core failures. Handled per request, never fatal."""

    status_code = 400
    default_message = 'match error'

    def __init__(self, message=None):
        self.message = message or self.default_message
        super().__init__(self.message)


class InvalidMove(MatchError):
    default_message = 'move must be one of rock, paper, scissors'


class NoActiveMatch(MatchError):
    status_code = 404
    default_message = 'no active match'


class MatchNotFinished(MatchError):
    default_message = 'match not finished'


class InsufficientFunds(MatchError):
    status_code = 402
    default_message = 'insufficient funds'


class AuthMismatch(MatchError):
    status_code = 401
    default_message = 'auth mismatch'

"""Typed failures raised by the match services.

Each class maps to one HTTP status; ``code`` is the machine-readable
reason sent back to the client as ``{"error": code}``.
"""


class SyncError(Exception):
    status = 500
    default_code = 'internal_error'

    def __init__(self, code: str = None):
        self.code = code or self.default_code
        super().__init__(self.code)


class NotFound(SyncError):
    status = 404
    default_code = 'match_not_found'


class Forbidden(SyncError):
    status = 403
    default_code = 'player_not_in_match'


class Conflict(SyncError):
    status = 409
    default_code = 'match_not_waiting'


class InvalidArgument(SyncError):
    status = 400
    default_code = 'invalid_params'


class Internal(SyncError):
    status = 500
    default_code = 'internal_error'

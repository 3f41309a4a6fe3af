"""Exceptions raised by the transfer engine services.

Routers translate these into HTTP errors; detection runs recover from
ConflictError and AmbiguousMatchError locally and report them in the run
summary instead of failing.
"""


class TransferEngineError(Exception):
    """Base exception for transfer engine errors."""

    pass


class ValidationError(TransferEngineError):
    """Bad input or an invalid state transition. Nothing was written."""

    pass


class NotFoundError(TransferEngineError):
    """The record does not exist for this user, or its state rules out the request."""

    pass


class ConflictError(TransferEngineError):
    """A transaction involved was linked by someone else first."""

    pass


class AmbiguousMatchError(TransferEngineError):
    """More than one transaction is an equally good match for a pending transfer side."""

    def __init__(self, message: str, *, side: str, candidate_ids: list[str]) -> None:
        super().__init__(message)
        self.side = side
        self.candidate_ids = candidate_ids

"""Error taxonomy."""

from __future__ import annotations


class LeaderboardError(Exception):
    pass


class InvalidInput(LeaderboardError, ValueError):
    pass


class StoreUnavailable(LeaderboardError):
    pass


class DeliveryFailure(LeaderboardError):
    def __init__(self, listener, cause: BaseException):
        super().__init__(f"delivery to {listener!r} failed: {cause!r}")
        self.listener = listener
        self.cause = cause

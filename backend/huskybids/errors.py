"""
backend/huskybids/errors.py

Purpose:
    Typed error taxonomy for the betting core. Every error carries the HTTP
    status it maps to and a public message that is safe to show the user.
    The API layer converts these into JSON responses in one place (main.py).
"""

from __future__ import annotations


class HuskyBidsError(Exception):
    status_code: int = 400
    public_message: str | None = None

    def __init__(self, message: str = "", **context):
        super().__init__(message)
        self.message = message
        self.context = context

    @property
    def detail(self) -> str:
        return self.public_message or self.message


class ValidationError(HuskyBidsError):
    """Bad input shape or range; user-correctable."""

    status_code = 400


class ValidationFailedError(ValidationError):
    """Wraps the bet validator's error message."""


class InvalidPredictionError(ValidationError):
    pass


class InsufficientFundsError(HuskyBidsError):
    status_code = 400

    def __init__(self, message: str = "Insufficient biscuits", **context):
        super().__init__(message, **context)


class BettingClosedError(HuskyBidsError):
    status_code = 409


class GameStateError(HuskyBidsError):
    """Game is in the wrong status/winner state for the requested operation."""

    status_code = 409


class ConcurrencyConflictError(HuskyBidsError):
    """Transient: the operation lost a race and may be retried by the caller."""

    status_code = 409
    public_message = "The game was updated while your request was processed. Please try again."


class NotFoundError(HuskyBidsError):
    status_code = 404


class GameNotFoundError(NotFoundError):
    def __init__(self, message: str = "Game not found", **context):
        super().__init__(message, **context)


class UserNotFoundError(NotFoundError):
    def __init__(self, message: str = "User not found", **context):
        super().__init__(message, **context)


class BetNotFoundError(NotFoundError):
    def __init__(self, message: str = "Bet not found", **context):
        super().__init__(message, **context)


class PersistenceError(HuskyBidsError):
    """Storage layer failure. Never retried by the core."""

    status_code = 500
    public_message = "An internal error occurred."


class AuthenticationError(HuskyBidsError):
    status_code = 401


class PermissionDeniedError(HuskyBidsError):
    status_code = 403


class FeedUnavailableError(HuskyBidsError):
    """The external sports feed could not be reached or returned garbage."""

    status_code = 503
    public_message = "The sports data feed is temporarily unavailable."

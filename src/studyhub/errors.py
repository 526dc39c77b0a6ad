"""Error taxonomy shared by the gamification core and the API layer."""

from __future__ import annotations


class GamificationError(Exception):
    """Base class for all core errors."""

    status_code = 500

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ValidationError(GamificationError):
    """Malformed or out-of-range input. Raised before any state is mutated."""

    status_code = 400


class NotFoundError(GamificationError):
    """A referenced user, badge or quest record does not exist."""

    status_code = 404


class ConcurrencyConflictError(GamificationError):
    """An atomic precondition kept failing after the transparent re-fetch."""

    status_code = 409


class StorageUnavailableError(GamificationError):
    """The database could not be reached. Callers may retry."""

    status_code = 503

"""Domain errors raised by the tracker services."""

from __future__ import annotations


class TrackerError(Exception):
    """Base class for failures reported back to the caller."""

    status_code = 400

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class NotFoundError(TrackerError):
    status_code = 404


class UnauthorizedError(TrackerError):
    status_code = 403


class ExpiredError(TrackerError):
    status_code = 410


class ValidationError(TrackerError):
    status_code = 422


class ConflictError(TrackerError):
    status_code = 409

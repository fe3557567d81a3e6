from __future__ import annotations


class PollError(Exception):
    """Base class for errors surfaced to API callers with a readable reason."""

    status_code = 400

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ValidationError(PollError):
    """Malformed or missing input. Nothing has been applied."""

    status_code = 400


class AuthorizationError(PollError):
    status_code = 403


class NotFoundError(PollError):
    status_code = 404

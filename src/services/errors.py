"""Typed failures raised by the grievance cell service layer.

Services raise these and never swallow them; the HTTP layer maps each
one to a status code through :attr:`GrievanceError.status_code`.
"""

from __future__ import annotations


class GrievanceError(Exception):
    """Base class for every failure the service layer reports."""

    status_code: int = 500

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ValidationError(GrievanceError):
    """Malformed or out-of-enumeration input."""

    status_code = 400


class AuthorizationError(GrievanceError):
    """The actor's role or ownership does not permit the action."""

    status_code = 403


class NotFoundError(GrievanceError):
    """A referenced grievance, user, or notification does not exist."""

    status_code = 404


class ConflictError(GrievanceError):
    """A uniqueness constraint was violated (tracking-id collision)."""

    status_code = 409

"""
Error taxonomy for MUCM.

Recoverable kinds (reported to the caller, state untouched):
    ValidationError, NotFoundError, ConflictError, PreconditionError

Fatal kinds (abort the current command):
    PersistenceError, MigrationError, RenderError

Every error may carry a ``hint`` naming the recommended next step; the CLI
prints it under the message.
"""

from __future__ import annotations

from typing import Optional


class MucmError(Exception):
    """Base class for all errors raised by the core."""

    exit_code = 1

    def __init__(self, message: str, hint: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.hint = hint

    def __str__(self) -> str:
        return self.message


class ValidationError(MucmError, ValueError):
    """Malformed IDs, unknown enum values, unknown methodology or level."""

    exit_code = 2


class NotFoundError(MucmError, LookupError):
    """A use case, scenario, persona or methodology key is missing."""

    exit_code = 3


class ConflictError(MucmError):
    """An ID or view key is already in use."""

    exit_code = 4


class PreconditionError(MucmError):
    """The operation needs an initialized project and none was found."""

    exit_code = 5


class PersistenceError(MucmError):
    """Backend I/O or transaction failure."""

    exit_code = 6


class MigrationError(PersistenceError):
    """Schema migration failed or the store is newer than this tool."""


class RenderError(MucmError):
    """Missing template, malformed template source or helper failure."""

    exit_code = 7

"""Exceptions raised while migrating changes between repositories."""

from enum import IntEnum
from typing import Optional


class ExitCode(IntEnum):
    """Process exit codes reported by the command line tool."""

    SUCCESS = 0
    COMMAND_LINE_ERROR = 1
    CONFIGURATION_ERROR = 2
    REPOSITORY_ERROR = 3
    NO_OP = 4
    INTERRUPTED = 8
    ENVIRONMENT_ERROR = 30
    INTERNAL_ERROR = 31


class MigrateError(Exception):
    """Base exception for migration errors."""

    exit_code = ExitCode.INTERNAL_ERROR


class ValidationException(MigrateError):
    """Configuration or usage error. Never retried."""

    exit_code = ExitCode.CONFIGURATION_ERROR

    @classmethod
    def check(cls, condition: bool, message: str, *args) -> None:
        """Raise if ``condition`` is false.

        Args:
            condition: Condition that must hold
            message: Error message, %-formatted with ``args``
            *args: Format arguments
        """
        if not condition:
            raise cls(message % args if args else message)


class NonReversibleValidationException(ValidationException):
    """A transformation cannot be reversed."""

    pass


class VoidOperationException(ValidationException):
    """A transformation did not change anything and no-op was not allowed."""

    pass


class CommandLineException(ValidationException):
    """Invalid command line arguments."""

    exit_code = ExitCode.COMMAND_LINE_ERROR


class RepoException(MigrateError):
    """Origin or destination I/O or protocol failure."""

    exit_code = ExitCode.REPOSITORY_ERROR


class CannotResolveRevisionException(RepoException):
    """A reference cannot be resolved to a revision."""

    pass


class ChangeRejectedException(RepoException):
    """The user rejected the change when asked for confirmation."""

    pass


class EmptyChangeException(MigrateError):
    """The migration unit produced no change in the destination."""

    exit_code = ExitCode.NO_OP


class RedundantChangeException(EmptyChangeException):
    """The same origin change is already pending in the destination."""

    def __init__(self, message: str, pending_change_id: Optional[str] = None):
        """Initialize redundant change error.

        Args:
            message: Error message
            pending_change_id: Identifier of the pending change in the destination
        """
        super().__init__(message)
        self.pending_change_id = pending_change_id

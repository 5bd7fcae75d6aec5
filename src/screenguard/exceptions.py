"""Exception hierarchy for ScreenGuard.

- ScreenGuardError: base class for every known failure
- ValidationError: bad input (negative duration, malformed time range)
- NotFoundError: operation on an unknown id
- StateConflictError: operation not allowed in the current state
- StorageError: the storage collaborator failed
"""
from typing import Optional


class ScreenGuardError(Exception):
    """Base class for all ScreenGuard errors."""

    def __init__(self, message: str, hint: Optional[str] = None):
        """
        Args:
            message: What went wrong
            hint: Suggested action for the host application
        """
        self.message = message
        self.hint = hint
        super().__init__(message)

    def __str__(self) -> str:
        if self.hint:
            return f"{self.message} (hint: {self.hint})"
        return self.message


class ValidationError(ScreenGuardError):
    """Input rejected before anything was written."""


class InvalidTargetError(ValidationError):
    """Progressive limit target leaves nothing to reduce."""


class NotFoundError(ScreenGuardError):
    """No record with the requested id."""


class StateConflictError(ScreenGuardError):
    """Operation conflicts with current state."""


class SessionAlreadyActiveError(StateConflictError):
    """A focus session is already open."""

    def __init__(self, session_id: Optional[int] = None):
        self.session_id = session_id
        super().__init__(
            "A focus session is already active",
            hint="Complete or cancel the current session first",
        )


class NoActiveSessionError(StateConflictError):
    """No focus session is open."""

    def __init__(self):
        super().__init__("No focus session is active", hint="Start a session first")


class LimitAlreadyActiveError(StateConflictError):
    """Package already has an active progressive limit."""

    def __init__(self, package_name: str):
        self.package_name = package_name
        super().__init__(
            f"Progressive limit already active for {package_name}",
            hint="Cancel the existing limit before creating a new one",
        )


class StorageError(ScreenGuardError):
    """Storage collaborator failure."""

"""Exception hierarchy for the Drive to Wiki migration pipeline."""

from typing import Any, Iterable, Optional


class MigrationError(Exception):
    """Base exception for migration failures."""
    pass


class ValidationError(MigrationError):
    """Bad or missing user input or selection; raised before any remote call."""
    pass


class TransportError(MigrationError):
    """Remote call failed or returned a non-success envelope."""

    def __init__(self, step: str, message: str, result: Optional[Any] = None):
        """
        Initialize transport error.

        Args:
            step: Label of the remote operation that failed
            message: Human-readable error message
            result: Offending ApiResult envelope, if one was received
        """
        self.step = step
        self.result = result
        super().__init__(f"{step}: {message}")

    def to_dict(self) -> dict:
        """Serialize error with the offending request/response."""
        data = {'step': self.step, 'message': str(self)}
        if self.result is not None:
            data['request'] = self.result.request
            data['response'] = self.result.response
            if self.result.error:
                data['error'] = self.result.error
        return data


class IntegrityError(MigrationError):
    """Post-copy verification found fewer items than planned."""

    def __init__(self, expected: int, actual: int):
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"Copy verification failed: expected {expected}, found {actual}"
        )


class PlanError(MigrationError):
    """The folder dependency graph cannot make progress."""

    def __init__(self, message: str, unresolved: Iterable[str] = ()):
        self.unresolved = list(unresolved)
        super().__init__(message)


class MigrationCancelled(MigrationError):
    """The user cancelled the run. Reported as a cancellation, not a failure."""

    def __init__(self, message: str = "Migration cancelled by user"):
        super().__init__(message)


__all__ = [
    'MigrationError',
    'ValidationError',
    'TransportError',
    'IntegrityError',
    'PlanError',
    'MigrationCancelled'
]

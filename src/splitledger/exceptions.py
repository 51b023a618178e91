"""Custom exceptions for SplitLedger."""

from decimal import Decimal


class SplitLedgerError(Exception):
    """Base exception for all SplitLedger errors."""

    pass


class ConfigurationError(SplitLedgerError):
    """Raised when configuration is invalid or missing."""

    pass


class ValidationError(SplitLedgerError):
    """Raised when input is malformed (non-positive amount, bad weights, ...)."""

    pass


class SplitMismatchError(ValidationError):
    """Raised when exact split amounts don't add up to the entry amount."""

    def __init__(self, expected: Decimal, actual: Decimal, message: str | None = None):
        self.expected = expected
        self.actual = actual
        super().__init__(
            message
            or f"Split amounts total {actual} but the entry amount is {expected}"
        )


class DanglingReferenceError(SplitLedgerError):
    """Raised when a participant or group reference doesn't resolve."""

    pass


class NotFoundError(SplitLedgerError):
    """Raised when a group, entry or settlement is missing on read."""

    def __init__(self, kind: str, identifier: str, message: str | None = None):
        self.kind = kind
        self.identifier = identifier
        super().__init__(message or f"{kind.capitalize()} {identifier} not found")


class PersistenceError(SplitLedgerError):
    """Raised when the backing store fails."""

    pass

"""Domain-specific exceptions for the finance tracker core services."""

from typing import List, Tuple


class ValidationError(ValueError):
    """Raised when provided data does not meet validation requirements."""


class RecordNotFoundError(LookupError):
    """Raised when a budget, transaction, user or notification cannot be located."""


class PersistenceError(IOError):
    """Raised when the persistence layer encounters unrecoverable issues."""


class DeliveryError(RuntimeError):
    """Raised when no mail transport in the fallback chain could deliver a message."""

    def __init__(self, message: str, failures: List[Tuple[str, str]]) -> None:
        super().__init__(message)
        self.failures = failures

    def __str__(self) -> str:
        base = super().__str__()
        if not self.failures:
            return base
        detail = "; ".join(f"{name}: {reason}" for name, reason in self.failures)
        return f"{base} ({detail})"

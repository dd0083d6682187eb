"""Error types raised by the semantic store.

A missing record is not an error: lookups return ``None`` and deletes
return ``False``. Everything below propagates to the caller unmodified.
"""

from __future__ import annotations


class StoreError(Exception):
    """Base class for every error raised by this package."""


class ConfigurationError(StoreError, ValueError):
    """Raised at construction when required configuration is missing or invalid."""


class ValidationError(StoreError, ValueError):
    """Raised for malformed input or filters, before any external call."""

    def __init__(self, message: str, field: str = "unknown"):
        super().__init__(message)
        self.field = field


class ProviderError(StoreError, RuntimeError):
    """Raised by embedding providers on transport, quota or response failures."""

    def __init__(self, message: str, retryable: bool = False):
        super().__init__(message)
        self.retryable = retryable


class EmbeddingDimensionMismatch(ProviderError):
    """Provider returned a vector of the wrong length. Never retryable."""

    def __init__(self, expected: int, actual: int):
        super().__init__(
            f"Embedding dimension mismatch: expected {expected}, got {actual}",
            retryable=False,
        )
        self.expected = expected
        self.actual = actual


class EmbeddingFailed(StoreError, RuntimeError):
    """A write or search was aborted because its embedding could not be computed."""

    def __init__(self, message: str, retryable: bool = False):
        super().__init__(message)
        self.retryable = retryable

    @classmethod
    def from_provider(cls, exc: ProviderError) -> EmbeddingFailed:
        return cls(str(exc), retryable=exc.retryable)


class StoreUnavailable(StoreError, RuntimeError):
    """The vector engine could not be reached or rejected an operation."""

"""
Error taxonomy for the retrieval pipeline.

Lookups and deletes of unknown ids are not errors: they return
False / 0 / None instead of raising.
"""

from typing import Optional


class RagCoreError(Exception):
    """Base class for all ragcore errors."""


class DimensionMismatch(RagCoreError, ValueError):
    """An embedding's length differs from the dimensionality it must have."""

    def __init__(self, expected: int, actual: int, context: str = "") -> None:
        self.expected = expected
        self.actual = actual
        message = f"Embedding dimension mismatch. Expected {expected}, got {actual}"
        if context:
            message = f"{message} ({context})"
        super().__init__(message)


class ProviderFailure(RagCoreError, RuntimeError):
    """
    The embedding provider could not produce embeddings.

    Never retried by the embedding generator; callers decide whether
    to resubmit.
    """

    def __init__(
        self,
        message: str,
        provider: str = "",
        status_code: Optional[int] = None,
    ) -> None:
        self.provider = provider
        self.status_code = status_code
        super().__init__(message)


class InvalidConfiguration(RagCoreError, ValueError):
    """Unknown model id, provider kind, or otherwise unusable setting."""

"""
Error taxonomy for the semantic index.
Provider degradation is never raised; it resolves to the deterministic fallback.
"""


class SemanticIndexError(Exception):
    """Base class for semantic index errors."""


class StorageError(SemanticIndexError):
    """A read or write against the relational store failed."""

    def __init__(self, operation: str, cause: Exception):
        super().__init__(f"{operation} failed: {cause}")
        self.operation = operation
        self.cause = cause


class InvalidQueryError(SemanticIndexError, ValueError):
    """Query text was empty or whitespace only."""


class BackendUnavailableError(SemanticIndexError):
    """The accelerated vector backend is missing or misbehaving."""


class QueryDimensionError(SemanticIndexError):
    """The query vector does not match the accelerated index dimension."""

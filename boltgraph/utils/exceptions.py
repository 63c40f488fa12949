"""
Custom exception hierarchy for BoltGraph.

Provides structured error types grouped by handling policy.
All exceptions inherit from BoltGraphError for easy catching.

Policy groups:
- InputError: rejected immediately, never retried
- CapabilityError: retried per node with backoff, exhaustion aborts the update
- StructuralError: fatal to the current attempt, no partial commit
- ConcurrencyError: visible to the caller, retryable by the caller
"""


class BoltGraphError(Exception):
    """
    Base exception for all BoltGraph errors.
    All custom exceptions should inherit from this class.
    """

    def __init__(self, message: str, context: dict | None = None):
        """
        Initialize BoltGraph error.
        Args:
            message: Error message
            context: Optional context dictionary with additional error details
        """
        super().__init__(message)
        self.message = message
        self.context = context or {}


# ═══════════════════════════════════════════════════════════
# INPUT ERRORS
# ═══════════════════════════════════════════════════════════


class InputError(BoltGraphError):
    """
    Invalid input errors.
    Raised when a caller supplies content or parameters that can never succeed.
    """

    pass


class EmptyContentError(InputError):
    """Raised when a content span is empty or whitespace only."""

    pass


class InvalidWeightsError(InputError):
    """Raised when combination weights do not sum to 1.0 within tolerance."""

    pass


class NegativeWeightError(InputError):
    """Raised when a combination weight is below zero."""

    pass


class ContentMismatchError(InputError):
    """Raised when view embeddings to be combined describe different content."""

    pass


# ═══════════════════════════════════════════════════════════
# CAPABILITY ERRORS
# ═══════════════════════════════════════════════════════════


class CapabilityError(BoltGraphError):
    """
    Analyzer capability errors.
    Raised when the external analysis service cannot serve a request.
    """

    pass


class AnalysisUnavailableError(CapabilityError):
    """Raised when the analyzer fails or returns an unusable result."""

    pass


class AnalysisTimeoutError(AnalysisUnavailableError):
    """Raised when an analyzer call exceeds its timeout."""

    pass


# ═══════════════════════════════════════════════════════════
# STRUCTURAL ERRORS
# ═══════════════════════════════════════════════════════════


class StructuralError(BoltGraphError):
    """
    Hierarchy structure errors.
    Fatal to the current update attempt; nothing is committed.
    """

    pass


class StructuralCycleError(StructuralError):
    """Raised when a Contains edge would create a cycle or a second parent."""

    pass


class InvalidEdgeError(StructuralError):
    """Raised when an edge references unknown nodes or breaks sibling rules."""

    pass


class DimensionMismatchError(StructuralError):
    """Raised when vectors that must share a dimension do not."""

    pass


class MaxHopsExceededError(StructuralError):
    """Raised when impact propagation needs more waves than allowed."""

    pass


# ═══════════════════════════════════════════════════════════
# CONCURRENCY ERRORS
# ═══════════════════════════════════════════════════════════


class ConcurrencyError(BoltGraphError):
    """
    Concurrency errors.
    Non-fatal; the caller may retry the operation later.
    """

    pass


class UpdateInProgressError(ConcurrencyError):
    """Raised when a document already has an in-flight update."""

    pass


class UpdateCancelledError(ConcurrencyError):
    """Raised when an in-flight update was cancelled before commit."""

    pass


# ═══════════════════════════════════════════════════════════
# VALIDATION / STORAGE / MISC
# ═══════════════════════════════════════════════════════════


class ValidationFailedError(BoltGraphError):
    """
    Blocking validation failure.
    Raised when a candidate revision fails a fatal validation check.
    The report is attached so callers can inspect every issue.
    """

    def __init__(self, message: str, report=None, context: dict | None = None):
        super().__init__(message, context)
        self.report = report


class StoreError(BoltGraphError):
    """
    Base exception for store operations.
    Used for errors related to persistence and indexing.
    """

    pass


class StorageError(StoreError):
    """
    Blob storage operation errors.
    Raised when the storage backend fails or returns corrupt data.
    """

    pass


class SearchIndexError(StoreError):
    """
    Search index operation errors.
    Raised when vector index operations fail.
    """

    pass


class NotFoundError(BoltGraphError):
    """
    Resource not found errors.
    Raised when a requested document, revision or node doesn't exist.
    """

    pass


class ConfigurationError(BoltGraphError):
    """
    Configuration errors.
    Raised when configuration is invalid or missing required values.
    """

    pass

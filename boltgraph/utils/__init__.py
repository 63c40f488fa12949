"""Utility modules for BoltGraph."""

from boltgraph.utils.exceptions import (
    AnalysisTimeoutError,
    AnalysisUnavailableError,
    BoltGraphError,
    CapabilityError,
    ConcurrencyError,
    ConfigurationError,
    ContentMismatchError,
    DimensionMismatchError,
    EmptyContentError,
    InputError,
    InvalidEdgeError,
    InvalidWeightsError,
    MaxHopsExceededError,
    NegativeWeightError,
    NotFoundError,
    SearchIndexError,
    StorageError,
    StoreError,
    StructuralCycleError,
    StructuralError,
    UpdateCancelledError,
    UpdateInProgressError,
    ValidationFailedError,
)
from boltgraph.utils.id_generator import (
    generate_concept_id,
    generate_paragraph_id,
    generate_revision_id,
    generate_section_id,
    generate_update_id,
)
from boltgraph.utils.logger import get_logger, setup_logging, setup_logging_from_config

__all__ = [
    # Logging
    "get_logger",
    "setup_logging",
    "setup_logging_from_config",
    # ID Generators
    "generate_revision_id",
    "generate_section_id",
    "generate_paragraph_id",
    "generate_update_id",
    "generate_concept_id",
    # Exceptions
    "BoltGraphError",
    "InputError",
    "EmptyContentError",
    "InvalidWeightsError",
    "NegativeWeightError",
    "ContentMismatchError",
    "CapabilityError",
    "AnalysisUnavailableError",
    "AnalysisTimeoutError",
    "StructuralError",
    "StructuralCycleError",
    "InvalidEdgeError",
    "DimensionMismatchError",
    "MaxHopsExceededError",
    "ConcurrencyError",
    "UpdateInProgressError",
    "UpdateCancelledError",
    "ValidationFailedError",
    "StoreError",
    "StorageError",
    "SearchIndexError",
    "NotFoundError",
    "ConfigurationError",
]

"""Custom exception hierarchy for Equilibrium.

All exceptions are re-exported here. Import from this package directly:

    from equilibrium.core.domain.exceptions import EquilibriumError, NotInitializedError
"""

# Base classes
from .base import EquilibriumError, RaiseSite

# Configuration exceptions
from .configuration import ConfigurationError, ModelPathNotFoundError

# Document store exceptions
from .document_store import (
    DimensionMismatchError,
    DocumentStoreError,
    MissingTablesError,
)

# Embedding exceptions
from .embedding import EmbeddingError, ModelLoadError, ModelNotReadyError

# Generation exceptions
from .generation import BackendNotReadyError, GenerationError

# Inference exceptions
from .inference import (
    EmbeddingInferenceError,
    GenerationInferenceError,
    GenerationTimeoutError,
    InferenceError,
)

# Retrieval exceptions
from .retrieval import InitializationError, NotInitializedError, RetrievalError

# Validation exceptions
from .validation import EmptyInputError, ValidationError

__all__ = [
    # Base
    "RaiseSite",
    "EquilibriumError",
    # Configuration
    "ConfigurationError",
    "ModelPathNotFoundError",
    # Document store
    "DocumentStoreError",
    "DimensionMismatchError",
    "MissingTablesError",
    # Embedding
    "EmbeddingError",
    "ModelNotReadyError",
    "ModelLoadError",
    # Inference
    "InferenceError",
    "EmbeddingInferenceError",
    "GenerationInferenceError",
    "GenerationTimeoutError",
    # Generation
    "GenerationError",
    "BackendNotReadyError",
    # Retrieval
    "RetrievalError",
    "NotInitializedError",
    "InitializationError",
    # Validation
    "ValidationError",
    "EmptyInputError",
]

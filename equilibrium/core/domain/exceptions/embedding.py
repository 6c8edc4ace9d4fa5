"""Embedding exceptions for Equilibrium."""

from .base import EquilibriumError


class EmbeddingError(EquilibriumError):
    """Base error for the embedding model."""

    error_code = "EQ_EMB_001"


class ModelNotReadyError(EmbeddingError):
    """Embedding requested before the model and tokenizer were loaded."""

    error_code = "EQ_EMB_002"


class ModelLoadError(EmbeddingError):
    """The embedding model or tokenizer could not be loaded."""

    error_code = "EQ_EMB_003"

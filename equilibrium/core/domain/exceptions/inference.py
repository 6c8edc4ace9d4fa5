"""Inference exceptions for Equilibrium.

Raised when a numeric backend (embedding model or language model) fails while
computing a result. These are always recoverable: the caller may retry.
"""

from .base import EquilibriumError


class InferenceError(EquilibriumError):
    """A backend computation failed."""

    error_code = "EQ_INF_001"


class EmbeddingInferenceError(InferenceError):
    """The embedding forward pass failed or produced unusable output."""

    error_code = "EQ_INF_002"


class GenerationInferenceError(InferenceError):
    """The language model failed while streaming a completion.

    Common causes:
    - Context window exceeded
    - Backend process crashed or ran out of memory
    """

    error_code = "EQ_INF_003"


class GenerationTimeoutError(GenerationInferenceError):
    """The completion did not finish within the configured timeout."""

    error_code = "EQ_INF_004"

"""Retrieval exceptions for Equilibrium."""

from .base import EquilibriumError


class RetrievalError(EquilibriumError):
    """Error during document retrieval."""

    error_code = "EQ_RET_001"


class NotInitializedError(RetrievalError):
    """Retrieval used before initialize() has succeeded."""

    error_code = "EQ_RET_002"


class InitializationError(RetrievalError):
    """Loading the model, tokenizer or document store failed.

    The ``cause`` attribute holds the first failing step's exception and
    ``extra_context["step"]`` names that step.
    """

    error_code = "EQ_RET_003"

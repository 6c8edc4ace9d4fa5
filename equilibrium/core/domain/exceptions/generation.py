"""Generation orchestration exceptions for Equilibrium."""

from .base import EquilibriumError


class GenerationError(EquilibriumError):
    """Base error for the generation orchestrator."""

    error_code = "EQ_GEN_001"


class BackendNotReadyError(GenerationError):
    """A backend is unavailable or a generation is already in flight.

    Common causes:
    - The language model has not been loaded
    - The retrieval service has not been initialized
    - A previous message is still being answered
    """

    error_code = "EQ_GEN_002"

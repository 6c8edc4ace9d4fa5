"""Validation exceptions for Equilibrium."""

from .base import EquilibriumError


class ValidationError(EquilibriumError):
    """Input validation failed."""

    error_code = "EQ_VAL_001"


class EmptyInputError(ValidationError):
    """Message cannot be empty or whitespace only."""

    error_code = "EQ_VAL_002"

"""Configuration-related exceptions for Equilibrium."""

from .base import EquilibriumError


class ConfigurationError(EquilibriumError):
    """Configuration or environment variable errors.

    Raised when required configuration is missing or invalid.
    """

    error_code = "EQ_CFG_001"


class ModelPathNotFoundError(ConfigurationError):
    """Configured model file does not exist on disk."""

    error_code = "EQ_CFG_002"

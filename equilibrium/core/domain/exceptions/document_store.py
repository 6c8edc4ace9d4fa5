"""Document store exceptions for Equilibrium."""

from .base import EquilibriumError


class DocumentStoreError(EquilibriumError):
    """Base error for document store operations."""

    error_code = "EQ_DOC_001"


class DimensionMismatchError(DocumentStoreError):
    """A stored embedding does not match the query dimension.

    Raised per record while scanning. The scan catches it, logs the record
    id and continues with the next row.
    """

    error_code = "EQ_DOC_002"


class MissingTablesError(DocumentStoreError):
    """The database does not contain the expected tables.

    Common causes:
    - Wrong database path
    - Ingestion has not been run yet
    """

    error_code = "EQ_DOC_003"

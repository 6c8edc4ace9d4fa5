"""Retrieval outcome models."""

from dataclasses import dataclass, field
from typing import Any


@dataclass(frozen=True)
class DocumentUsage:
    """Provenance of a document that made it into the context window."""

    id: Any
    similarity: float
    collection_name: str | None = None


@dataclass(frozen=True)
class RetrievalOutcome:
    """Context assembled for one query.

    Attributes:
        context: Concatenated document contents, trimmed to the budget.
        context_length: Character length of ``context``.
        documents_used: Documents included before the length cap, in rank order.
        total_documents_found: Results returned by the search before the cap.
        query: The query text the context was retrieved for.
    """

    context: str
    context_length: int
    documents_used: list[DocumentUsage] = field(default_factory=list)
    total_documents_found: int = 0
    query: str = ""

    @property
    def is_empty(self) -> bool:
        return not self.context

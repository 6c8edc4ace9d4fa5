"""Domain models for Equilibrium.

- document: DocumentRecord, StoredDocument, SearchResult and store statistics
- retrieval: RetrievalOutcome and DocumentUsage
- conversation: Role, ConversationTurn, GenerationSession, TurnResult

All models are re-exported here:

    from equilibrium.core.domain import DocumentRecord, SearchResult, Role
"""

from .conversation import (
    CompletionResult,
    ConversationTurn,
    GenerationSession,
    Role,
    TurnResult,
)
from .document import (
    CollectionStats,
    DocumentRecord,
    EmbeddingVector,
    SearchResult,
    StoredDocument,
    StoreStats,
)
from .retrieval import DocumentUsage, RetrievalOutcome

__all__ = [
    # Document models
    "EmbeddingVector",
    "DocumentRecord",
    "StoredDocument",
    "SearchResult",
    "CollectionStats",
    "StoreStats",
    # Retrieval models
    "DocumentUsage",
    "RetrievalOutcome",
    # Conversation models
    "Role",
    "ConversationTurn",
    "CompletionResult",
    "GenerationSession",
    "TurnResult",
]

"""Document and search result models for the retrieval engine."""

from dataclasses import dataclass, field
from typing import Any, TypeAlias

import numpy as np
import numpy.typing as npt

EmbeddingVector: TypeAlias = npt.NDArray[np.float32]


@dataclass(frozen=True)
class DocumentRecord:
    """A stored document chunk.

    Rows are written by an external ingestion process and are read-only
    from the engine's perspective.

    Attributes:
        id: Stable, opaque identifier of the chunk.
        content: The text chunk.
        embedding: Pre-computed vector of the chunk, dimension D.
        metadata: Free-form key-value pairs attached at ingestion time.
        collection_name: Logical grouping label, if any.
    """

    id: Any
    content: str
    embedding: EmbeddingVector | None = None
    metadata: dict[str, Any] = field(default_factory=dict)
    collection_name: str | None = None


@dataclass(frozen=True)
class StoredDocument:
    """Raw row as returned by a document store, embedding still encoded."""

    id: Any
    content: str
    embedding: bytes
    metadata_json: str | None = None
    collection_name: str | None = None


@dataclass
class SearchResult:
    """A document matched by a similarity search.

    Attributes:
        document: The matched DocumentRecord.
        similarity: Cosine similarity to the query, in [-1, 1].
    """

    document: DocumentRecord
    similarity: float

    @property
    def id(self) -> Any:
        return self.document.id

    @property
    def content(self) -> str:
        return self.document.content

    @property
    def collection_name(self) -> str | None:
        return self.document.collection_name


@dataclass(frozen=True)
class CollectionStats:
    """Row count for one collection of the document store."""

    name: str
    documents: int


@dataclass(frozen=True)
class StoreStats:
    """Summary of the document store contents."""

    total_documents: int
    collections: list[CollectionStats]
    model_name: str | None = None
    is_initialized: bool = False

"""Document Store Port Interface."""

from abc import ABC, abstractmethod
from collections.abc import Iterator
from typing import Any

from ..domain import CollectionStats, StoredDocument


class DocumentStorePort(ABC):
    """Read-only access to the persisted document chunks."""

    @abstractmethod
    def open(self) -> None:
        """Open the store and verify its structure. Blocking."""
        ...

    @abstractmethod
    def close(self) -> None: ...

    @abstractmethod
    def iter_documents(self, collection_name: str | None = None) -> Iterator[StoredDocument]:
        """Yield every stored chunk, optionally restricted to one collection."""
        ...

    @abstractmethod
    def get_document(self, doc_id: Any) -> StoredDocument | None: ...

    @abstractmethod
    def count_documents(self) -> int: ...

    @abstractmethod
    def list_collections(self) -> list[CollectionStats]: ...

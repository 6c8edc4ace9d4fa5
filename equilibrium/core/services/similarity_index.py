"""Linear-scan cosine similarity search over the document store.

Every query scans the full candidate set. This is adequate for the small
collections shipped on device; a larger corpus would need an approximate
nearest-neighbour index behind the same ``search()`` signature.
"""

import json
import logging

import numpy as np

from ..domain import DocumentRecord, EmbeddingVector, SearchResult, StoredDocument
from ..domain.exceptions import DimensionMismatchError
from ..ports.document_store_port import DocumentStorePort

logger = logging.getLogger(__name__)

# Stored embeddings are packed little-endian float32
EMBEDDING_DTYPE = np.dtype("<f4")


def cosine_similarity(a: np.ndarray, b: np.ndarray) -> float:
    """Cosine similarity of two vectors; 0.0 when either has zero norm.

    Raises:
        DimensionMismatchError: If the vectors differ in length.
    """
    if a.shape != b.shape:
        raise DimensionMismatchError(
            "Vectors must have the same length",
            context={"left": int(a.shape[0]), "right": int(b.shape[0])},
        )

    norm_a = float(np.linalg.norm(a))
    norm_b = float(np.linalg.norm(b))
    if norm_a == 0.0 or norm_b == 0.0:
        return 0.0

    return float(np.dot(a, b) / (norm_a * norm_b))


def decode_embedding(buffer: bytes, dimension: int) -> EmbeddingVector:
    """Convert a stored embedding buffer to a float32 vector of length ``dimension``.

    Raises:
        DimensionMismatchError: If the buffer does not hold exactly ``dimension`` floats.
    """
    size = len(buffer)
    if size % EMBEDDING_DTYPE.itemsize or size // EMBEDDING_DTYPE.itemsize != dimension:
        raise DimensionMismatchError(
            "Stored embedding has the wrong size",
            context={"bytes": size, "expected_dimension": dimension},
        )
    return np.frombuffer(buffer, dtype=EMBEDDING_DTYPE).astype(np.float32)


def encode_embedding(vector: np.ndarray) -> bytes:
    """Pack a vector in the stored embedding format."""
    return np.asarray(vector, dtype=EMBEDDING_DTYPE).tobytes()


class SimilarityIndex:
    """Ranks stored documents by cosine similarity to a query vector."""

    def __init__(self, store: DocumentStorePort) -> None:
        self.store = store

    def search(
        self,
        query: EmbeddingVector,
        top_k: int = 5,
        threshold: float = 0.0,
        collection_name: str | None = None,
        include_embeddings: bool = False,
    ) -> list[SearchResult]:
        """Find the stored documents most similar to ``query``.

        Args:
            query: Query vector, dimension D.
            top_k: Maximum number of results (must be positive).
            threshold: Minimum similarity to keep, in [-1, 1].
            collection_name: Restrict the scan to one collection.
            include_embeddings: Attach decoded vectors to the returned records.

        Returns:
            Results sorted by similarity descending, ties in scan order.

        Raises:
            ValueError: If top_k or threshold is out of range.
        """
        if top_k <= 0:
            raise ValueError("top_k must be positive")
        if not -1.0 <= threshold <= 1.0:
            raise ValueError("threshold must be within [-1, 1]")

        dimension = int(query.shape[0])
        matches: list[SearchResult] = []
        scanned = skipped = 0

        for row in self.store.iter_documents(collection_name):
            scanned += 1
            try:
                embedding = decode_embedding(row.embedding, dimension)
                metadata = self._parse_metadata(row)
            except DimensionMismatchError as e:
                skipped += 1
                logger.warning("Skipping document %s: %s %s", row.id, e.message, e.extra_context)
                continue
            except (json.JSONDecodeError, TypeError) as e:
                skipped += 1
                logger.warning("Skipping document %s: invalid metadata (%s)", row.id, e)
                continue

            similarity = cosine_similarity(query, embedding)
            if similarity < threshold:
                continue

            record = DocumentRecord(
                id=row.id,
                content=row.content,
                embedding=embedding if include_embeddings else None,
                metadata=metadata,
                collection_name=row.collection_name,
            )
            matches.append(SearchResult(document=record, similarity=similarity))

        # list.sort is stable, so equal scores keep scan order
        matches.sort(key=lambda r: r.similarity, reverse=True)

        logger.debug(
            "Scanned %d documents (%d skipped), %d above threshold %.2f",
            scanned,
            skipped,
            len(matches),
            threshold,
        )
        return matches[:top_k]

    @staticmethod
    def _parse_metadata(row: StoredDocument) -> dict:
        if not row.metadata_json:
            return {}
        metadata = json.loads(row.metadata_json)
        if not isinstance(metadata, dict):
            raise TypeError(f"metadata must be an object, got {type(metadata).__name__}")
        return metadata

"""Retrieval facade: embed, search, and assemble context for a query."""

import asyncio
import json
import logging
from enum import Enum
from typing import Any

from ..domain import (
    DocumentRecord,
    RetrievalOutcome,
    SearchResult,
    StoreStats,
)
from ..domain.exceptions import InitializationError, NotInitializedError
from ..domain.utils import preview
from ..ports.document_store_port import DocumentStorePort
from .context_assembler import ContextAssembler
from .embedder import Embedder
from .similarity_index import SimilarityIndex

logger = logging.getLogger(__name__)


class RetrievalState(Enum):
    """Lifecycle of the retrieval service."""

    UNINITIALIZED = "uninitialized"
    INITIALIZING = "initializing"
    READY = "ready"


class RetrievalService:
    """Retrieves context for user messages from the local document store.

    The service is constructed explicitly and handed to whatever needs it.
    ``initialize()`` must succeed before ``retrieve()`` can be used.
    """

    def __init__(
        self,
        embedder: Embedder,
        store: DocumentStorePort,
        index: SimilarityIndex | None = None,
        assembler: ContextAssembler | None = None,
        *,
        top_k: int = 3,
        threshold: float = 0.1,
        max_context_length: int = 2000,
    ) -> None:
        """Initialize the retrieval service.

        Args:
            embedder: Embedder used for query vectors.
            store: Read-only document store.
            index: Similarity index over ``store`` (built from it if omitted).
            assembler: Context assembler (default delimiter if omitted).
            top_k: Default number of documents to retrieve.
            threshold: Default minimum cosine similarity.
            max_context_length: Default character budget for the context.
        """
        self.embedder = embedder
        self.store = store
        self.index = index or SimilarityIndex(store)
        self.assembler = assembler or ContextAssembler()
        self.top_k = top_k
        self.threshold = threshold
        self.max_context_length = max_context_length

        self._state = RetrievalState.UNINITIALIZED
        self._init_task: asyncio.Task[None] | None = None

    @property
    def state(self) -> RetrievalState:
        return self._state

    @property
    def is_ready(self) -> bool:
        return self._state is RetrievalState.READY

    async def initialize(self) -> None:
        """Load the embedding model and open the document store.

        Idempotent. Concurrent callers wait on the same initialization instead
        of starting another one.

        Raises:
            InitializationError: Wrapping the first step that failed. The service
                returns to UNINITIALIZED so a later call can retry.
        """
        if self._state is RetrievalState.READY:
            return

        if self._init_task is None:
            self._state = RetrievalState.INITIALIZING
            self._init_task = asyncio.create_task(self._run_initialization())
        else:
            logger.debug("Initialization already in progress, waiting")

        # shield: a waiter being cancelled must not abort the shared load
        await asyncio.shield(self._init_task)

    async def _run_initialization(self) -> None:
        steps = (
            ("load_embedding_model", self.embedder.load),
            ("open_document_store", self.store.open),
        )
        logger.info("Initializing retrieval service...")
        try:
            for step, action in steps:
                try:
                    await asyncio.to_thread(action)
                except Exception as e:
                    self._state = RetrievalState.UNINITIALIZED
                    logger.error("Retrieval initialization failed at %s: %s", step, e)
                    raise InitializationError(
                        f"Retrieval initialization failed at step '{step}'",
                        cause=e,
                        context={"step": step},
                    ) from e
            self._state = RetrievalState.READY
            logger.info("Retrieval service ready")
        finally:
            self._init_task = None

    def _require_ready(self) -> None:
        if self._state is not RetrievalState.READY:
            raise NotInitializedError(
                "Retrieval service not initialized. Call initialize() first.",
                context={"state": self._state.value},
            )

    async def search_similar(
        self,
        query: str,
        top_k: int = 5,
        threshold: float = 0.0,
        collection_name: str | None = None,
        include_embeddings: bool = False,
    ) -> list[SearchResult]:
        """Embed ``query`` and return the most similar stored documents.

        Raises:
            NotInitializedError: If initialize() has not succeeded.
            InferenceError: If the query embedding fails.
        """
        self._require_ready()
        logger.debug("Searching for: %r", preview(query))

        vector = await asyncio.to_thread(self.embedder.embed, query)
        results = await asyncio.to_thread(
            self.index.search,
            vector,
            top_k,
            threshold,
            collection_name,
            include_embeddings,
        )

        logger.debug("Found %d similar documents", len(results))
        return results

    async def retrieve(
        self,
        query: str,
        top_k: int | None = None,
        threshold: float | None = None,
        collection_name: str | None = None,
        max_context_length: int | None = None,
    ) -> RetrievalOutcome:
        """Retrieve a bounded context block for ``query``.

        Args:
            query: User text to retrieve context for.
            top_k: Number of documents to search for (service default if None).
            threshold: Minimum similarity (service default if None).
            collection_name: Restrict the search to one collection.
            max_context_length: Character budget (service default if None).

        Returns:
            RetrievalOutcome with the assembled context and provenance.

        Raises:
            NotInitializedError: If initialize() has not succeeded.
            InferenceError: If the query embedding fails.
        """
        results = await self.search_similar(
            query,
            top_k=self.top_k if top_k is None else top_k,
            threshold=self.threshold if threshold is None else threshold,
            collection_name=collection_name,
        )
        outcome = self.assembler.assemble(
            results,
            self.max_context_length if max_context_length is None else max_context_length,
            query=query,
        )
        logger.info(
            "Retrieved %d/%d documents (%d chars of context)",
            len(outcome.documents_used),
            outcome.total_documents_found,
            outcome.context_length,
        )
        return outcome

    async def get_document(self, doc_id: Any) -> DocumentRecord | None:
        """Fetch one stored document by id, without its embedding."""
        self._require_ready()
        row = await asyncio.to_thread(self.store.get_document, doc_id)
        if row is None:
            return None
        return DocumentRecord(
            id=row.id,
            content=row.content,
            metadata=json.loads(row.metadata_json) if row.metadata_json else {},
            collection_name=row.collection_name,
        )

    async def get_stats(self) -> StoreStats:
        """Summarize the document store."""
        self._require_ready()
        total = await asyncio.to_thread(self.store.count_documents)
        collections = await asyncio.to_thread(self.store.list_collections)
        return StoreStats(
            total_documents=total,
            collections=collections,
            model_name=self.embedder.model_name,
            is_initialized=self.is_ready,
        )

    async def close(self) -> None:
        """Close the document store. initialize() may be called again afterwards.

        An initialization still in progress is allowed to finish first, so it
        cannot mark the service READY over a closed store.
        """
        if self._init_task is not None:
            logger.debug("Waiting for initialization before closing")
            await asyncio.wait([self._init_task])
        await asyncio.to_thread(self.store.close)
        self._state = RetrievalState.UNINITIALIZED
        logger.info("Retrieval service closed")

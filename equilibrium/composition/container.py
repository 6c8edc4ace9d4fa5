"""Composition root wiring adapters to the core services."""

from __future__ import annotations

import logging
from functools import lru_cache

from ..adapters.outbound.document_store.sqlite_adapter import SQLiteDocumentStore
from ..adapters.outbound.embedding.sentence_transformer_adapter import SentenceTransformerBackend
from ..adapters.outbound.llm.llama_cpp_adapter import LlamaCppAdapter
from ..config.settings import settings
from ..core.services.conversation_service import ConversationService, UpdateListener
from ..core.services.embedder import Embedder
from ..core.services.prompts import SYSTEM_PROMPT
from ..core.services.retrieval_service import RetrievalService

logger = logging.getLogger(__name__)


@lru_cache
def get_document_store() -> SQLiteDocumentStore:
    logger.info("Initializing SQLiteDocumentStore (composition root)...")
    return SQLiteDocumentStore(settings.db_path)


@lru_cache
def get_embedder() -> Embedder:
    logger.info("Initializing Embedder...")
    backend = SentenceTransformerBackend(
        model_name=settings.embedding_model,
        device=settings.embedding_device,
        output_value=settings.embedding_output,
        max_seq_length=settings.embedding_max_tokens,
    )
    return Embedder(backend)


@lru_cache
def get_retrieval_service() -> RetrievalService:
    logger.info("Initializing RetrievalService...")
    return RetrievalService(
        get_embedder(),
        get_document_store(),
        top_k=settings.retrieval_top_k,
        threshold=settings.retrieval_threshold,
        max_context_length=settings.max_context_length,
    )


@lru_cache
def get_llm() -> LlamaCppAdapter:
    logger.info("Initializing LlamaCppAdapter...")
    return LlamaCppAdapter(
        settings.llm_model_path,
        n_ctx=settings.llm_context_window,
        n_threads=settings.llm_threads,
        temperature=settings.llm_temperature,
    )


def build_conversation(on_update: UpdateListener | None = None) -> ConversationService:
    """Create a fresh conversation sharing the cached backends."""
    return ConversationService(
        get_llm(),
        get_retrieval_service(),
        system_prompt=settings.system_prompt or SYSTEM_PROMPT,
        max_tokens=settings.llm_max_tokens,
        generation_timeout=settings.generation_timeout,
        on_update=on_update,
    )

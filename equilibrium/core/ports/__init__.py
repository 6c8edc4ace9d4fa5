"""Ports: the interfaces the core depends on."""

from .document_store_port import DocumentStorePort
from .embedding_port import EmbeddingBackendPort
from .llm_port import CompletionStream, LLMPort

__all__ = [
    "DocumentStorePort",
    "EmbeddingBackendPort",
    "CompletionStream",
    "LLMPort",
]

"""Text embedder producing unit-length vectors."""

import logging

import numpy as np

from ..domain import EmbeddingVector
from ..domain.exceptions import EmbeddingInferenceError, ModelNotReadyError
from ..ports.embedding_port import EmbeddingBackendPort

logger = logging.getLogger(__name__)


def l2_normalize(vector: np.ndarray) -> EmbeddingVector:
    """Scale ``vector`` to unit length. A zero vector is returned unchanged."""
    vector = np.asarray(vector, dtype=np.float32)
    norm = float(np.linalg.norm(vector))
    if norm == 0.0:
        return vector.copy()
    return (vector / norm).astype(np.float32)


def pool(output: np.ndarray) -> np.ndarray:
    """Reduce raw model output to a single vector.

    Pooled output (``(D,)`` or ``(1, D)``) is used directly. Token-level output
    (``(tokens, D)`` or ``(1, tokens, D)``) is mean-pooled over token positions.

    Raises:
        ValueError: If the output shape is not one of the above.
    """
    output = np.asarray(output, dtype=np.float32)

    if output.ndim == 3:
        if output.shape[0] != 1:
            raise ValueError(f"Expected a batch of one sequence, got shape {output.shape}")
        output = output[0]

    if output.ndim == 2:
        if output.shape[0] == 0:
            raise ValueError("Model returned no token vectors")
        return output.mean(axis=0)

    if output.ndim == 1:
        return output

    raise ValueError(f"Unsupported embedding output shape {output.shape}")


class Embedder:
    """Turns raw text into a normalized embedding vector."""

    def __init__(self, backend: EmbeddingBackendPort) -> None:
        """Initialize the embedder.

        Args:
            backend: Numeric model that tokenizes text and runs the forward pass.
        """
        self.backend = backend
        self._dimension: int | None = None

    @property
    def model_name(self) -> str:
        return self.backend.model_name

    @property
    def is_ready(self) -> bool:
        return self.backend.is_loaded

    @property
    def dimension(self) -> int | None:
        """Dimension D of produced vectors, once known."""
        return self._dimension or self.backend.dimension

    def load(self) -> None:
        """Load the tokenizer and model. Blocking; idempotent."""
        if self.backend.is_loaded:
            return
        logger.info("Loading embedding model: %s", self.backend.model_name)
        self.backend.load()
        logger.info("Embedding model ready")

    def embed(self, text: str) -> EmbeddingVector:
        """Embed a single text.

        Args:
            text: Text to embed.

        Returns:
            Read-only float32 vector with L2 norm 1 (or 0 for an all-zero output).

        Raises:
            ModelNotReadyError: If the model has not been loaded.
            EmbeddingInferenceError: If the forward pass fails or returns unusable output.
        """
        if not self.backend.is_loaded:
            raise ModelNotReadyError(
                "Embedding model not loaded. Call load() first.",
                context={"model": self.backend.model_name},
            )

        try:
            raw = self.backend.forward(text)
            vector = pool(raw)
        except Exception as e:
            raise EmbeddingInferenceError(
                "Failed to generate embedding",
                cause=e,
                context={"model": self.backend.model_name},
            ) from e

        if not np.all(np.isfinite(vector)):
            raise EmbeddingInferenceError(
                "Embedding contains non-finite values",
                context={"model": self.backend.model_name},
            )

        normalized = l2_normalize(vector)
        normalized.setflags(write=False)
        self._dimension = int(normalized.shape[0])
        return normalized

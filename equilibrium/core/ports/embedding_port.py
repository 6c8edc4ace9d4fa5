"""Embedding Backend Port Interface."""

from abc import ABC, abstractmethod

import numpy as np
import numpy.typing as npt


class EmbeddingBackendPort(ABC):
    """Abstract interface for the numeric embedding model.

    The backend owns the tokenizer and the forward pass. It returns the raw
    model output: either one pooled vector, or one vector per token position.
    Pooling and normalization are done by the Embedder.
    """

    @property
    @abstractmethod
    def model_name(self) -> str: ...

    @property
    @abstractmethod
    def is_loaded(self) -> bool: ...

    @property
    @abstractmethod
    def dimension(self) -> int | None:
        """Declared output dimension, or None if unknown until the first pass."""
        ...

    @abstractmethod
    def load(self) -> None:
        """Load the tokenizer and model weights. Blocking."""
        ...

    @abstractmethod
    def forward(self, text: str) -> npt.NDArray[np.floating]:
        """Tokenize ``text`` (bounded by the context window) and run the model."""
        ...

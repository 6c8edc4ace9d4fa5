"""sentence-transformers backend for the embedder."""

import logging
from typing import Any

import numpy as np
import numpy.typing as npt

from ....core.domain.exceptions import ModelLoadError
from ....core.ports.embedding_port import EmbeddingBackendPort

logger = logging.getLogger(__name__)

OUTPUT_VALUES = ("sentence_embedding", "token_embeddings")


class SentenceTransformerBackend(EmbeddingBackendPort):
    """Wrapper around a local sentence-transformers model.

    ``output_value="sentence_embedding"`` returns the model's own pooled vector;
    ``"token_embeddings"`` returns one vector per token and leaves pooling to
    the Embedder.
    """

    def __init__(
        self,
        model_name: str = "paraphrase-multilingual-MiniLM-L12-v2",
        device: str = "cpu",
        output_value: str = "sentence_embedding",
        max_seq_length: int | None = 128,
    ) -> None:
        """Initialize the backend.

        Args:
            model_name: sentence-transformers model name or local path.
            device: Torch device to run on.
            output_value: "sentence_embedding" or "token_embeddings".
            max_seq_length: Tokens kept per input; longer text is truncated.
        """
        if output_value not in OUTPUT_VALUES:
            raise ValueError(f"output_value must be one of {OUTPUT_VALUES}, got {output_value!r}")
        self._model_name = model_name
        self.device = device
        self.output_value = output_value
        self.max_seq_length = max_seq_length
        self._model: Any = None
        self._dimension: int | None = None

    @property
    def model_name(self) -> str:
        return self._model_name

    @property
    def is_loaded(self) -> bool:
        return self._model is not None

    @property
    def dimension(self) -> int | None:
        return self._dimension

    def load(self) -> None:
        if self._model is not None:
            return

        logger.info("Loading sentence-transformers model: %s (%s)", self._model_name, self.device)
        try:
            from sentence_transformers import SentenceTransformer

            model = SentenceTransformer(self._model_name, device=self.device)
        except Exception as e:
            raise ModelLoadError(
                f"Failed to load embedding model: {self._model_name}",
                cause=e,
                context={"model": self._model_name, "device": self.device},
            ) from e

        if self.max_seq_length:
            model.max_seq_length = self.max_seq_length
        self._dimension = model.get_sentence_embedding_dimension()
        self._model = model
        logger.info("Embedding model loaded (dimension=%s)", self._dimension)

    def forward(self, text: str) -> npt.NDArray[np.floating]:
        output = self._model.encode(
            text,
            output_value=self.output_value,
            convert_to_numpy=True,
            show_progress_bar=False,
        )
        # token_embeddings come back as a torch tensor regardless of convert_to_numpy
        if hasattr(output, "detach"):
            output = output.detach().cpu().numpy()
        return np.asarray(output, dtype=np.float32)

"""llama.cpp language-model adapter.

llama-cpp-python only exposes a blocking token generator, so each completion
runs in a worker thread and hands fragments to the event loop through an
``asyncio.Queue``.
"""

import asyncio
import logging
import threading
import time
from collections.abc import AsyncIterator, Sequence
from pathlib import Path
from typing import Any

from ....core.domain import CompletionResult, ConversationTurn
from ....core.domain.exceptions import BackendNotReadyError, GenerationError, ModelPathNotFoundError
from ....core.ports.llm_port import CompletionStream, LLMPort

logger = logging.getLogger(__name__)

_DONE = object()


class LlamaCompletionStream(CompletionStream):
    """One streaming chat completion running on a worker thread."""

    def __init__(self, llm: Any, request: dict[str, Any], lock: threading.Lock) -> None:
        self._llm = llm
        self._request = request
        self._lock = lock
        self._queue: asyncio.Queue[Any] = asyncio.Queue()
        self._stop = threading.Event()
        self._worker: asyncio.Future[None] | None = None
        self._result: CompletionResult | None = None

    @property
    def result(self) -> CompletionResult | None:
        return self._result

    async def __aiter__(self) -> AsyncIterator[str]:
        if self._worker is None and not self._stop.is_set():
            loop = asyncio.get_running_loop()
            self._worker = loop.run_in_executor(None, self._produce, loop)

        while True:
            item = await self._queue.get()
            if item is _DONE:
                return
            if isinstance(item, BaseException):
                raise item
            yield item

    def _produce(self, loop: asyncio.AbstractEventLoop) -> None:
        def emit(item: Any) -> None:
            loop.call_soon_threadsafe(self._queue.put_nowait, item)

        fragments = 0
        first_token_at: float | None = None
        try:
            with self._lock:
                chunks = self._llm.create_chat_completion(**self._request, stream=True)
                try:
                    for chunk in chunks:
                        if self._stop.is_set():
                            break
                        delta = chunk["choices"][0].get("delta", {}).get("content")
                        if not delta:
                            continue
                        if first_token_at is None:
                            first_token_at = time.perf_counter()
                        fragments += 1
                        emit(delta)
                finally:
                    chunks.close()
        except Exception as e:
            logger.error("llama.cpp generation failed: %s", e)
            emit(e)
            return

        elapsed = time.perf_counter() - first_token_at if first_token_at is not None else 0.0
        self._result = CompletionResult(
            tokens_predicted=fragments,
            predicted_per_second=fragments / elapsed if elapsed > 0 else 0.0,
        )
        emit(_DONE)

    async def cancel(self) -> None:
        self._stop.set()
        if self._worker is None:
            # never started: end any pending iteration right away
            self._queue.put_nowait(_DONE)
            return
        await self._worker


class LlamaCppAdapter(LLMPort):
    """Local GGUF model served through llama-cpp-python."""

    def __init__(
        self,
        model_path: str | Path,
        n_ctx: int = 2048,
        n_threads: int = 4,
        temperature: float = 0.7,
    ) -> None:
        self.model_path = Path(model_path)
        self.n_ctx = n_ctx
        self.n_threads = n_threads
        self.temperature = temperature
        self._llm: Any = None
        # llama.cpp contexts are not safe for concurrent decoding
        self._lock = threading.Lock()

    @property
    def is_ready(self) -> bool:
        return self._llm is not None

    def load(self) -> None:
        """Load the GGUF model. Blocking; may take several seconds.

        Raises:
            ModelPathNotFoundError: If the model file does not exist.
            GenerationError: If llama.cpp fails to load the model.
        """
        if self._llm is not None:
            return
        if not self.model_path.exists():
            raise ModelPathNotFoundError(
                f"Model file not found: {self.model_path}",
                context={"model_path": str(self.model_path)},
            )

        logger.info("Loading LLM model: %s", self.model_path)
        try:
            from llama_cpp import Llama

            self._llm = Llama(
                model_path=str(self.model_path),
                n_ctx=self.n_ctx,
                n_threads=self.n_threads,
                verbose=False,
            )
        except Exception as e:
            raise GenerationError(
                f"Failed to load language model: {self.model_path.name}",
                cause=e,
                context={"model_path": str(self.model_path), "n_ctx": self.n_ctx},
            ) from e
        logger.info("LLM model loaded")

    def stream(
        self,
        messages: Sequence[ConversationTurn],
        *,
        max_tokens: int,
        stop: Sequence[str],
    ) -> LlamaCompletionStream:
        if self._llm is None:
            raise BackendNotReadyError(
                "Language model is not loaded",
                context={"reason": "llm_not_ready"},
            )
        request = {
            "messages": [turn.to_message() for turn in messages],
            "max_tokens": max_tokens,
            "stop": list(stop),
            "temperature": self.temperature,
        }
        return LlamaCompletionStream(self._llm, request, self._lock)

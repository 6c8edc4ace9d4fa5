"""LLM Port Interface."""

from abc import ABC, abstractmethod
from collections.abc import AsyncIterator, Sequence

from ..domain import CompletionResult, ConversationTurn


class CompletionStream(ABC):
    """An in-flight streaming completion.

    Iterate it with ``async for`` to receive token fragments in the order the
    backend emits them. ``result`` is available once iteration has finished.
    """

    @abstractmethod
    def __aiter__(self) -> AsyncIterator[str]: ...

    @property
    @abstractmethod
    def result(self) -> CompletionResult | None: ...

    @abstractmethod
    async def cancel(self) -> None:
        """Ask the backend to stop generating. Iteration ends soon after."""
        ...


class LLMPort(ABC):
    """Abstract interface for local language-model backends."""

    @property
    @abstractmethod
    def is_ready(self) -> bool: ...

    @abstractmethod
    def load(self) -> None:
        """Load the model weights. Blocking."""
        ...

    @abstractmethod
    def stream(
        self,
        messages: Sequence[ConversationTurn],
        *,
        max_tokens: int,
        stop: Sequence[str],
    ) -> CompletionStream:
        """Start a streaming chat completion over ``messages``."""
        ...

"""Conversation models owned by the generation orchestrator."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from .retrieval import RetrievalOutcome


class Role(Enum):
    """Speaker of a conversation turn."""

    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"


@dataclass
class ConversationTurn:
    """A single message in the transcript.

    Only the most recent assistant turn is mutated, and only while its
    generation is in flight.
    """

    role: Role
    content: str = ""

    def to_message(self) -> dict[str, str]:
        """Chat-completion message form understood by LLM backends."""
        return {"role": self.role.value, "content": self.content}


@dataclass(frozen=True)
class CompletionResult:
    """Final statistics reported by the backend once a stream is exhausted."""

    tokens_predicted: int = 0
    predicted_per_second: float = 0.0


@dataclass
class GenerationSession:
    """Per-orchestrator generation state.

    Attributes:
        is_generating: True while a turn is being answered.
        active_request: Handle of the in-flight backend stream, if any.
        tokens_per_turn: Throughput of each completed turn, in order.
    """

    is_generating: bool = False
    active_request: Any | None = None
    tokens_per_turn: list[float] = field(default_factory=list)


@dataclass(frozen=True)
class TurnResult:
    """What a submitted user message produced."""

    text: str
    outcome: RetrievalOutcome | None = None
    tokens_per_second: float | None = None
    cancelled: bool = False

"""Equilibrium conversation orchestration.

Owns the transcript and drives one streaming generation per user message:
retrieve context, augment the prompt, stream the completion into the last
assistant turn, and record throughput. At most one generation is in flight
per instance; that invariant is what keeps the transcript single-writer.
"""

import asyncio
import logging
import time
from collections.abc import Callable, Sequence
from dataclasses import dataclass

from ...common.exception_handler import log_exception
from ..domain import (
    ConversationTurn,
    GenerationSession,
    RetrievalOutcome,
    Role,
    TurnResult,
)
from ..domain.exceptions import (
    BackendNotReadyError,
    EmptyInputError,
    EquilibriumError,
    GenerationInferenceError,
    GenerationTimeoutError,
)
from ..ports.llm_port import CompletionStream, LLMPort
from .prompts import DEFAULT_STOP_SEQUENCES, STOP_MARKER, build_augmented_prompt
from .retrieval_service import RetrievalService

logger = logging.getLogger(__name__)

PromptTemplate = Callable[[str, str], str]
UpdateListener = Callable[[ConversationTurn], None]


@dataclass
class _ActiveTurn:
    """Bookkeeping for the generation currently in flight."""

    assistant: ConversationTurn
    stream: CompletionStream | None = None
    cancel_requested: bool = False
    cancelled: bool = False


class ConversationService:
    """Streams answers to user messages, augmented with retrieved context."""

    def __init__(
        self,
        llm: LLMPort,
        retrieval: RetrievalService,
        *,
        system_prompt: str | None = None,
        prompt_template: PromptTemplate = build_augmented_prompt,
        max_tokens: int = 512,
        stop_sequences: Sequence[str] = DEFAULT_STOP_SEQUENCES,
        generation_timeout: float | None = None,
        on_update: UpdateListener | None = None,
    ) -> None:
        """Initialize the conversation.

        Args:
            llm: Language-model backend.
            retrieval: Retrieval facade used to fetch context for each message.
            system_prompt: Optional system turn placed at the start of the transcript.
            prompt_template: Builds the augmented prompt from (context, message).
            max_tokens: Generation limit per turn.
            stop_sequences: Markers that end generation early.
            generation_timeout: Seconds before a generation is abandoned (None = no limit).
            on_update: Called with the assistant turn after each applied fragment.
        """
        self.llm = llm
        self.retrieval = retrieval
        self.prompt_template = prompt_template
        self.max_tokens = max_tokens
        self.stop_sequences = tuple(stop_sequences)
        self.generation_timeout = generation_timeout
        self.on_update = on_update

        self.system_prompt = system_prompt
        self.transcript: list[ConversationTurn] = []
        self.session = GenerationSession()
        self._active: _ActiveTurn | None = None
        self._seed_transcript()

    def _seed_transcript(self) -> None:
        if self.system_prompt:
            self.transcript.append(ConversationTurn(Role.SYSTEM, self.system_prompt))

    @property
    def is_generating(self) -> bool:
        return self.session.is_generating

    @property
    def tokens_per_turn(self) -> list[float]:
        return self.session.tokens_per_turn

    async def start(self) -> None:
        """Load the language model and initialize retrieval, if not done yet."""
        if not self.llm.is_ready:
            logger.info("Loading language model...")
            await asyncio.to_thread(self.llm.load)
        await self.retrieval.initialize()

    def reset(self, system_prompt: str | None = None) -> None:
        """Start a fresh transcript.

        Raises:
            BackendNotReadyError: If a generation is in flight.
        """
        if self.session.is_generating:
            raise BackendNotReadyError(
                "Cannot reset while a response is being generated",
                context={"reason": "generation_in_flight"},
            )
        if system_prompt is not None:
            self.system_prompt = system_prompt
        self.transcript.clear()
        self._seed_transcript()

    def _check_can_submit(self, text: str) -> None:
        if not text or not text.strip():
            raise EmptyInputError("Message cannot be empty or whitespace only")
        if self.session.is_generating:
            raise BackendNotReadyError(
                "A response is already being generated",
                context={"reason": "generation_in_flight"},
            )
        if not self.llm.is_ready:
            raise BackendNotReadyError(
                "Language model is not loaded",
                context={"reason": "llm_not_ready"},
            )
        if not self.retrieval.is_ready:
            raise BackendNotReadyError(
                "Retrieval service is not initialized",
                context={"reason": "retrieval_not_ready", "state": self.retrieval.state.value},
            )

    async def submit_user_message(self, text: str) -> TurnResult:
        """Answer a user message, streaming tokens into the transcript.

        All validation happens before the first suspension point, so a
        rejected message never touches the transcript.

        Args:
            text: The user's message.

        Returns:
            TurnResult with the final assistant text and throughput.

        Raises:
            EmptyInputError: If the message is blank.
            BackendNotReadyError: If a backend is not ready or a generation is in flight.
            NotInitializedError, InferenceError: If retrieval fails (placeholder removed).
            GenerationInferenceError: If the backend fails mid-stream (partial text kept).
            GenerationTimeoutError: If ``generation_timeout`` expires (partial text kept).
        """
        self._check_can_submit(text)

        user_turn = ConversationTurn(Role.USER, text)
        assistant_turn = ConversationTurn(Role.ASSISTANT, "")
        history = [ConversationTurn(t.role, t.content) for t in self.transcript]
        self.transcript.extend([user_turn, assistant_turn])

        active = _ActiveTurn(assistant=assistant_turn)
        self._active = active
        self.session.is_generating = True

        try:
            outcome = await self.retrieval.retrieve(text)
        except asyncio.CancelledError:
            if active.cancel_requested:
                self._settle_cancel(active)
            else:
                self._rollback(active)
            raise
        except Exception:
            if active.cancel_requested:
                return self._stop_for_cancel(active, None)
            logger.warning("Retrieval failed, rolling back the pending turn")
            self._rollback(active)
            raise

        if active.cancel_requested:
            return self._stop_for_cancel(active, outcome)

        messages = [*history, ConversationTurn(Role.USER, self.prompt_template(outcome.context, text))]
        return await self._generate(active, messages, outcome)

    async def _generate(
        self,
        active: _ActiveTurn,
        messages: list[ConversationTurn],
        outcome: RetrievalOutcome,
    ) -> TurnResult:
        try:
            stream = self.llm.stream(messages, max_tokens=self.max_tokens, stop=self.stop_sequences)
        except Exception as e:
            self._settle_failure(active)
            if isinstance(e, EquilibriumError):
                raise
            raise GenerationInferenceError("Language model failed to start", cause=e) from e
        active.stream = stream
        self.session.active_request = stream

        fragments = 0
        started = time.perf_counter()
        try:
            async with asyncio.timeout(self.generation_timeout):
                async for fragment in stream:
                    if active.cancel_requested:
                        break
                    self._apply_fragment(fragment)
                    fragments += 1
        except TimeoutError as e:
            await self._stop_stream(stream)
            if active.cancel_requested:
                return self._stop_for_cancel(active, outcome)
            self._settle_failure(active)
            raise GenerationTimeoutError(
                f"Generation did not finish within {self.generation_timeout}s",
                cause=e,
                context={"timeout": self.generation_timeout, "fragments": fragments},
            ) from e
        except asyncio.CancelledError:
            await self._stop_stream(stream)
            if active.cancel_requested:
                self._settle_cancel(active)
            else:
                self._settle_failure(active)
            raise
        except Exception as e:
            if active.cancel_requested:
                logger.debug("Stream ended with %s after cancellation", type(e).__name__)
                return self._stop_for_cancel(active, outcome)
            self._settle_failure(active)
            if isinstance(e, EquilibriumError):
                raise
            raise GenerationInferenceError(
                "Language model failed while generating",
                cause=e,
                context={"fragments": fragments},
            ) from e

        # a stream that ends while cancel() is still waiting on the backend
        # belongs to the cancelled turn, not to a normal completion
        if active.cancel_requested:
            return self._stop_for_cancel(active, outcome)

        result = stream.result
        if result is not None:
            tokens_per_second = result.predicted_per_second
        else:
            elapsed = time.perf_counter() - started
            tokens_per_second = fragments / elapsed if elapsed > 0 else 0.0

        self.session.tokens_per_turn.append(tokens_per_second)
        self._finish(active)
        logger.info("Generated %d fragments at %.1f tokens/s", fragments, tokens_per_second)
        return TurnResult(
            text=active.assistant.content,
            outcome=outcome,
            tokens_per_second=tokens_per_second,
        )

    def _apply_fragment(self, fragment: str) -> None:
        """Append a token fragment to the in-progress assistant turn."""
        last = self.transcript[-1] if self.transcript else None
        if last is None or last.role is not Role.ASSISTANT:
            logger.warning("Dropping token fragment: last transcript entry is not an assistant turn")
            return
        last.content += fragment
        self._notify(last)

    async def cancel(self) -> None:
        """Stop the generation in flight.

        Best effort: a failing backend cancel is logged, and local state still
        moves to "not generating". The stop marker is appended exactly once,
        whichever of this call and the ending stream settles the turn first.
        """
        active = self._active
        if active is None or not self.session.is_generating:
            logger.debug("cancel() called with no generation in flight")
            return
        if active.cancel_requested:
            return

        # set before awaiting the backend: the stream may end while we wait
        active.cancel_requested = True
        if active.stream is not None:
            try:
                await active.stream.cancel()
            except Exception as e:
                log_exception(
                    e,
                    log=logger,
                    level=logging.WARNING,
                    extra_context={"operation": "cancel_generation"},
                )

        self._settle_cancel(active)

    async def _stop_stream(self, stream: CompletionStream) -> None:
        try:
            await stream.cancel()
        except Exception as e:
            log_exception(
                e,
                log=logger,
                level=logging.WARNING,
                extra_context={"operation": "stop_stream"},
            )

    def _settle_cancel(self, active: _ActiveTurn) -> None:
        if active.cancelled or self._active is not active:
            return
        active.cancelled = True
        active.assistant.content += STOP_MARKER
        self._finish(active)
        self._notify(active.assistant)
        logger.info("Generation stopped by user")

    def _stop_for_cancel(self, active: _ActiveTurn, outcome: RetrievalOutcome | None) -> TurnResult:
        self._settle_cancel(active)
        return TurnResult(text=active.assistant.content, outcome=outcome, cancelled=True)

    def _rollback(self, active: _ActiveTurn) -> None:
        self._remove_turn(active.assistant)
        self._finish(active)

    def _settle_failure(self, active: _ActiveTurn) -> None:
        """Drop an empty placeholder; keep partial output as-is."""
        if not active.assistant.content:
            self._remove_turn(active.assistant)
        else:
            logger.warning(
                "Generation failed after %d chars; keeping partial answer",
                len(active.assistant.content),
            )
        self._finish(active)

    def _finish(self, active: _ActiveTurn) -> None:
        if self._active is not active:
            return
        self._active = None
        self.session.is_generating = False
        self.session.active_request = None

    def _remove_turn(self, turn: ConversationTurn) -> None:
        for index in range(len(self.transcript) - 1, -1, -1):
            if self.transcript[index] is turn:
                del self.transcript[index]
                return

    def _notify(self, turn: ConversationTurn) -> None:
        if self.on_update is not None:
            self.on_update(turn)

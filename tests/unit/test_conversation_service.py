"""Unit tests for the streaming conversation orchestrator."""

import asyncio
import logging
import threading
import time

import pytest

from equilibrium.adapters.outbound.document_store.sqlite_adapter import SQLiteDocumentStore
from equilibrium.adapters.outbound.llm.llama_cpp_adapter import LlamaCompletionStream
from equilibrium.core.domain import CompletionResult, Role
from equilibrium.core.domain.exceptions import (
    BackendNotReadyError,
    EmbeddingInferenceError,
    EmptyInputError,
    GenerationInferenceError,
    GenerationTimeoutError,
)
from equilibrium.core.services.conversation_service import ConversationService
from equilibrium.core.services.embedder import Embedder
from equilibrium.core.services.prompts import DEFAULT_STOP_SEQUENCES, STOP_MARKER
from equilibrium.core.services.retrieval_service import RetrievalService
from fakes import FakeEmbeddingBackend, FakeLLM, FakeStream

pytestmark = pytest.mark.unit


@pytest.fixture
def make_conversation(fake_backend, notes_db):
    """Build a conversation over the sample notes; call ``start()`` before use."""

    def factory(*streams, backend=None, **kwargs):
        retrieval = RetrievalService(Embedder(backend or fake_backend), SQLiteDocumentStore(notes_db))
        llm = FakeLLM(*streams)
        kwargs.setdefault("system_prompt", "Be kind.")
        return ConversationService(llm, retrieval, **kwargs), llm

    return factory


async def wait_until(predicate, attempts=500):
    for _ in range(attempts):
        if predicate():
            return
        await asyncio.sleep(0.01)
    raise AssertionError("condition not reached")


def _snapshot(conversation):
    return [(t.role, t.content) for t in conversation.transcript]


class SlowLlama:
    """Emits one streamed chunk every 10 ms until its generator is closed."""

    def __init__(self):
        self.closed = threading.Event()

    def create_chat_completion(self, **kwargs):
        return self._generate()

    def _generate(self):
        try:
            while True:
                time.sleep(0.01)
                yield {"choices": [{"delta": {"content": "x"}, "index": 0, "finish_reason": None}]}
        finally:
            self.closed.set()


class TestStreaming:
    def test_fragments_accumulate_in_last_assistant_turn(self, make_conversation):
        seen = []
        stream = FakeStream(["Hel", "lo"], result=CompletionResult(2, 12.5))
        conversation, llm = make_conversation(stream, on_update=lambda turn: seen.append(turn.content))

        async def scenario():
            await conversation.start()
            return await conversation.submit_user_message("I feel anxious")

        result = asyncio.run(scenario())

        assert seen == ["Hel", "Hello"]
        assert conversation.transcript[-1].role is Role.ASSISTANT
        assert conversation.transcript[-1].content == "Hello"
        assert result.text == "Hello"
        assert not result.cancelled
        assert not conversation.is_generating

    def test_records_backend_throughput(self, make_conversation):
        stream = FakeStream(["a", "b"], result=CompletionResult(2, 12.5))
        conversation, _ = make_conversation(stream)

        async def scenario():
            await conversation.start()
            return await conversation.submit_user_message("I feel anxious")

        result = asyncio.run(scenario())

        assert result.tokens_per_second == 12.5
        assert conversation.tokens_per_turn == [12.5]

    def test_measures_throughput_without_backend_stats(self, make_conversation):
        conversation, _ = make_conversation(FakeStream(["a"]), FakeStream(["b", "c"]))

        async def scenario():
            await conversation.start()
            for text in ("I feel anxious", "I can't sleep"):
                await conversation.submit_user_message(text)

        asyncio.run(scenario())

        assert len(conversation.tokens_per_turn) == 2
        assert all(tps >= 0 for tps in conversation.tokens_per_turn)

    def test_prompt_is_augmented_but_transcript_keeps_user_text(self, make_conversation):
        conversation, llm = make_conversation(FakeStream(["ok"]), max_tokens=64)

        async def scenario():
            await conversation.start()
            return await conversation.submit_user_message("I feel anxious")

        result = asyncio.run(scenario())

        messages = llm.requests[0]
        assert [m.role for m in messages] == [Role.SYSTEM, Role.USER]
        assert "Slow breathing calms the body" in messages[-1].content
        assert "I feel anxious" in messages[-1].content
        assert conversation.transcript[1].content == "I feel anxious"
        assert [d.id for d in result.outcome.documents_used] == [1, 3]
        assert llm.stream_kwargs[0] == {"max_tokens": 64, "stop": DEFAULT_STOP_SEQUENCES}

    def test_history_is_sent_with_later_turns(self, make_conversation):
        conversation, llm = make_conversation(FakeStream(["first"]), FakeStream(["second"]))

        async def scenario():
            await conversation.start()
            await conversation.submit_user_message("I feel anxious")
            await conversation.submit_user_message("I can't sleep")

        asyncio.run(scenario())

        second = llm.requests[1]
        assert [(m.role, m.content) for m in second[:3]] == [
            (Role.SYSTEM, "Be kind."),
            (Role.USER, "I feel anxious"),
            (Role.ASSISTANT, "first"),
        ]
        assert len(conversation.transcript) == 5


class TestSubmitValidation:
    @pytest.mark.parametrize("text", ["", "   ", "\n\t"])
    def test_blank_message_rejected(self, make_conversation, text):
        conversation, _ = make_conversation()

        async def scenario():
            await conversation.start()
            await conversation.submit_user_message(text)

        with pytest.raises(EmptyInputError):
            asyncio.run(scenario())
        assert _snapshot(conversation) == [(Role.SYSTEM, "Be kind.")]

    def test_not_started_rejected(self, make_conversation):
        conversation, llm = make_conversation()
        llm._ready = False

        with pytest.raises(BackendNotReadyError):
            asyncio.run(conversation.submit_user_message("hello"))
        assert len(conversation.transcript) == 1

    def test_retrieval_not_ready_rejected(self, make_conversation):
        conversation, _ = make_conversation()

        with pytest.raises(BackendNotReadyError) as exc_info:
            asyncio.run(conversation.submit_user_message("hello"))
        assert exc_info.value.extra_context["reason"] == "retrieval_not_ready"

    def test_second_message_while_generating_rejected(self, make_conversation):
        conversation, _ = make_conversation(FakeStream(["Hel"], hold=True))

        async def scenario():
            await conversation.start()
            task = asyncio.create_task(conversation.submit_user_message("I feel anxious"))
            await wait_until(lambda: conversation.transcript[-1].content == "Hel")
            before = _snapshot(conversation)

            with pytest.raises(BackendNotReadyError):
                await conversation.submit_user_message("hello again")

            assert _snapshot(conversation) == before
            await conversation.cancel()
            await task

        asyncio.run(scenario())


class TestCancel:
    def test_cancel_appends_marker_once(self, make_conversation):
        stream = FakeStream(["Hel"], hold=True)
        conversation, _ = make_conversation(stream)

        async def scenario():
            await conversation.start()
            task = asyncio.create_task(conversation.submit_user_message("I feel anxious"))
            await wait_until(lambda: conversation.transcript[-1].content == "Hel")
            await conversation.cancel()
            await conversation.cancel()
            return await task

        result = asyncio.run(scenario())

        assert result.cancelled
        assert conversation.transcript[-1].content == "Hel" + STOP_MARKER
        assert conversation.transcript[-1].content.count(STOP_MARKER) == 1
        assert not conversation.is_generating
        assert stream.cancel_calls == 1
        assert conversation.tokens_per_turn == []

    def test_cancel_survives_backend_error(self, make_conversation, caplog):
        stream = FakeStream(["Hel"], hold=True, cancel_error=RuntimeError("backend gone"))
        conversation, _ = make_conversation(stream)

        async def scenario():
            await conversation.start()
            task = asyncio.create_task(conversation.submit_user_message("I feel anxious"))
            await wait_until(lambda: conversation.transcript[-1].content == "Hel")
            await conversation.cancel()
            return await task

        with caplog.at_level(logging.WARNING):
            result = asyncio.run(scenario())

        assert result.cancelled
        assert conversation.transcript[-1].content.count(STOP_MARKER) == 1
        assert not conversation.is_generating
        assert any("backend gone" in r.getMessage() for r in caplog.records)

    def test_cancel_when_idle_is_noop(self, make_conversation):
        conversation, _ = make_conversation()

        asyncio.run(conversation.cancel())

        assert _snapshot(conversation) == [(Role.SYSTEM, "Be kind.")]

    def test_new_message_after_cancel(self, make_conversation):
        conversation, _ = make_conversation(FakeStream(["Hel"], hold=True), FakeStream(["fine"]))

        async def scenario():
            await conversation.start()
            task = asyncio.create_task(conversation.submit_user_message("I feel anxious"))
            await wait_until(lambda: conversation.transcript[-1].content == "Hel")
            await conversation.cancel()
            await task
            return await conversation.submit_user_message("I can't sleep")

        result = asyncio.run(scenario())

        assert result.text == "fine"
        assert conversation.transcript[2].content.endswith(STOP_MARKER)
        assert conversation.transcript[-1].content == "fine"

    def test_cancel_threaded_llama_stream(self, make_conversation):
        llama = SlowLlama()
        stream = LlamaCompletionStream(llama, {"messages": [], "max_tokens": 64, "stop": []}, threading.Lock())
        conversation, _ = make_conversation(stream)

        async def scenario():
            await conversation.start()
            task = asyncio.create_task(conversation.submit_user_message("I feel anxious"))
            await wait_until(lambda: conversation.transcript[-1].content.startswith("x"))
            await conversation.cancel()
            return await task

        result = asyncio.run(scenario())

        assert result.cancelled
        assert result.tokens_per_second is None
        assert conversation.transcript[-1].content.endswith(STOP_MARKER)
        assert conversation.transcript[-1].content.count(STOP_MARKER) == 1
        assert conversation.tokens_per_turn == []
        assert not conversation.is_generating
        assert llama.closed.is_set()

    def test_stream_ending_while_cancel_waits(self, make_conversation):
        stream = FakeStream(["Hel"], hold=True, cancel_delay=0.05, result=CompletionResult(1, 9.0))
        conversation, _ = make_conversation(stream)

        async def scenario():
            await conversation.start()
            task = asyncio.create_task(conversation.submit_user_message("I feel anxious"))
            await wait_until(lambda: conversation.transcript[-1].content == "Hel")
            await conversation.cancel()
            return await task

        result = asyncio.run(scenario())

        assert result.cancelled
        assert conversation.transcript[-1].content == "Hel" + STOP_MARKER
        assert conversation.tokens_per_turn == []
        assert not conversation.is_generating

    def test_cancel_after_completion_is_noop(self, make_conversation):
        conversation, _ = make_conversation(FakeStream(["done"]))

        async def scenario():
            await conversation.start()
            result = await conversation.submit_user_message("I feel anxious")
            await conversation.cancel()
            return result

        result = asyncio.run(scenario())

        assert not result.cancelled
        assert conversation.transcript[-1].content == "done"
        assert len(conversation.tokens_per_turn) == 1

    def test_cancel_during_retrieval(self, make_conversation):
        gate = threading.Event()
        backend = FakeEmbeddingBackend(gate=gate)
        conversation, llm = make_conversation(FakeStream(["never"]), backend=backend)

        async def scenario():
            await conversation.start()
            task = asyncio.create_task(conversation.submit_user_message("I feel anxious"))
            try:
                await wait_until(backend.forward_started.is_set)
                await conversation.cancel()
                assert not conversation.is_generating
            finally:
                gate.set()
            return await task

        result = asyncio.run(scenario())

        assert result.cancelled
        assert llm.requests == []
        assert _snapshot(conversation)[-1] == (Role.ASSISTANT, STOP_MARKER)
        assert sum(t.content.count(STOP_MARKER) for t in conversation.transcript) == 1

    def test_task_cancelled_during_retrieval_rolls_back(self, make_conversation):
        gate = threading.Event()
        backend = FakeEmbeddingBackend(gate=gate)
        conversation, llm = make_conversation(FakeStream(["never"]), backend=backend)

        async def scenario():
            await conversation.start()
            task = asyncio.create_task(conversation.submit_user_message("I feel anxious"))
            try:
                await wait_until(backend.forward_started.is_set)
                task.cancel()
                with pytest.raises(asyncio.CancelledError):
                    await task
            finally:
                gate.set()

        asyncio.run(scenario())

        assert _snapshot(conversation) == [(Role.SYSTEM, "Be kind."), (Role.USER, "I feel anxious")]
        assert llm.requests == []
        assert not conversation.is_generating


class TestFailures:
    def test_failure_without_tokens_removes_placeholder(self, make_conversation):
        conversation, _ = make_conversation(FakeStream([], fail_with=RuntimeError("context full")))

        async def scenario():
            await conversation.start()
            await conversation.submit_user_message("I feel anxious")

        with pytest.raises(GenerationInferenceError):
            asyncio.run(scenario())

        assert _snapshot(conversation) == [(Role.SYSTEM, "Be kind."), (Role.USER, "I feel anxious")]
        assert not conversation.is_generating

    def test_failure_keeps_partial_output(self, make_conversation):
        conversation, _ = make_conversation(FakeStream(["Part"], fail_with=RuntimeError("crash")))

        async def scenario():
            await conversation.start()
            await conversation.submit_user_message("I feel anxious")

        with pytest.raises(GenerationInferenceError):
            asyncio.run(scenario())

        assert conversation.transcript[-1].content == "Part"
        assert not conversation.is_generating

    def test_retrieval_failure_rolls_back_placeholder(self, make_conversation):
        backend = FakeEmbeddingBackend()
        conversation, llm = make_conversation(FakeStream(["never"]), backend=backend)

        async def scenario():
            await conversation.start()
            backend.fail_forward = RuntimeError("embedding crashed")
            await conversation.submit_user_message("I feel anxious")

        with pytest.raises(EmbeddingInferenceError):
            asyncio.run(scenario())

        assert _snapshot(conversation) == [(Role.SYSTEM, "Be kind."), (Role.USER, "I feel anxious")]
        assert llm.requests == []
        assert not conversation.is_generating

    def test_timeout(self, make_conversation):
        stream = FakeStream(["slow"], hold=True)
        conversation, _ = make_conversation(stream, generation_timeout=0.05)

        async def scenario():
            await conversation.start()
            await conversation.submit_user_message("I feel anxious")

        with pytest.raises(GenerationTimeoutError):
            asyncio.run(scenario())

        assert conversation.transcript[-1].content == "slow"
        assert stream.cancel_calls == 1
        assert not conversation.is_generating


class TestReset:
    def test_reset_clears_transcript(self, make_conversation):
        conversation, _ = make_conversation(FakeStream(["hi"]))

        async def scenario():
            await conversation.start()
            await conversation.submit_user_message("I feel anxious")

        asyncio.run(scenario())
        conversation.reset(system_prompt="Be brief.")

        assert _snapshot(conversation) == [(Role.SYSTEM, "Be brief.")]

    def test_reset_rejected_while_generating(self, make_conversation):
        conversation, _ = make_conversation(FakeStream(["Hel"], hold=True))

        async def scenario():
            await conversation.start()
            task = asyncio.create_task(conversation.submit_user_message("I feel anxious"))
            await wait_until(lambda: conversation.is_generating and conversation.transcript[-1].content)
            with pytest.raises(BackendNotReadyError):
                conversation.reset()
            await conversation.cancel()
            await task

        asyncio.run(scenario())

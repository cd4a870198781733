"""Tests for the checkpointed conversation and analysis workflows."""
from __future__ import annotations

import pytest

from api.features.chat.service import ChatAgent
from api.features.conversation.dtos import ConversationMessage, MessageRole
from api.shared.exceptions import ModelUnavailableError, StorageUnavailableError
from relay.pipeline.analysis_workflow import (
    ANALYSIS_FAILED_MESSAGE,
    AnalysisWorkflowParams,
    ConversationAnalysisWorkflow,
)
from relay.pipeline.conversation_workflow import (
    ConversationWorkflow,
    ConversationWorkflowParams,
)
from relay.pipeline.workflow import WorkflowRun
from relay.prompts.analysis.analysis_prompt import ANALYSIS_INSTRUCTIONS, AnalysisType

from conftest import FakeChatModel, lose_first_write


class TestWorkflowRun:
    async def test_step_result_is_checkpointed(self, storage):
        run = WorkflowRun(storage, "demo", "i1")
        calls = []

        async def step():
            calls.append(1)
            return {"value": 42}

        assert await run.do("compute", step) == {"value": 42}
        assert await run.do("compute", step) == {"value": 42}
        assert len(calls) == 1

        checkpoint = await storage.get("workflow:demo:i1:compute")
        assert checkpoint["result"] == {"value": 42}
        assert "completedAt" in checkpoint

    async def test_failed_step_is_not_checkpointed(self, storage):
        run = WorkflowRun(storage, "demo", "i1")

        async def boom():
            raise RuntimeError("fail")

        with pytest.raises(RuntimeError):
            await run.do("explode", boom)
        assert await storage.get("workflow:demo:i1:explode") is None

    async def test_instances_do_not_share_checkpoints(self, storage):
        async def one():
            return 1

        async def two():
            return 2

        assert await WorkflowRun(storage, "demo", "a").do("s", one) == 1
        assert await WorkflowRun(storage, "demo", "b").do("s", two) == 2

    async def test_clear_removes_only_this_instance(self, storage):
        async def value():
            return 1

        run = WorkflowRun(storage, "demo", "a")
        await run.do("s1", value)
        await run.sleep("pause", 0)
        await WorkflowRun(storage, "demo", "b").do("s1", value)

        await run.clear()
        assert list(storage._data) == ["workflow:demo:b:s1"]


@pytest.fixture
def conversation_workflow(storage, store, llm):
    return ConversationWorkflow(storage, store, ChatAgent(llm), response_delay_ms=0)


class TestConversationWorkflow:
    async def test_result_shape_and_stored_messages(self, conversation_workflow, store):
        result = await conversation_workflow.start(
            ConversationWorkflowParams(conversation_id="c1", user_message="hello"),
            instance_id="run-1",
        )

        assert result["success"] is True
        assert result["conversationId"] == "c1"
        assert result["userMessage"]["role"] == "user"
        assert result["userMessage"]["content"] == "hello"
        assert result["assistantMessage"]["role"] == "assistant"
        assert result["assistantMessage"]["content"] == "Hi there!"
        assert len(result["conversationState"]["messages"]) == 2

        session = await store.get_or_create("c1")
        assert [m.id for m in session.messages] == [
            result["userMessage"]["id"],
            result["assistantMessage"]["id"],
        ]

    async def test_completed_run_leaves_no_checkpoints(
        self, conversation_workflow, storage
    ):
        await conversation_workflow.start(
            ConversationWorkflowParams(conversation_id="c1", user_message="hello"),
            instance_id="run-1",
        )
        assert list(storage._data) == ["conversation:c1"]

    @pytest.mark.parametrize("lost_step", ["store-user-message", "store-assistant-message"])
    async def test_retry_after_lost_checkpoint_does_not_duplicate(
        self, storage, store, lost_step
    ):
        lose_first_write(storage, f":{lost_step}")
        llm = FakeChatModel(replies=["r"])
        workflow = ConversationWorkflow(storage, store, ChatAgent(llm), response_delay_ms=0)
        params = ConversationWorkflowParams(conversation_id="c1", user_message="hello")

        # The append lands but its checkpoint write does not
        with pytest.raises(StorageUnavailableError):
            await workflow.start(params, instance_id="job-1")
        result = await workflow.start(params, instance_id="job-1")

        session = await store.get_or_create("c1")
        assert [m.content for m in session.messages] == ["hello", "r"]
        assert len(llm.calls) == 1
        assert [m["content"] for m in result["conversationState"]["messages"]] == [
            "hello",
            "r",
        ]
        assert list(storage._data) == ["conversation:c1"]

    async def test_resume_after_model_step_failure(self, storage, store):
        failing = FakeChatModel(error=RuntimeError("crash"))

        class CrashingAgent(ChatAgent):
            async def process_message(self, *args, **kwargs):
                raise RuntimeError("worker died")

        params = ConversationWorkflowParams(conversation_id="c1", user_message="hello")
        with pytest.raises(RuntimeError):
            await ConversationWorkflow(
                storage, store, CrashingAgent(failing), response_delay_ms=0
            ).start(params, instance_id="run-1")
        assert len((await store.get_or_create("c1")).messages) == 1

        # The redelivered run sees the stored user message in its history
        history = (await store.get_or_create("c1")).messages
        llm = FakeChatModel(replies=["recovered"])
        result = await ConversationWorkflow(
            storage, store, ChatAgent(llm), response_delay_ms=0
        ).start(
            ConversationWorkflowParams(
                conversation_id="c1", user_message="hello", history=history
            ),
            instance_id="run-1",
        )

        session = await store.get_or_create("c1")
        assert [m.content for m in session.messages] == ["hello", "recovered"]
        assert result["assistantMessage"]["content"] == "recovered"
        sent = llm.calls[0]["messages"]
        assert [m["content"] for m in sent[1:]] == ["hello"]

    async def test_model_failure_stores_fallback(self, storage, store):
        workflow = ConversationWorkflow(
            storage,
            store,
            ChatAgent(FakeChatModel(error=ModelUnavailableError("down"))),
            response_delay_ms=0,
        )
        result = await workflow.start(
            ConversationWorkflowParams(conversation_id="c1", user_message="hello")
        )
        assert result["assistantMessage"]["content"].startswith("I encountered an error")


async def _seed(store, n: int) -> None:
    for i in range(n):
        role = MessageRole.USER if i % 2 == 0 else MessageRole.ASSISTANT
        await store.append("c1", ConversationMessage(role=role, content=f"m{i}"))


def _analysis(storage, store, llm) -> ConversationAnalysisWorkflow:
    return ConversationAnalysisWorkflow(storage, store, llm, analysis_delay_ms=0)


class TestAnalysisWorkflow:
    async def test_prompt_contains_full_transcript(self, storage, store):
        await _seed(store, 4)
        llm = FakeChatModel(replies=["Friendly and upbeat."])

        result = await _analysis(storage, store, llm).start(
            AnalysisWorkflowParams(conversation_id="c1", analysis_type=AnalysisType.SENTIMENT)
        )

        assert result["success"] is True
        assert result["conversationId"] == "c1"
        assert result["analysis"]["type"] == "sentiment"
        assert result["analysis"]["result"] == "Friendly and upbeat."
        assert isinstance(result["analysis"]["timestamp"], int)

        call = llm.calls[0]
        assert call["messages"][0] == {
            "role": "system",
            "content": ANALYSIS_INSTRUCTIONS[AnalysisType.SENTIMENT],
        }
        assert call["messages"][1]["content"].split("\n") == [
            "user: m0",
            "assistant: m1",
            "user: m2",
            "assistant: m3",
        ]
        assert call["max_tokens"] == 500
        assert call["temperature"] == 0.3

    async def test_transcript_is_not_windowed(self, storage, store):
        await _seed(store, 25)
        llm = FakeChatModel(replies=["summary"])
        await _analysis(storage, store, llm).start(
            AnalysisWorkflowParams(conversation_id="c1", analysis_type=AnalysisType.SUMMARY)
        )
        assert len(llm.calls[0]["messages"][1]["content"].split("\n")) == 25

    async def test_empty_model_output(self, storage, store):
        await _seed(store, 1)
        result = await _analysis(storage, store, FakeChatModel(replies=[""])).start(
            AnalysisWorkflowParams(conversation_id="c1", analysis_type=AnalysisType.TOPICS)
        )
        assert result["analysis"]["result"] == ANALYSIS_FAILED_MESSAGE

    async def test_model_failure_propagates(self, storage, store):
        workflow = _analysis(storage, store, FakeChatModel(error=ModelUnavailableError("down")))
        with pytest.raises(ModelUnavailableError):
            await workflow.start(
                AnalysisWorkflowParams(conversation_id="c1", analysis_type=AnalysisType.SUMMARY)
            )

    async def test_default_instance_id_names_conversation_and_type(self, storage, store):
        workflow = _analysis(storage, store, FakeChatModel())
        instance_id = workflow.new_instance_id(
            AnalysisWorkflowParams(conversation_id="c1", analysis_type=AnalysisType.TOPICS)
        )
        assert instance_id.startswith("analysis_c1_topics_")

    async def test_instance_ids_are_unique_within_a_millisecond(
        self, storage, store, monkeypatch
    ):
        monkeypatch.setattr("relay.pipeline.analysis_workflow.time.time", lambda: 1000.0)
        workflow = _analysis(storage, store, FakeChatModel())
        params = AnalysisWorkflowParams(conversation_id="c1", analysis_type=AnalysisType.TOPICS)
        assert workflow.new_instance_id(params) != workflow.new_instance_id(params)

    async def test_interrupted_analysis_resumes_without_new_model_call(self, storage, store):
        lose_first_write(storage, ":analysis-delay")
        await _seed(store, 2)
        llm = FakeChatModel(replies=["once"])
        workflow = _analysis(storage, store, llm)
        params = AnalysisWorkflowParams(conversation_id="c1", analysis_type=AnalysisType.SUMMARY)

        with pytest.raises(StorageUnavailableError):
            await workflow.start(params, instance_id="a1")
        result = await workflow.start(params, instance_id="a1")

        assert result["analysis"]["result"] == "once"
        assert len(llm.calls) == 1

    async def test_completed_analysis_keeps_no_transcript_copy(self, storage, store):
        await _seed(store, 2)
        for _ in range(3):
            await _analysis(storage, store, FakeChatModel()).start(
                AnalysisWorkflowParams(conversation_id="c1", analysis_type=AnalysisType.SUMMARY)
            )
        await store.remove("c1")
        assert storage._data == {}

"""Conversation analysis workflow: fetch-conversation → perform-analysis → analysis-delay."""
from __future__ import annotations

import time
import uuid
from typing import Any, Dict

from api.features.conversation.dtos import ConversationSession
from api.features.conversation.repository import ConversationStore
from api.shared.dtos import BaseDTO
from infra.llm import ChatModel
from infra.storage import StorageBackend
from relay.pipeline.workflow import Workflow, WorkflowRun
from relay.prompts.analysis.analysis_prompt import AnalysisType, build_analysis_messages

ANALYSIS_FAILED_MESSAGE = "Analysis could not be completed."


class AnalysisWorkflowParams(BaseDTO):
    conversation_id: str
    analysis_type: AnalysisType


class ConversationAnalysisWorkflow(Workflow[AnalysisWorkflowParams]):
    """Model failures are not masked here; they propagate to the caller."""

    name = "analysis"

    def __init__(
        self,
        storage: StorageBackend,
        store: ConversationStore,
        llm: ChatModel,
        *,
        max_tokens: int = 500,
        temperature: float = 0.3,
        analysis_delay_ms: int = 200,
    ):
        super().__init__(storage)
        self.store = store
        self.llm = llm
        self.max_tokens = max_tokens
        self.temperature = temperature
        self.analysis_delay_ms = analysis_delay_ms

    def new_instance_id(self, params: AnalysisWorkflowParams) -> str:
        return (
            f"analysis_{params.conversation_id}_{params.analysis_type.value}"
            f"_{int(time.time() * 1000)}_{uuid.uuid4().hex[:8]}"
        )

    async def run(self, params: AnalysisWorkflowParams, step: WorkflowRun) -> Dict[str, Any]:
        async def fetch_conversation():
            session = await self.store.get_or_create(params.conversation_id)
            return session.model_dump(mode="json", by_alias=True)

        conversation = ConversationSession.model_validate(
            await step.do("fetch-conversation", fetch_conversation)
        )

        async def perform_analysis():
            result = await self.llm.complete(
                build_analysis_messages(
                    analysis_type=params.analysis_type,
                    messages=conversation.messages,
                ),
                max_tokens=self.max_tokens,
                temperature=self.temperature,
            )
            return {
                "type": params.analysis_type.value,
                "result": result or ANALYSIS_FAILED_MESSAGE,
                "timestamp": int(time.time() * 1000),
            }

        analysis = await step.do("perform-analysis", perform_analysis)

        await step.sleep("analysis-delay", self.analysis_delay_ms / 1000)

        return {
            "success": True,
            "conversationId": params.conversation_id,
            "analysis": analysis,
        }

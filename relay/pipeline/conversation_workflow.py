"""Conversation workflow: the chat relay as checkpointed steps.

create-user-message → store-user-message → process-ai-response →
create-assistant-message → store-assistant-message → response-delay
"""
from __future__ import annotations

import time
import uuid
from typing import Any, Dict, List

from pydantic import Field

from api.features.chat.service import ChatAgent
from api.features.conversation.dtos import ConversationMessage, MessageRole
from api.features.conversation.repository import ConversationStore
from api.shared.dtos import BaseDTO
from infra.storage import StorageBackend
from relay.pipeline.workflow import Workflow, WorkflowRun


class ConversationWorkflowParams(BaseDTO):
    conversation_id: str
    user_message: str
    history: List[ConversationMessage] = Field(default_factory=list)


def _dump(model) -> Dict[str, Any]:
    return model.model_dump(mode="json", by_alias=True)


class ConversationWorkflow(Workflow[ConversationWorkflowParams]):
    name = "conversation"

    def __init__(
        self,
        storage: StorageBackend,
        store: ConversationStore,
        agent: ChatAgent,
        response_delay_ms: int = 100,
    ):
        super().__init__(storage)
        self.store = store
        self.agent = agent
        self.response_delay_ms = response_delay_ms

    async def run(
        self, params: ConversationWorkflowParams, step: WorkflowRun
    ) -> Dict[str, Any]:
        conversation_id = params.conversation_id

        async def create_user_message():
            return _dump(
                ConversationMessage(
                    id=str(uuid.uuid4()),
                    role=MessageRole.USER,
                    content=params.user_message,
                    timestamp=int(time.time() * 1000),
                )
            )

        user_msg = await step.do("create-user-message", create_user_message)

        async def store_user_message():
            session = await self.store.append(
                conversation_id, ConversationMessage.model_validate(user_msg)
            )
            return _dump(session)

        await step.do("store-user-message", store_user_message)

        async def process_ai_response():
            # A resumed run may have loaded history after the user message was stored
            history = [m for m in params.history if m.id != user_msg["id"]]
            reply = await self.agent.process_message(
                params.user_message, conversation_id, history
            )
            return _dump(reply)

        ai_response = await step.do("process-ai-response", process_ai_response)

        async def create_assistant_message():
            return _dump(
                ConversationMessage(
                    id=ai_response["messageId"],
                    role=MessageRole.ASSISTANT,
                    content=ai_response["content"],
                    timestamp=int(time.time() * 1000),
                )
            )

        assistant_msg = await step.do(
            "create-assistant-message", create_assistant_message
        )

        async def store_assistant_message():
            session = await self.store.append(
                conversation_id, ConversationMessage.model_validate(assistant_msg)
            )
            return _dump(session)

        final_state = await step.do("store-assistant-message", store_assistant_message)

        await step.sleep("response-delay", self.response_delay_ms / 1000)

        return {
            "success": True,
            "conversationId": conversation_id,
            "userMessage": user_msg,
            "assistantMessage": assistant_msg,
            "conversationState": final_state,
        }

"""Chat relay: history lookup, model call, and the two-step append.

``ChatAgent`` owns the model-failure policy: any error from the model call is
turned into a fixed apology so the transport layer always gets a reply.
``ChatService`` sequences the store writes around it.
"""
from __future__ import annotations

import logging
import uuid
from typing import Sequence

from api.features.chat.dtos import ChatResponse
from api.features.conversation.dtos import ConversationMessage, MessageRole
from api.features.conversation.repository import ConversationStore
from infra.llm import ChatModel
from relay.prompts.chat.system_prompt import build_chat_messages
from relay.prompts.title.title_prompt import build_title_messages

logger = logging.getLogger("chat_relay.chat.service")

FALLBACK_ERROR_MESSAGE = (
    "I encountered an error while processing your message. Please try again."
)
EMPTY_RESPONSE_MESSAGE = "I apologize, but I could not generate a response."
DEFAULT_TITLE = "New Conversation"
TITLE_FALLBACK_LENGTH = 50


class ChatAgent:
    def __init__(
        self,
        llm: ChatModel,
        *,
        history_window: int = 10,
        max_tokens: int = 1000,
        temperature: float = 0.7,
        title_max_tokens: int = 20,
        title_temperature: float = 0.3,
    ):
        self.llm = llm
        self.history_window = history_window
        self.max_tokens = max_tokens
        self.temperature = temperature
        self.title_max_tokens = title_max_tokens
        self.title_temperature = title_temperature

    async def process_message(
        self,
        message: str,
        conversation_id: str,
        history: Sequence[ConversationMessage] = (),
    ) -> ChatResponse:
        """Ask the model for a reply; never raises for model failures."""
        messages = build_chat_messages(
            message=message, history=history, window=self.history_window
        )
        try:
            text = await self.llm.complete(
                messages, max_tokens=self.max_tokens, temperature=self.temperature
            )
        except Exception:
            logger.exception(f"Model call failed for conversation {conversation_id}")
            return ChatResponse(
                content=FALLBACK_ERROR_MESSAGE,
                conversation_id=conversation_id,
                message_id=str(uuid.uuid4()),
            )

        return ChatResponse(
            content=text or EMPTY_RESPONSE_MESSAGE,
            conversation_id=conversation_id,
            message_id=str(uuid.uuid4()),
        )

    async def generate_title(self, messages: Sequence[ConversationMessage]) -> str:
        if not messages:
            return DEFAULT_TITLE

        first_message = next(
            (m.content for m in messages if m.role == MessageRole.USER.value),
            DEFAULT_TITLE,
        )
        fallback = first_message[:TITLE_FALLBACK_LENGTH] + (
            "..." if len(first_message) > TITLE_FALLBACK_LENGTH else ""
        )
        try:
            title = await self.llm.complete(
                build_title_messages(first_message=first_message),
                max_tokens=self.title_max_tokens,
                temperature=self.title_temperature,
            )
        except Exception:
            logger.warning("Title generation failed; using first message", exc_info=True)
            return fallback
        return title.strip() or fallback


class ChatService:
    """get → model → append(user) → append(assistant).

    The two appends are separate writes. If the second one fails the user
    message stays in the history without a reply.
    """

    def __init__(self, store: ConversationStore, agent: ChatAgent):
        self.store = store
        self.agent = agent

    async def relay(self, conversation_id: str, user_text: str) -> ChatResponse:
        session = await self.store.get_or_create(conversation_id)

        reply = await self.agent.process_message(
            user_text, conversation_id, session.messages
        )

        await self.store.append(
            conversation_id,
            ConversationMessage(role=MessageRole.USER, content=user_text),
        )
        await self.store.append(
            conversation_id,
            ConversationMessage(
                id=reply.message_id,
                role=MessageRole.ASSISTANT,
                content=reply.content,
            ),
        )
        logger.info(
            f"Relayed message for conversation {conversation_id} "
            f"(history={len(session.messages)})"
        )
        return reply

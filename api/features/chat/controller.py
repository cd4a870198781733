"""Controller for the Chat feature."""
from api.features.chat.dtos import ChatRequest, ChatResponse
from api.features.chat.service import ChatService
from api.shared.exceptions import ValidationError


class ChatController:
    def __init__(self, chat_service: ChatService):
        self.chat_service = chat_service

    async def chat(self, request: ChatRequest) -> ChatResponse:
        if not request.message or not request.conversation_id:
            raise ValidationError("Missing message or conversationId")
        return await self.chat_service.relay(request.conversation_id, request.message)

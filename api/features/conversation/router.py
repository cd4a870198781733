"""Router for the Conversation feature."""
from dependency_injector.wiring import Provide, inject
from fastapi import APIRouter, Depends

from di.container import ApplicationContainer as DependencyContainer
from api.features.conversation.controller import ConversationController
from api.features.conversation.dtos import (
    AppendMessageRequest,
    ConversationListResponse,
    ConversationSession,
    DeleteConversationResponse,
    PatchConversationRequest,
    TitleResponse,
)
from api.shared.exceptions import ValidationError

router = APIRouter()


@router.get("/conversations", response_model=ConversationListResponse)
@inject
async def list_conversations(
    controller: ConversationController = Depends(
        Provide[DependencyContainer.controllers.conversation_controller]
    ),
):
    return await controller.list_conversations()


@router.api_route("/conversation/", methods=["GET", "POST", "PUT", "DELETE"])
async def missing_conversation_id():
    raise ValidationError("Missing conversation ID")


@router.get("/conversation/{conversation_id}", response_model=ConversationSession)
@inject
async def get_conversation(
    conversation_id: str,
    controller: ConversationController = Depends(
        Provide[DependencyContainer.controllers.conversation_controller]
    ),
):
    return await controller.get_conversation(conversation_id=conversation_id)


@router.post("/conversation/{conversation_id}", response_model=ConversationSession)
@inject
async def append_message(
    conversation_id: str,
    request: AppendMessageRequest,
    controller: ConversationController = Depends(
        Provide[DependencyContainer.controllers.conversation_controller]
    ),
):
    return await controller.append_message(
        conversation_id=conversation_id, request=request
    )


@router.put("/conversation/{conversation_id}", response_model=ConversationSession)
@inject
async def patch_conversation(
    conversation_id: str,
    request: PatchConversationRequest,
    controller: ConversationController = Depends(
        Provide[DependencyContainer.controllers.conversation_controller]
    ),
):
    return await controller.patch_conversation(
        conversation_id=conversation_id, request=request
    )


@router.delete(
    "/conversation/{conversation_id}", response_model=DeleteConversationResponse
)
@inject
async def delete_conversation(
    conversation_id: str,
    controller: ConversationController = Depends(
        Provide[DependencyContainer.controllers.conversation_controller]
    ),
):
    return await controller.delete_conversation(conversation_id=conversation_id)


@router.post("/conversation/{conversation_id}/title", response_model=TitleResponse)
@inject
async def generate_title(
    conversation_id: str,
    controller: ConversationController = Depends(
        Provide[DependencyContainer.controllers.conversation_controller]
    ),
):
    return await controller.generate_title(conversation_id=conversation_id)

"""Conversational assistant endpoint."""

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, Field

from echoes.api.dependencies import get_chat_service, get_user_id
from echoes.core.decorators import with_error_handling
from echoes.core.errors import NotFoundError
from echoes.services.chat import ChatReply, ChatService

router = APIRouter()


class ChatMessageRequest(BaseModel):
    message: str = Field(..., min_length=1)


@router.post("/{session_id}/messages", response_model=ChatReply, operation_id="send_chat_message")
@with_error_handling(reraise=True)
async def send_message(
    session_id: UUID,
    request: ChatMessageRequest,
    user_id: Annotated[str, Depends(get_user_id)],
    chat: Annotated[ChatService, Depends(get_chat_service)],
) -> ChatReply:
    return await chat.send_message(user_id, session_id, request.message)


@router.delete("/{session_id}", status_code=status.HTTP_204_NO_CONTENT, operation_id="close_chat_session")
async def close_session(
    session_id: UUID,
    user_id: Annotated[str, Depends(get_user_id)],
    chat: Annotated[ChatService, Depends(get_chat_service)],
) -> None:
    if not chat.sessions.close(user_id, session_id):
        raise NotFoundError(message=f"Chat session {session_id} not found")

from fastapi import APIRouter, Depends, HTTPException, status
from typing import List

from datamind.api.routes.chat import manager
from datamind.models.schemas import (
    BulkDeleteRequest,
    ChatMessageResponse,
    ChatSessionCreate,
    ChatSessionResponse,
    ChatSessionUpdate,
)
from datamind.services.container import ServiceContainer, get_container
from datamind.utils.exceptions import NotFoundError
from datamind.utils.logger import setup_logger

router = APIRouter()
logger = setup_logger(__name__)

async def _forget_sessions(container: ServiceContainer, session_ids: List[str]):
    """Drop live sockets and agent state for deleted sessions"""
    for session_id in session_ids:
        manager.forget_session(session_id)
        await container.contexts.clear_context(session_id)

@router.get("/sessions/{user_id}", response_model=List[ChatSessionResponse])
async def list_sessions(user_id: str, container: ServiceContainer = Depends(get_container)):
    return await container.storage.get_chat_sessions_by_user(user_id)

@router.post("/sessions", response_model=ChatSessionResponse, status_code=status.HTTP_201_CREATED)
async def create_session(request: ChatSessionCreate, container: ServiceContainer = Depends(get_container)):
    if await container.storage.get_user(request.user_id) is None:
        raise NotFoundError(f"User {request.user_id} not found")
    return await container.storage.create_chat_session(request.user_id, request.title, request.agent_type)

@router.patch("/sessions/{session_id}", response_model=ChatSessionResponse)
async def update_session(session_id: str, request: ChatSessionUpdate,
                         container: ServiceContainer = Depends(get_container)):
    if await container.storage.get_chat_session(session_id) is None:
        raise NotFoundError(f"Session {session_id} not found")
    return await container.storage.update_chat_session(session_id, request.model_dump(exclude_unset=True))

@router.delete("/sessions/{session_id}")
async def delete_session(session_id: str, container: ServiceContainer = Depends(get_container)):
    deleted = await container.storage.delete_chat_session(session_id)
    if not deleted:
        raise NotFoundError(f"Session {session_id} not found")
    await _forget_sessions(container, [session_id])
    return {"success": True}

@router.delete("/sessions")
async def delete_sessions(request: BulkDeleteRequest, container: ServiceContainer = Depends(get_container)):
    session_ids = request.session_ids
    if not isinstance(session_ids, list) or not all(isinstance(s, str) for s in session_ids):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="sessionIds must be a list")
    deleted = await container.storage.delete_chat_sessions(session_ids)
    await _forget_sessions(container, session_ids)
    return {"success": True, "deleted": deleted}

@router.get("/sessions/{session_id}/messages", response_model=List[ChatMessageResponse])
async def list_messages(session_id: str, container: ServiceContainer = Depends(get_container)):
    messages = await container.storage.get_messages_by_session(session_id)
    return [ChatMessageResponse.from_orm_message(m) for m in messages]

from fastapi import APIRouter, Depends, WebSocket, WebSocketDisconnect
from pydantic import ValidationError
from typing import Dict, List

from datamind.config import settings
from datamind.models.protocol import (
    AgentResponse,
    AgentSwitch,
    AgentSwitched,
    AgentTyping,
    ChatMessageIn,
    ErrorEnvelope,
    JoinSession,
    MessageSaved,
    ServerEnvelope,
    SessionJoined,
    VisualizationCreated,
    dump_envelope,
    parse_client_envelope,
)
from datamind.models.schemas import ChatMessageResponse, VisualizationDraft, VisualizationResponse
from datamind.services.container import ServiceContainer, get_container
from datamind.utils.logger import setup_logger

router = APIRouter()
logger = setup_logger(__name__)

TITLE_LENGTH = 50

class ConnectionManager:
    """Tracks which socket listens to which chat session"""

    def __init__(self):
        self.active_sessions: Dict[str, WebSocket] = {}

    async def connect(self, websocket: WebSocket):
        await websocket.accept()

    def join(self, session_id: str, websocket: WebSocket):
        self.active_sessions[session_id] = websocket

    def forget_session(self, session_id: str):
        self.active_sessions.pop(session_id, None)

    def disconnect(self, websocket: WebSocket) -> List[str]:
        sessions = [sid for sid, ws in self.active_sessions.items() if ws is websocket]
        for session_id in sessions:
            del self.active_sessions[session_id]
        return sessions

    async def send(self, websocket: WebSocket, envelope: ServerEnvelope):
        await websocket.send_text(dump_envelope(envelope))

manager = ConnectionManager()

def session_title(content: str) -> str:
    content = " ".join(content.split())
    if len(content) <= TITLE_LENGTH:
        return content
    return content[:TITLE_LENGTH].rstrip() + "..."

def _validation_details(error: ValidationError) -> List[Dict[str, str]]:
    return [
        {"loc": ".".join(str(p) for p in e.get("loc", ())), "msg": e.get("msg", "")}
        for e in error.errors()
    ]

async def handle_join(websocket: WebSocket, envelope: JoinSession):
    manager.join(envelope.session_id, websocket)
    logger.info(f"Socket joined session {envelope.session_id}", extra={"session_id": envelope.session_id})
    await manager.send(websocket, SessionJoined(session_id=envelope.session_id))

async def handle_agent_switch(websocket: WebSocket, envelope: AgentSwitch, container: ServiceContainer):
    if await container.storage.get_chat_session(envelope.session_id) is not None:
        await container.storage.update_chat_session(envelope.session_id, {"agent_type": envelope.agent_type})
    await manager.send(
        websocket, AgentSwitched(session_id=envelope.session_id, agent_type=envelope.agent_type)
    )

async def handle_chat_message(websocket: WebSocket, envelope: ChatMessageIn, container: ServiceContainer):
    storage = container.storage
    session_id = envelope.session_id

    chat_session = await storage.get_chat_session(session_id)
    if chat_session is None:
        user_id = envelope.user_id or settings.DEFAULT_USER_ID
        if await storage.get_user(user_id) is None:
            await manager.send(websocket, ErrorEnvelope(message=f"Unknown user {user_id}"))
            return
        chat_session = await storage.create_chat_session(
            user_id, session_title(envelope.content), envelope.agent_type, session_id=session_id
        )
        logger.info(
            f"Created chat session {session_id} for {user_id}",
            extra={"session_id": session_id, "user_id": user_id, "agent_type": envelope.agent_type},
        )
    user_id = chat_session.user_id

    manager.join(session_id, websocket)

    user_message = await storage.create_message(session_id, "user", envelope.content)
    await manager.send(websocket, MessageSaved(message=ChatMessageResponse.from_orm_message(user_message)))
    await manager.send(websocket, AgentTyping(session_id=session_id, is_typing=True))

    try:
        response = await container.agent_service.process_message(
            envelope.content, envelope.agent_type, session_id, user_id
        )
    finally:
        await manager.send(websocket, AgentTyping(session_id=session_id, is_typing=False))

    assistant_message = await storage.create_message(
        session_id, "assistant", response.content, response.metadata
    )
    await storage.touch_chat_session(session_id)
    await manager.send(
        websocket, AgentResponse(message=ChatMessageResponse.from_orm_message(assistant_message))
    )

    if response.visualization:
        draft = VisualizationDraft.model_validate(response.visualization)
        visualization = await storage.create_visualization(
            message_id=assistant_message.id,
            user_id=user_id,
            title=draft.title,
            chart_type=draft.chart_type,
            chart_config=draft.chart_config.model_dump(),
            data=draft.data,
            description=draft.description,
            sql_query=draft.sql_query,
        )
        await manager.send(
            websocket,
            VisualizationCreated(visualization=VisualizationResponse.model_validate(visualization)),
        )

@router.websocket("/ws")
async def websocket_endpoint(websocket: WebSocket, container: ServiceContainer = Depends(get_container)):
    '''Chat socket multiplexing every session of a client'''
    await manager.connect(websocket)

    try:
        while True:
            raw = await websocket.receive_text()
            try:
                envelope = parse_client_envelope(raw)
            except ValidationError as e:
                logger.warning(f"Rejected websocket frame: {e.error_count()} error(s)")
                await manager.send(
                    websocket,
                    ErrorEnvelope(message="Invalid message format", details=_validation_details(e)),
                )
                continue

            try:
                if isinstance(envelope, JoinSession):
                    await handle_join(websocket, envelope)
                elif isinstance(envelope, ChatMessageIn):
                    await handle_chat_message(websocket, envelope, container)
                elif isinstance(envelope, AgentSwitch):
                    await handle_agent_switch(websocket, envelope, container)
            except WebSocketDisconnect:
                raise
            except Exception as e:
                logger.error(f"Error handling {envelope.type}: {str(e)}", exc_info=True)
                await manager.send(websocket, ErrorEnvelope(message="Failed to process message"))

    except WebSocketDisconnect:
        sessions = manager.disconnect(websocket)
        for session_id in sessions:
            container.contexts.release_lock(session_id)
        logger.info(f"Socket disconnected from {len(sessions)} session(s)")

"""WebSocket envelopes exchanged on the chat socket.

Every frame is a JSON object tagged by ``type``. Inbound frames are parsed
into one of the client envelopes below; anything else is answered with an
``error`` envelope.
"""
from typing import Optional, Dict, Any, List, Literal, Union

from pydantic import Field, TypeAdapter, field_validator
from typing_extensions import Annotated

from datamind.models.schemas import (
    CamelModel,
    ChatMessageResponse,
    VisualizationResponse,
    normalize_agent_type,
)

# Client -> server

class JoinSession(CamelModel):
    type: Literal["join_session"]
    session_id: str = Field(..., min_length=1)
    user_id: Optional[str] = None

class ChatMessageIn(CamelModel):
    type: Literal["chat_message"]
    session_id: str = Field(..., min_length=1)
    content: str = Field(..., min_length=1)
    agent_type: str = "query"
    user_id: Optional[str] = None

    @field_validator("agent_type", mode="before")
    @classmethod
    def _alias_agent_type(cls, v):
        return normalize_agent_type(v)

class AgentSwitch(CamelModel):
    type: Literal["agent_switch"]
    session_id: str = Field(..., min_length=1)
    agent_type: str

    @field_validator("agent_type", mode="before")
    @classmethod
    def _alias_agent_type(cls, v):
        return normalize_agent_type(v)

ClientEnvelope = Annotated[
    Union[JoinSession, ChatMessageIn, AgentSwitch],
    Field(discriminator="type"),
]
client_envelope_adapter = TypeAdapter(ClientEnvelope)

def parse_client_envelope(raw: str) -> ClientEnvelope:
    """Raises pydantic.ValidationError on bad JSON or an unknown envelope"""
    return client_envelope_adapter.validate_json(raw)

# Server -> client

class SessionJoined(CamelModel):
    type: Literal["session_joined"] = "session_joined"
    session_id: str

class MessageSaved(CamelModel):
    type: Literal["message_saved"] = "message_saved"
    message: ChatMessageResponse

class AgentTyping(CamelModel):
    type: Literal["agent_typing"] = "agent_typing"
    session_id: str
    is_typing: bool

class AgentResponse(CamelModel):
    type: Literal["agent_response"] = "agent_response"
    message: ChatMessageResponse

class VisualizationCreated(CamelModel):
    type: Literal["visualization_created"] = "visualization_created"
    visualization: VisualizationResponse

class AgentSwitched(CamelModel):
    type: Literal["agent_switched"] = "agent_switched"
    session_id: str
    agent_type: str

class ErrorEnvelope(CamelModel):
    type: Literal["error"] = "error"
    message: str
    details: Optional[List[Dict[str, Any]]] = None

ServerEnvelope = Union[
    SessionJoined, MessageSaved, AgentTyping, AgentResponse,
    VisualizationCreated, AgentSwitched, ErrorEnvelope,
]

def dump_envelope(envelope: ServerEnvelope) -> str:
    return envelope.model_dump_json(by_alias=True)

from datetime import datetime
from typing import Optional, Dict, Any, List, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, field_validator
from pydantic.alias_generators import to_camel
from typing_extensions import Annotated

from datamind.config import settings

AgentType = Literal["query", "ontology", "dashboards", "general"]
MessageRole = Literal["user", "assistant", "system"]

AGENT_TYPE_ALIASES = {"yaml": "ontology"}

def normalize_agent_type(value: Optional[str]) -> str:
    value = (value or "query").strip().lower()
    return AGENT_TYPE_ALIASES.get(value, value)

class CamelModel(BaseModel):
    """Base model that speaks camelCase JSON and reads ORM objects"""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )

# Message metadata variants

class FunctionToolMetadata(CamelModel):
    kind: Literal["function_tool"] = "function_tool"
    agent_type: str
    function_call: str
    sql: Optional[str] = None
    row_count: Optional[int] = None
    execution_time_ms: Optional[float] = None

class LLMMetadata(CamelModel):
    kind: Literal["llm"] = "llm"
    agent_type: str
    model: Optional[str] = None
    tool_calls: List[str] = Field(default_factory=list)
    sql: Optional[str] = None
    row_count: Optional[int] = None

class FallbackMetadata(CamelModel):
    kind: Literal["fallback"] = "fallback"
    agent_type: str
    error: Optional[str] = None

MessageMetadata = Annotated[
    Union[FunctionToolMetadata, LLMMetadata, FallbackMetadata],
    Field(discriminator="kind"),
]
message_metadata_adapter = TypeAdapter(Optional[MessageMetadata])

def parse_message_metadata(raw: Optional[Dict[str, Any]]) -> Optional[MessageMetadata]:
    """Validate a stored metadata blob; untagged legacy blobs read as absent"""
    if not raw or "kind" not in raw:
        return None
    return message_metadata_adapter.validate_python(raw)

# Chart spec

class ChartSpec(BaseModel):
    """Declarative chart for the front-end renderer"""

    data: List[Dict[str, Any]]
    layout: Dict[str, Any] = Field(default_factory=dict)
    config: Dict[str, Any] = Field(default_factory=dict)

class VisualizationDraft(CamelModel):
    """Chart produced by an agent turn, not yet attached to a message"""

    title: str
    description: Optional[str] = None
    chart_type: str
    chart_config: ChartSpec
    data: List[Dict[str, Any]] = Field(default_factory=list)
    sql_query: Optional[str] = None

# Users

class UserCreate(CamelModel):
    username: str = Field(..., min_length=1, max_length=150)
    password: str = Field(..., min_length=1)
    role: str = "user"

class UserResponse(CamelModel):
    id: str
    username: str
    role: str
    created_at: Optional[datetime] = None

# Sessions and messages

class ChatSessionCreate(CamelModel):
    user_id: str
    title: str = "New Chat"
    agent_type: AgentType = "query"

    @field_validator("agent_type", mode="before")
    @classmethod
    def _alias_agent_type(cls, v):
        return normalize_agent_type(v)

class ChatSessionUpdate(CamelModel):
    title: Optional[str] = None
    summary: Optional[str] = None
    agent_type: Optional[AgentType] = None

    @field_validator("agent_type", mode="before")
    @classmethod
    def _alias_agent_type(cls, v):
        return normalize_agent_type(v) if v is not None else v

class ChatSessionResponse(CamelModel):
    id: str
    user_id: str
    title: str
    summary: Optional[str] = None
    agent_type: str
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    last_message_at: Optional[datetime] = None

class BulkDeleteRequest(CamelModel):
    session_ids: Any = None

class ChatMessageResponse(CamelModel):
    id: str
    session_id: str
    role: str
    content: str
    metadata: Optional[MessageMetadata] = None
    created_at: Optional[datetime] = None

    @classmethod
    def from_orm_message(cls, message) -> "ChatMessageResponse":
        return cls(
            id=message.id,
            session_id=message.session_id,
            role=message.role,
            content=message.content,
            metadata=parse_message_metadata(message.message_metadata),
            created_at=message.created_at,
        )

# Visualizations

class VisualizationResponse(CamelModel):
    id: str
    message_id: str
    user_id: str
    title: str
    description: Optional[str] = None
    chart_type: str
    chart_config: ChartSpec
    data: Optional[List[Dict[str, Any]]] = None
    sql_query: Optional[str] = None
    is_pinned: bool = False
    is_published: bool = False
    created_at: Optional[datetime] = None

class VisualizationUpdate(CamelModel):
    is_pinned: Optional[bool] = None
    is_published: Optional[bool] = None

class PinRequest(CamelModel):
    user_id: str
    visualization_id: str

class PinnedVisualizationResponse(CamelModel):
    id: str
    user_id: str
    visualization_id: str
    pinned_at: Optional[datetime] = None
    visualization: VisualizationResponse

# Snowflake connections

class SnowflakeConnectionBase(CamelModel):
    name: str = Field(..., min_length=1)
    account: str = Field(..., min_length=1)
    username: str = Field(..., min_length=1)
    database: Optional[str] = None
    schema_name: Optional[str] = Field(default=None, alias="schema")
    warehouse: Optional[str] = None
    role: Optional[str] = None
    authenticator: str = "SNOWFLAKE"
    is_active: bool = True

    @field_validator("account", "username")
    @classmethod
    def _strip(cls, v):
        if not v or not v.strip():
            raise ValueError("Value cannot be empty")
        return v.strip()

    @field_validator("authenticator")
    @classmethod
    def _upper(cls, v):
        return (v or "SNOWFLAKE").strip().upper()

class SnowflakeConnectionCreate(SnowflakeConnectionBase):
    user_id: str
    password: str = Field(..., min_length=1)
    is_default: bool = False

class SnowflakeConnectionUpdate(CamelModel):
    name: Optional[str] = None
    account: Optional[str] = None
    username: Optional[str] = None
    password: Optional[str] = None
    database: Optional[str] = None
    schema_name: Optional[str] = Field(default=None, alias="schema")
    warehouse: Optional[str] = None
    role: Optional[str] = None
    authenticator: Optional[str] = None
    is_active: Optional[bool] = None

class SnowflakeConnectionResponse(SnowflakeConnectionBase):
    id: str
    user_id: str
    is_default: bool = False
    has_password: bool = True
    last_connected: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @classmethod
    def from_orm_connection(cls, connection) -> "SnowflakeConnectionResponse":
        return cls(
            id=connection.id,
            user_id=connection.user_id,
            name=connection.name,
            account=connection.account,
            username=connection.username,
            database=connection.database,
            schema_name=connection.schema,
            warehouse=connection.warehouse,
            role=connection.role,
            authenticator=connection.authenticator,
            is_active=connection.is_active,
            is_default=connection.is_default,
            has_password=bool(connection.password),
            last_connected=connection.last_connected,
            created_at=connection.created_at,
            updated_at=connection.updated_at,
        )

class QueryRequest(CamelModel):
    sql: str = Field(..., min_length=1)

# Agent configuration

class ToolSetting(CamelModel):
    name: str
    description: str = ""
    category: str
    enabled: bool = True

class AgentPrompt(CamelModel):
    id: str
    name: str
    type: Literal["system", "user", "assistant"] = "system"
    content: str = ""
    enabled: bool = True

class AgentContextSettings(CamelModel):
    max_history: int = Field(default=settings.LLM_HISTORY_WINDOW, ge=0, le=50)
    retain_session: bool = True
    auto_execute: bool = True

class AgentSettings(CamelModel):
    id: str
    name: str
    type: AgentType
    description: str = ""
    enabled: bool = True
    tools: List[str] = Field(default_factory=list)
    prompts: List[str] = Field(default_factory=list)
    context: AgentContextSettings = Field(default_factory=AgentContextSettings)

    @field_validator("type", mode="before")
    @classmethod
    def _alias_agent_type(cls, v):
        return normalize_agent_type(v)

class AgentConfigurationDocument(CamelModel):
    tools: List[ToolSetting] = Field(default_factory=list)
    prompts: List[AgentPrompt] = Field(default_factory=list)
    agents: List[AgentSettings] = Field(default_factory=list)
    last_saved: Optional[datetime] = None

    def get_agent(self, agent_type: str) -> Optional[AgentSettings]:
        agent_type = normalize_agent_type(agent_type)
        for agent in self.agents:
            if agent.type == agent_type:
                return agent
        return None

    def get_tool(self, name: str) -> Optional[ToolSetting]:
        for tool in self.tools:
            if tool.name == name:
                return tool
        return None

    def get_prompt(self, prompt_id: str) -> Optional[AgentPrompt]:
        for prompt in self.prompts:
            if prompt.id == prompt_id:
                return prompt
        return None

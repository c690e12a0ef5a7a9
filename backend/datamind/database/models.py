from sqlalchemy.orm import declarative_base
from sqlalchemy import Column, String, DateTime, Text, JSON, Boolean, ForeignKey
from datetime import datetime, timezone
import uuid

Base = declarative_base()

def utcnow() -> datetime:
    return datetime.now(timezone.utc)

def new_id() -> str:
    return str(uuid.uuid4())

class User(Base):
    """Platform account"""
    __tablename__ = "users"

    id = Column(String(36), primary_key=True, default=new_id)
    username = Column(String(150), unique=True, nullable=False)
    password_hash = Column(String(255), nullable=False)
    role = Column(String(50), nullable=False, default="user")
    created_at = Column(DateTime(timezone=True), default=utcnow)

class ChatSession(Base):
    """One conversation thread"""
    __tablename__ = "chat_sessions"

    id = Column(String(36), primary_key=True, default=new_id)
    user_id = Column(String(36), ForeignKey("users.id"), index=True, nullable=False)
    title = Column(String(255), nullable=False)
    summary = Column(Text, nullable=True)
    agent_type = Column(String(50), nullable=False, default="query")
    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)
    last_message_at = Column(DateTime(timezone=True), nullable=True)

class ChatMessage(Base):
    """One turn in a session"""
    __tablename__ = "chat_messages"

    id = Column(String(36), primary_key=True, default=new_id)
    session_id = Column(
        String(36), ForeignKey("chat_sessions.id", ondelete="CASCADE"), index=True, nullable=False
    )
    role = Column(String(20), nullable=False)
    content = Column(Text, nullable=False)
    # "metadata" is reserved on declarative classes
    message_metadata = Column("metadata", JSON, nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow)

class Visualization(Base):
    """Chart produced from a query result"""
    __tablename__ = "visualizations"

    id = Column(String(36), primary_key=True, default=new_id)
    message_id = Column(
        String(36), ForeignKey("chat_messages.id", ondelete="CASCADE"), index=True, nullable=False
    )
    user_id = Column(String(36), ForeignKey("users.id"), index=True, nullable=False)
    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    chart_type = Column(String(50), nullable=False)
    chart_config = Column(JSON, nullable=False)
    data = Column(JSON, nullable=True)
    sql_query = Column(Text, nullable=True)
    is_pinned = Column(Boolean, default=False, nullable=False)
    is_published = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime(timezone=True), default=utcnow)

class PinnedVisualization(Base):
    """A visualization saved to a user's dashboard"""
    __tablename__ = "pinned_visualizations"

    id = Column(String(36), primary_key=True, default=new_id)
    user_id = Column(String(36), ForeignKey("users.id"), index=True, nullable=False)
    visualization_id = Column(
        String(36), ForeignKey("visualizations.id", ondelete="CASCADE"), nullable=False
    )
    pinned_at = Column(DateTime(timezone=True), default=utcnow)

class SnowflakeConnection(Base):
    """Stored warehouse credentials"""
    __tablename__ = "snowflake_connections"

    id = Column(String(36), primary_key=True, default=new_id)
    user_id = Column(String(36), ForeignKey("users.id"), index=True, nullable=False)
    name = Column(String(255), nullable=False)
    account = Column(String(255), nullable=False)
    username = Column(String(255), nullable=False)
    password = Column(Text, nullable=False)
    database = Column(String(255), nullable=True)
    schema = Column(String(255), nullable=True)
    warehouse = Column(String(255), nullable=True)
    role = Column(String(255), nullable=True)
    authenticator = Column(String(50), nullable=False, default="SNOWFLAKE")
    is_default = Column(Boolean, default=False, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    last_connected = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

class AgentConfiguration(Base):
    """Saved tool/prompt/agent configuration document"""
    __tablename__ = "agent_configurations"

    id = Column(String(36), primary_key=True, default=new_id)
    user_id = Column(String(36), ForeignKey("users.id"), index=True, nullable=False)
    config_data = Column(JSON, nullable=False)
    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

class AgentContextSnapshot(Base):
    """Persisted agent working state for a chat session"""
    __tablename__ = "agent_contexts"

    session_id = Column(String(36), primary_key=True)
    data = Column(JSON, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

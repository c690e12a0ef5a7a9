from typing import Optional, Dict, Any, List, Tuple
import logging

from sqlalchemy import select, update, delete, desc

from datamind.database.connection import DatabaseManager, db_manager, hash_password
from datamind.database.models import (
    User,
    ChatSession,
    ChatMessage,
    Visualization,
    PinnedVisualization,
    SnowflakeConnection,
    AgentConfiguration,
    utcnow,
)

logger = logging.getLogger(__name__)

_SESSION_FIELDS = {"title", "summary", "agent_type"}
_VISUALIZATION_FLAGS = {"is_pinned", "is_published"}
_CONNECTION_FIELDS = {
    "name", "account", "username", "password", "database", "schema",
    "warehouse", "role", "authenticator", "is_active",
}

class Storage:
    """Relational persistence for users, chats, charts, connections and agent settings"""

    def __init__(self, db: Optional[DatabaseManager] = None):
        self.db = db or db_manager

    # Users

    async def get_user(self, user_id: str) -> Optional[User]:
        async with self.db.get_session() as session:
            return await session.get(User, user_id)

    async def get_user_by_username(self, username: str) -> Optional[User]:
        async with self.db.get_session() as session:
            result = await session.execute(select(User).where(User.username == username))
            return result.scalar_one_or_none()

    async def create_user(self, username: str, password: str, role: str = "user",
                          user_id: Optional[str] = None) -> User:
        user = User(username=username, password_hash=hash_password(password), role=role)
        if user_id:
            user.id = user_id
        async with self.db.get_session() as session:
            session.add(user)
        return user

    # Chat sessions

    async def get_chat_session(self, session_id: str) -> Optional[ChatSession]:
        async with self.db.get_session() as session:
            return await session.get(ChatSession, session_id)

    async def get_chat_sessions_by_user(self, user_id: str) -> List[ChatSession]:
        async with self.db.get_session() as session:
            result = await session.execute(
                select(ChatSession)
                .where(ChatSession.user_id == user_id)
                .order_by(desc(ChatSession.updated_at))
            )
            return list(result.scalars().all())

    async def create_chat_session(self, user_id: str, title: str, agent_type: str = "query",
                                  session_id: Optional[str] = None) -> ChatSession:
        chat_session = ChatSession(user_id=user_id, title=title, agent_type=agent_type)
        if session_id:
            chat_session.id = session_id
        async with self.db.get_session() as session:
            session.add(chat_session)
        return chat_session

    async def update_chat_session(self, session_id: str, updates: Dict[str, Any]) -> Optional[ChatSession]:
        values = {k: v for k, v in updates.items() if k in _SESSION_FIELDS and v is not None}
        values["updated_at"] = utcnow()
        async with self.db.get_session() as session:
            await session.execute(
                update(ChatSession).where(ChatSession.id == session_id).values(**values)
            )
            return await session.get(ChatSession, session_id, populate_existing=True)

    async def touch_chat_session(self, session_id: str) -> None:
        """Record that a message was just exchanged on the session"""
        now = utcnow()
        async with self.db.get_session() as session:
            await session.execute(
                update(ChatSession)
                .where(ChatSession.id == session_id)
                .values(updated_at=now, last_message_at=now)
            )

    async def delete_chat_session(self, session_id: str) -> bool:
        return await self.delete_chat_sessions([session_id]) > 0

    async def delete_chat_sessions(self, session_ids: List[str]) -> int:
        """Delete sessions together with their messages and charts"""
        if not session_ids:
            return 0

        async with self.db.get_session() as session:
            message_ids = select(ChatMessage.id).where(ChatMessage.session_id.in_(session_ids))
            visualization_ids = select(Visualization.id).where(Visualization.message_id.in_(message_ids))

            await session.execute(
                delete(PinnedVisualization).where(
                    PinnedVisualization.visualization_id.in_(visualization_ids)
                )
            )
            await session.execute(delete(Visualization).where(Visualization.message_id.in_(message_ids)))
            await session.execute(delete(ChatMessage).where(ChatMessage.session_id.in_(session_ids)))
            result = await session.execute(delete(ChatSession).where(ChatSession.id.in_(session_ids)))
            deleted = result.rowcount or 0

        logger.info(f"Deleted {deleted} chat session(s)")
        return deleted

    # Messages

    async def get_messages_by_session(self, session_id: str) -> List[ChatMessage]:
        async with self.db.get_session() as session:
            result = await session.execute(
                select(ChatMessage)
                .where(ChatMessage.session_id == session_id)
                .order_by(ChatMessage.created_at)
            )
            return list(result.scalars().all())

    async def create_message(self, session_id: str, role: str, content: str,
                             metadata: Optional[Dict[str, Any]] = None) -> ChatMessage:
        message = ChatMessage(
            session_id=session_id, role=role, content=content, message_metadata=metadata
        )
        async with self.db.get_session() as session:
            session.add(message)
        return message

    # Visualizations

    async def get_visualization(self, visualization_id: str) -> Optional[Visualization]:
        async with self.db.get_session() as session:
            return await session.get(Visualization, visualization_id)

    async def get_visualizations_by_user(self, user_id: str) -> List[Visualization]:
        async with self.db.get_session() as session:
            result = await session.execute(
                select(Visualization)
                .where(Visualization.user_id == user_id)
                .order_by(desc(Visualization.created_at))
            )
            return list(result.scalars().all())

    async def create_visualization(self, message_id: str, user_id: str, title: str, chart_type: str,
                                   chart_config: Dict[str, Any], data: Optional[List[Dict[str, Any]]] = None,
                                   description: Optional[str] = None,
                                   sql_query: Optional[str] = None) -> Visualization:
        visualization = Visualization(
            message_id=message_id,
            user_id=user_id,
            title=title,
            description=description,
            chart_type=chart_type,
            chart_config=chart_config,
            data=data,
            sql_query=sql_query,
        )
        async with self.db.get_session() as session:
            session.add(visualization)
        return visualization

    async def update_visualization(self, visualization_id: str,
                                   updates: Dict[str, Any]) -> Optional[Visualization]:
        """Only the pin and publish flags are mutable"""
        values = {k: bool(v) for k, v in updates.items() if k in _VISUALIZATION_FLAGS and v is not None}
        async with self.db.get_session() as session:
            if values:
                await session.execute(
                    update(Visualization).where(Visualization.id == visualization_id).values(**values)
                )
            return await session.get(Visualization, visualization_id, populate_existing=True)

    async def delete_visualization(self, visualization_id: str) -> bool:
        async with self.db.get_session() as session:
            await session.execute(
                delete(PinnedVisualization).where(PinnedVisualization.visualization_id == visualization_id)
            )
            result = await session.execute(delete(Visualization).where(Visualization.id == visualization_id))
            return (result.rowcount or 0) > 0

    # Pins and publishing

    async def get_pinned_visualizations_by_user(self, user_id: str) -> List[Tuple[PinnedVisualization, Visualization]]:
        async with self.db.get_session() as session:
            result = await session.execute(
                select(PinnedVisualization, Visualization)
                .join(Visualization, PinnedVisualization.visualization_id == Visualization.id)
                .where(PinnedVisualization.user_id == user_id)
                .order_by(desc(PinnedVisualization.pinned_at))
            )
            return [(pin, visualization) for pin, visualization in result.all()]

    async def pin_visualization(self, user_id: str, visualization_id: str) -> PinnedVisualization:
        """Pin a chart for a user; pinning twice returns the existing pin"""
        async with self.db.get_session() as session:
            result = await session.execute(
                select(PinnedVisualization).where(
                    PinnedVisualization.user_id == user_id,
                    PinnedVisualization.visualization_id == visualization_id,
                )
            )
            existing = result.scalar_one_or_none()
            if existing is not None:
                return existing

            pin = PinnedVisualization(user_id=user_id, visualization_id=visualization_id)
            session.add(pin)
            await session.execute(
                update(Visualization).where(Visualization.id == visualization_id).values(is_pinned=True)
            )
            return pin

    async def unpin_visualization(self, user_id: str, visualization_id: str) -> bool:
        async with self.db.get_session() as session:
            result = await session.execute(
                delete(PinnedVisualization).where(
                    PinnedVisualization.user_id == user_id,
                    PinnedVisualization.visualization_id == visualization_id,
                )
            )
            removed = (result.rowcount or 0) > 0
            if removed:
                await session.execute(
                    update(Visualization).where(Visualization.id == visualization_id).values(is_pinned=False)
                )
            return removed

    async def get_published_visualizations(self) -> List[Visualization]:
        async with self.db.get_session() as session:
            result = await session.execute(
                select(Visualization)
                .where(Visualization.is_published.is_(True))
                .order_by(desc(Visualization.created_at))
            )
            return list(result.scalars().all())

    # Snowflake connections

    async def get_snowflake_connections(self, user_id: str) -> List[SnowflakeConnection]:
        async with self.db.get_session() as session:
            result = await session.execute(
                select(SnowflakeConnection)
                .where(SnowflakeConnection.user_id == user_id)
                .order_by(desc(SnowflakeConnection.is_default), desc(SnowflakeConnection.updated_at))
            )
            return list(result.scalars().all())

    async def get_snowflake_connection(self, connection_id: str) -> Optional[SnowflakeConnection]:
        async with self.db.get_session() as session:
            return await session.get(SnowflakeConnection, connection_id)

    async def get_default_snowflake_connection(self, user_id: str) -> Optional[SnowflakeConnection]:
        async with self.db.get_session() as session:
            result = await session.execute(
                select(SnowflakeConnection).where(
                    SnowflakeConnection.user_id == user_id,
                    SnowflakeConnection.is_default.is_(True),
                    SnowflakeConnection.is_active.is_(True),
                )
            )
            return result.scalars().first()

    async def create_snowflake_connection(self, user_id: str, values: Dict[str, Any],
                                          is_default: bool = False) -> SnowflakeConnection:
        """Store credentials; a user's first connection becomes the default"""
        fields = {k: v for k, v in values.items() if k in _CONNECTION_FIELDS}
        async with self.db.get_session() as session:
            result = await session.execute(
                select(SnowflakeConnection.id).where(SnowflakeConnection.user_id == user_id)
            )
            first = result.first() is None
            make_default = is_default or first
            if make_default and not first:
                await session.execute(
                    update(SnowflakeConnection)
                    .where(SnowflakeConnection.user_id == user_id)
                    .values(is_default=False)
                )
            connection = SnowflakeConnection(user_id=user_id, is_default=make_default, **fields)
            session.add(connection)
        return connection

    async def update_snowflake_connection(self, connection_id: str,
                                          updates: Dict[str, Any]) -> Optional[SnowflakeConnection]:
        values = {k: v for k, v in updates.items() if k in _CONNECTION_FIELDS and v is not None}
        values["updated_at"] = utcnow()
        async with self.db.get_session() as session:
            await session.execute(
                update(SnowflakeConnection).where(SnowflakeConnection.id == connection_id).values(**values)
            )
            return await session.get(SnowflakeConnection, connection_id, populate_existing=True)

    async def delete_snowflake_connection(self, connection_id: str) -> bool:
        async with self.db.get_session() as session:
            result = await session.execute(
                delete(SnowflakeConnection).where(SnowflakeConnection.id == connection_id)
            )
            return (result.rowcount or 0) > 0

    async def set_default_snowflake_connection(self, user_id: str, connection_id: str) -> bool:
        async with self.db.get_session() as session:
            connection = await session.get(SnowflakeConnection, connection_id)
            if connection is None or connection.user_id != user_id:
                return False
            await session.execute(
                update(SnowflakeConnection)
                .where(SnowflakeConnection.user_id == user_id)
                .values(is_default=False)
            )
            await session.execute(
                update(SnowflakeConnection)
                .where(SnowflakeConnection.id == connection_id)
                .values(is_default=True, updated_at=utcnow())
            )
            return True

    async def mark_snowflake_connected(self, connection_id: str) -> None:
        async with self.db.get_session() as session:
            await session.execute(
                update(SnowflakeConnection)
                .where(SnowflakeConnection.id == connection_id)
                .values(last_connected=utcnow())
            )

    # Agent configuration

    async def get_agent_configuration(self, user_id: str) -> Optional[AgentConfiguration]:
        async with self.db.get_session() as session:
            result = await session.execute(
                select(AgentConfiguration)
                .where(AgentConfiguration.user_id == user_id)
                .order_by(desc(AgentConfiguration.updated_at))
            )
            return result.scalars().first()

    async def save_agent_configuration(self, user_id: str, config_data: Dict[str, Any]) -> AgentConfiguration:
        async with self.db.get_session() as session:
            result = await session.execute(
                select(AgentConfiguration)
                .where(AgentConfiguration.user_id == user_id)
                .order_by(desc(AgentConfiguration.updated_at))
            )
            existing = result.scalars().first()
            if existing is not None:
                existing.config_data = config_data
                existing.updated_at = utcnow()
                return existing

            configuration = AgentConfiguration(user_id=user_id, config_data=config_data)
            session.add(configuration)
            return configuration

"""Per-session working state for the agent dispatcher.

Contexts live behind a ``SessionStore`` so the backing can be swapped
between process memory and the application database. Callers that mutate a
context while handling a chat turn hold ``session_lock(session_id)`` so two
messages on the same session never interleave.
"""
from dataclasses import dataclass, field, asdict, fields
from datetime import datetime, timezone
from typing import Optional, Dict, Any, List
import asyncio
import logging

from datamind.config import settings
from datamind.database.connection import DatabaseManager
from datamind.database.models import AgentContextSnapshot, utcnow

logger = logging.getLogger(__name__)

@dataclass
class HistoryEntry:
    role: str
    content: str
    function_name: Optional[str] = None
    timestamp: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())

@dataclass
class AgentContext:
    session_id: str
    user_id: str
    connection_id: Optional[str] = None
    current_database: Optional[str] = None
    current_schema: Optional[str] = None
    current_stage: Optional[str] = None
    tables: List[str] = field(default_factory=list)
    stages: List[str] = field(default_factory=list)
    yaml_content: Optional[str] = None
    yaml_filename: Optional[str] = None
    last_query_sql: Optional[str] = None
    last_query_columns: List[str] = field(default_factory=list)
    last_query_results: List[Dict[str, Any]] = field(default_factory=list)
    last_query_execution_ms: Optional[float] = None
    # Successful execute_sql runs; lets a turn tell whether it ran a query
    query_runs: int = 0
    history: List[HistoryEntry] = field(default_factory=list)
    # Chart built during the current turn; never persisted
    pending_visualization: Optional[Dict[str, Any]] = None

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data.pop("pending_visualization", None)
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AgentContext":
        known = {f.name for f in fields(cls)} - {"pending_visualization"}
        values = {k: v for k, v in data.items() if k in known}
        values["history"] = [HistoryEntry(**h) for h in values.get("history") or []]
        return cls(**values)

class SessionStore:
    """Storage contract for agent contexts"""

    async def get(self, session_id: str) -> Optional[AgentContext]:
        raise NotImplementedError

    async def put(self, context: AgentContext) -> None:
        raise NotImplementedError

    async def delete(self, session_id: str) -> None:
        raise NotImplementedError

class InMemorySessionStore(SessionStore):
    def __init__(self):
        self._contexts: Dict[str, AgentContext] = {}

    async def get(self, session_id: str) -> Optional[AgentContext]:
        return self._contexts.get(session_id)

    async def put(self, context: AgentContext) -> None:
        self._contexts[context.session_id] = context

    async def delete(self, session_id: str) -> None:
        self._contexts.pop(session_id, None)

    def __len__(self):
        return len(self._contexts)

class SqlSessionStore(SessionStore):
    """Keeps JSON snapshots of contexts in the agent_contexts table"""

    def __init__(self, db: DatabaseManager):
        self.db = db

    async def get(self, session_id: str) -> Optional[AgentContext]:
        async with self.db.get_session() as session:
            snapshot = await session.get(AgentContextSnapshot, session_id)
            if snapshot is None:
                return None
            return AgentContext.from_dict(snapshot.data)

    async def put(self, context: AgentContext) -> None:
        async with self.db.get_session() as session:
            snapshot = await session.get(AgentContextSnapshot, context.session_id)
            if snapshot is None:
                session.add(AgentContextSnapshot(session_id=context.session_id, data=context.to_dict()))
            else:
                snapshot.data = context.to_dict()
                snapshot.updated_at = utcnow()

    async def delete(self, session_id: str) -> None:
        async with self.db.get_session() as session:
            snapshot = await session.get(AgentContextSnapshot, session_id)
            if snapshot is not None:
                await session.delete(snapshot)

class AgentContextManager:
    """Creates, mutates and summarises agent contexts"""

    def __init__(self, store: Optional[SessionStore] = None, connector=None,
                 history_limit: Optional[int] = None):
        self.store = store or InMemorySessionStore()
        # async callable(context) -> None, used to log in on context creation
        self.connector = connector
        self.history_limit = history_limit or settings.CONTEXT_HISTORY_LIMIT
        self._locks: Dict[str, asyncio.Lock] = {}

    def session_lock(self, session_id: str) -> asyncio.Lock:
        lock = self._locks.get(session_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[session_id] = lock
        return lock

    async def get_context(self, session_id: str, user_id: str) -> AgentContext:
        context = await self.store.get(session_id)
        if context is not None:
            return context

        context = AgentContext(session_id=session_id, user_id=user_id)
        if self.connector is not None:
            try:
                await self.connector(context)
            except Exception as e:
                logger.warning(f"Automatic Snowflake connection failed for session {session_id}: {e}")
        await self.store.put(context)
        logger.info(f"Created agent context for session {session_id}")
        return context

    async def update_context(self, context: AgentContext, **changes) -> AgentContext:
        for key, value in changes.items():
            if not hasattr(context, key):
                raise AttributeError(f"AgentContext has no field {key!r}")
            setattr(context, key, value)
        await self.store.put(context)
        return context

    async def add_to_history(self, context: AgentContext, role: str, content: str,
                             function_name: Optional[str] = None) -> AgentContext:
        context.history.append(HistoryEntry(role=role, content=content, function_name=function_name))
        if len(context.history) > self.history_limit:
            context.history = context.history[-self.history_limit:]
        await self.store.put(context)
        return context

    def pop_pending_visualization(self, context: AgentContext) -> Optional[Dict[str, Any]]:
        visualization = context.pending_visualization
        context.pending_visualization = None
        return visualization

    def release_lock(self, session_id: str) -> None:
        """Forget an idle session's lock; a busy one is kept for its holder"""
        lock = self._locks.get(session_id)
        if lock is not None and not lock.locked():
            del self._locks[session_id]

    async def clear_context(self, session_id: str) -> None:
        await self.store.delete(session_id)
        self.release_lock(session_id)

    @staticmethod
    def get_context_summary(context: AgentContext) -> str:
        parts = []
        if context.connection_id:
            parts.append("Connected to Snowflake")
        if context.current_database:
            parts.append(f"Database: {context.current_database}")
        if context.current_schema:
            parts.append(f"Schema: {context.current_schema}")
        if context.current_stage:
            parts.append(f"Stage: {context.current_stage}")
        if context.tables:
            parts.append(f"Tables loaded: {len(context.tables)}")
        if context.last_query_results:
            parts.append(f"Last query returned {len(context.last_query_results)} rows")
        if context.yaml_content:
            parts.append("YAML dictionary loaded")
        return " | ".join(parts) if parts else "No active context"

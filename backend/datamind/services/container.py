from dataclasses import dataclass
from typing import Optional
import logging

from datamind.agents.context import AgentContextManager, InMemorySessionStore, SessionStore, SqlSessionStore
from datamind.agents.dispatcher import AgentService
from datamind.config import settings
from datamind.database.connection import DatabaseManager, db_manager
from datamind.database.storage import Storage
from datamind.services.agent_configuration import AgentConfigurationService
from datamind.services.llm_service import LLMService
from datamind.services.snowflake_service import SnowflakeService
from datamind.services.visualization_service import VisualizationService
from datamind.tools import FunctionToolRegistry, ToolEnvironment, build_registry
from datamind.tools.connection_tools import connect_to_snowflake

logger = logging.getLogger(__name__)

@dataclass
class ServiceContainer:
    db: DatabaseManager
    storage: Storage
    snowflake: SnowflakeService
    llm: LLMService
    visualizer: VisualizationService
    contexts: AgentContextManager
    registry: FunctionToolRegistry
    configurations: AgentConfigurationService
    agent_service: AgentService

def build_container(
    db: Optional[DatabaseManager] = None,
    snowflake=None,
    llm=None,
    store: Optional[SessionStore] = None,
) -> ServiceContainer:
    """Wire the application services together"""
    db = db or db_manager
    storage = Storage(db)
    snowflake = snowflake or SnowflakeService()
    llm = llm or LLMService()
    visualizer = VisualizationService()

    if store is None:
        store = SqlSessionStore(db) if settings.CONTEXT_STORE == "database" else InMemorySessionStore()
    contexts = AgentContextManager(store)

    env = ToolEnvironment(
        snowflake=snowflake,
        storage=storage,
        llm=llm,
        contexts=contexts,
        visualizer=visualizer,
    )
    registry = build_registry(env)

    async def auto_connect(context):
        message = await connect_to_snowflake(env, context, {})
        logger.debug(f"Auto-connect for {context.session_id}: {message.splitlines()[0]}")

    contexts.connector = auto_connect

    configurations = AgentConfigurationService(storage)
    agent_service = AgentService(contexts, registry, configurations, llm)
    logger.info(f"Services ready ({len(registry.names)} tools, {type(store).__name__})")

    return ServiceContainer(
        db=db,
        storage=storage,
        snowflake=snowflake,
        llm=llm,
        visualizer=visualizer,
        contexts=contexts,
        registry=registry,
        configurations=configurations,
        agent_service=agent_service,
    )

_container: Optional[ServiceContainer] = None

def get_container() -> ServiceContainer:
    """Get or create the process-wide service container"""
    global _container
    if _container is None:
        _container = build_container()
    return _container

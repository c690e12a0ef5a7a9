from fastapi import Depends, FastAPI
from contextlib import asynccontextmanager

from datamind.api.middleware.cors import setup_cors
from datamind.api.middleware.error_handler import setup_error_handlers
from datamind.api.routes import agent_config, chat, sessions, snowflake, users, visualizations
from datamind.config import settings
from datamind.services.container import ServiceContainer, get_container
from datamind.utils.logger import quiet_library_loggers, setup_logger

logger = setup_logger(__name__)

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Manage application lifecycle"""
    logger.info(f"Starting {settings.PROJECT_NAME}...")
    logger.info(f"OpenAI configuration present: {settings.has_openai_config}")

    container = get_container()
    await container.db.initialize()

    yield

    logger.info(f"Shutting down {settings.PROJECT_NAME}...")
    await container.snowflake.close_all()
    await container.db.close()

def create_app() -> FastAPI:
    app = FastAPI(
        title=settings.PROJECT_NAME,
        description="Chat with your Snowflake data through specialised AI agents",
        version=settings.VERSION,
        lifespan=lifespan
    )

    if settings.LOG_LEVEL.upper() != "DEBUG":
        quiet_library_loggers()

    setup_cors(app)
    setup_error_handlers(app)

    api = settings.API_PREFIX
    app.include_router(chat.router, tags=["chat"])
    app.include_router(sessions.router, prefix=api, tags=["sessions"])
    app.include_router(visualizations.router, prefix=api, tags=["visualizations"])
    app.include_router(snowflake.router, prefix=f"{api}/snowflake", tags=["snowflake"])
    app.include_router(agent_config.router, prefix=f"{api}/agent-config", tags=["agent-config"])
    app.include_router(users.router, prefix=f"{api}/users", tags=["users"])

    @app.get("/health")
    async def health_check(container: ServiceContainer = Depends(get_container)):
        """Health check endpoint"""
        health_status = {
            "status": "healthy",
            "services": {
                "api": "operational",
                "snowflake_connections": container.snowflake.active_connection_count(),
                "openai_configured": container.llm.is_configured,
                "models": container.llm.get_available_models(),
            }
        }
        if not container.llm.is_configured:
            health_status["status"] = "degraded"
        return health_status

    return app

app = create_app()

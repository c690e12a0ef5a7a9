from pydantic_settings import BaseSettings
from typing import List
import os
from dotenv import load_dotenv
import logging

load_dotenv()
logger = logging.getLogger(__name__)

class Settings(BaseSettings):
    """Application settings"""

    # API Configuration
    API_PREFIX: str = "/api"
    PROJECT_NAME: str = "DataMind"
    VERSION: str = "1.0.0"

    # Application database
    DATABASE_URL: str = os.getenv("DATABASE_URL", "sqlite+aiosqlite:///./data/datamind.db")
    DEFAULT_USER_ID: str = os.getenv("DEFAULT_USER_ID", "user_1")
    DEFAULT_USERNAME: str = os.getenv("DEFAULT_USERNAME", "demo")

    # OpenAI
    OPENAI_API_KEY: str = os.getenv("OPENAI_API_KEY", "")
    OPENAI_MODEL: str = os.getenv("OPENAI_MODEL", "gpt-4o")
    OPENAI_TEMPERATURE: float = float(os.getenv("OPENAI_TEMPERATURE", "0.2"))

    # Azure OpenAI (used instead of OpenAI when fully configured)
    AZURE_OPENAI_API_KEY: str = os.getenv("AZURE_OPENAI_API_KEY", "")
    AZURE_OPENAI_ENDPOINT: str = os.getenv("AZURE_OPENAI_ENDPOINT", "")
    AZURE_OPENAI_DEPLOYMENT_NAME: str = os.getenv("AZURE_OPENAI_DEPLOYMENT_NAME", "")
    AZURE_OPENAI_API_VERSION: str = os.getenv("AZURE_OPENAI_API_VERSION", "2024-02-15-preview")

    # Agent context
    CONTEXT_STORE: str = os.getenv("CONTEXT_STORE", "memory")
    CONTEXT_HISTORY_LIMIT: int = 50
    LLM_HISTORY_WINDOW: int = 10
    QUERY_PREVIEW_ROWS: int = 10
    SCHEMA_CONTEXT_TABLES: int = 3

    # Snowflake
    SNOWFLAKE_LOGIN_TIMEOUT: int = int(os.getenv("SNOWFLAKE_LOGIN_TIMEOUT", "30"))

    # CORS
    ALLOWED_ORIGINS: List[str] = [
        "http://localhost:3000",
        "http://localhost:5000",
        "http://localhost:5173",
        "http://127.0.0.1:5173",
    ]

    # Logging
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")

    @property
    def has_azure_openai_config(self) -> bool:
        """Check if an Azure OpenAI deployment is configured"""
        return bool(
            self.AZURE_OPENAI_API_KEY
            and self.AZURE_OPENAI_ENDPOINT
            and self.AZURE_OPENAI_DEPLOYMENT_NAME
        )

    @property
    def has_openai_config(self) -> bool:
        """Check if any LLM configuration is available"""
        return bool(self.OPENAI_API_KEY) or self.has_azure_openai_config

    class Config:
        env_file = ".env"
        case_sensitive = True
        extra = "ignore"

settings = Settings()

if not settings.has_openai_config:
    logger.warning("No OpenAI or Azure OpenAI configuration found; agents will use fallback replies")

from typing import Optional
import logging
import os
import secrets
from contextlib import asynccontextmanager

from passlib.context import CryptContext
from sqlalchemy import event, select
from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.pool import StaticPool

from datamind.config import settings
from datamind.database.models import Base, User

logger = logging.getLogger(__name__)

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")

def hash_password(password: str) -> str:
    return pwd_context.hash(password)

class DatabaseManager:
    """Manage the application database engine and sessions"""

    def __init__(self, database_url: Optional[str] = None):
        self.database_url = database_url or settings.DATABASE_URL
        self._engine: Optional[AsyncEngine] = None
        self._session_factory: Optional[async_sessionmaker] = None

    @property
    def is_sqlite(self) -> bool:
        return make_url(self.database_url).get_backend_name() == "sqlite"

    def _create_engine(self) -> AsyncEngine:
        url = make_url(self.database_url)

        if not self.is_sqlite:
            return create_async_engine(
                self.database_url,
                echo=False,
                pool_pre_ping=True,
                pool_size=10,
                max_overflow=20
            )

        kwargs = {"connect_args": {"check_same_thread": False}}
        if not url.database or url.database == ":memory:":
            # A single shared connection keeps an in-memory database alive
            kwargs["poolclass"] = StaticPool
        else:
            directory = os.path.dirname(url.database)
            if directory:
                os.makedirs(directory, exist_ok=True)

        engine = create_async_engine(self.database_url, echo=False, **kwargs)

        @event.listens_for(engine.sync_engine, "connect")
        def _enable_foreign_keys(dbapi_connection, connection_record):
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()

        return engine

    async def initialize(self):
        """Create the engine, the tables and the default user"""
        if self._engine is not None:
            return

        try:
            self._engine = self._create_engine()
            self._session_factory = async_sessionmaker(
                bind=self._engine,
                class_=AsyncSession,
                expire_on_commit=False
            )

            async with self._engine.begin() as conn:
                await conn.run_sync(Base.metadata.create_all)

            await self._seed_default_user()
            logger.info(f"Database initialized ({make_url(self.database_url).get_backend_name()})")

        except Exception as e:
            logger.error(f"Failed to initialize database: {str(e)}")
            raise

    async def _seed_default_user(self):
        async with self.get_session() as session:
            existing = await session.get(User, settings.DEFAULT_USER_ID)
            if existing is None:
                taken = await session.execute(
                    select(User).where(User.username == settings.DEFAULT_USERNAME)
                )
                if taken.scalar_one_or_none() is None:
                    session.add(User(
                        id=settings.DEFAULT_USER_ID,
                        username=settings.DEFAULT_USERNAME,
                        password_hash=hash_password(secrets.token_urlsafe(16)),
                        role="admin"
                    ))
                    logger.info(f"Seeded default user {settings.DEFAULT_USER_ID}")

    async def close(self):
        """Dispose of the engine"""
        if self._engine:
            await self._engine.dispose()
            self._engine = None
            self._session_factory = None
            logger.info("Database connection closed")

    @asynccontextmanager
    async def get_session(self):
        """Yield a session that commits on success and rolls back on error"""
        if self._session_factory is None:
            await self.initialize()

        async with self._session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

db_manager = DatabaseManager()

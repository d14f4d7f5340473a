from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import declarative_base
from sqlalchemy.orm.exc import StaleDataError
from sqlalchemy.pool import NullPool, StaticPool
from app.common.exceptions import ConflictError, EngineError, UnexpectedError
from app.core.config import settings
import logging

logger = logging.getLogger(__name__)

Base = declarative_base()


class Database:
    """
    Process-wide connection pool.

    The engine is created once by ``init()`` (application startup) and reused by
    every request; ``dispose()`` releases the pool at shutdown.
    """

    def __init__(self):
        self._engine: Optional[AsyncEngine] = None
        self._sessionmaker: Optional[async_sessionmaker] = None

    @property
    def engine(self) -> AsyncEngine:
        if self._engine is None:
            raise RuntimeError("Database not initialised. Call Database.init() on startup.")
        return self._engine

    @property
    def is_initialised(self) -> bool:
        return self._engine is not None

    def init(self, url: Optional[str] = None, **engine_kwargs) -> AsyncEngine:
        """Create the engine once; later calls return the existing engine."""
        if self._engine is not None:
            return self._engine

        url = url or settings.async_database_url
        if url.startswith("sqlite"):
            # In-memory SQLite must share a single connection across the pool
            engine_kwargs.setdefault("poolclass", StaticPool)
            engine_kwargs.setdefault("connect_args", {"check_same_thread": False})
        elif settings.ENVIRONMENT == "test":
            engine_kwargs.setdefault("poolclass", NullPool)
        else:
            engine_kwargs.setdefault("pool_pre_ping", True)
            engine_kwargs.setdefault("pool_size", settings.DB_POOL_SIZE)
            engine_kwargs.setdefault("max_overflow", settings.DB_MAX_OVERFLOW)

        self._engine = create_async_engine(url, echo=False, **engine_kwargs)
        self._sessionmaker = async_sessionmaker(
            self._engine,
            class_=AsyncSession,
            expire_on_commit=False,
            autoflush=False
        )
        logger.info(f"Database engine initialised ({self._engine.url.get_backend_name()})")
        return self._engine

    async def create_all(self):
        """Create tables (development, tests and the seed script)."""
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    async def drop_all(self):
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.drop_all)

    async def dispose(self):
        if self._engine is not None:
            await self._engine.dispose()
            logger.info("Database engine disposed")
        self._engine = None
        self._sessionmaker = None

    @property
    def sessionmaker(self) -> async_sessionmaker:
        if self._sessionmaker is None:
            raise RuntimeError("Database not initialised. Call Database.init() on startup.")
        return self._sessionmaker


database = Database()


# Async dependency for application endpoints
async def get_async_db() -> AsyncIterator[AsyncSession]:
    """Genera una sesión de base de datos asíncrona para endpoints."""
    async with database.sessionmaker() as session:
        try:
            yield session
        except Exception as e:
            logger.error(f"Database error: {e}")
            await session.rollback()
            raise


@asynccontextmanager
async def transaction(session: AsyncSession, action: str):
    """
    Unit of work for one service operation: commit on exit, otherwise roll back
    and classify the failure (typed errors pass through untouched).
    """
    try:
        yield session
        await session.commit()
    except EngineError:
        await session.rollback()
        raise
    except StaleDataError as e:
        await session.rollback()
        logger.warning(f"Conflicto de versión al {action}: {e}")
        raise ConflictError() from e
    except IntegrityError as e:
        await session.rollback()
        logger.warning(f"Violación de integridad al {action}: {e.orig}")
        raise ConflictError(f"Conflicto al {action}") from e
    except SQLAlchemyError as e:
        await session.rollback()
        logger.exception(f"Error de base de datos al {action}")
        raise UnexpectedError(f"Error al {action}") from e

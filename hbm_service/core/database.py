"""
Database configuration and session management

The engine is created lazily so that importing models and services never
opens a connection pool (unit tests run against mocked repositories).
"""
from contextlib import asynccontextmanager
from functools import lru_cache

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.orm import declarative_base

from hbm_service.core.config import settings

Base = declarative_base()


def _pool_config() -> dict:
    if settings.ENVIRONMENT == "production":
        return {
            "pool_size": settings.DB_POOL_SIZE,
            "max_overflow": settings.DB_MAX_OVERFLOW,
            "pool_recycle": settings.DB_POOL_RECYCLE,
            "pool_pre_ping": True,  # Verify connections before use
        }
    return {
        "pool_size": 2,
        "max_overflow": 5,
        "pool_pre_ping": True,
    }


@lru_cache(maxsize=1)
def get_engine() -> AsyncEngine:
    return create_async_engine(
        settings.DATABASE_URL,
        echo=settings.DEBUG,
        **_pool_config(),
    )


@lru_cache(maxsize=1)
def get_session_factory() -> async_sessionmaker:
    return async_sessionmaker(
        get_engine(),
        class_=AsyncSession,
        expire_on_commit=False,
    )


@asynccontextmanager
async def get_db_session():
    """
    Context manager for database sessions.

    Commits on success and rolls back on any exception, which is re-raised.
    A service call that fails an authorization or validation check therefore
    leaves nothing behind even if a repository had already flushed.

    Usage:
        async with get_db_session() as db:
            orders = OrderService(
                OrderRepository(db), CustomerRepository(db), OrderTypeRepository(db), ProductVariantRepository(db)
            )
            await orders.transition_order_status(context, order_id, request)
    """
    async with get_session_factory()() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()

"""데이터베이스 연결 헬퍼(Database connection helpers).

Engines and session factories are created explicitly and carried by the caller
(see ``nvd_sync.app.context.SyncContext`` and the read API's app state).
"""
from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING, AsyncIterator

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, create_async_engine
from sqlalchemy.orm import sessionmaker

from .errors import StorageUnavailableError
from .logger import get_logger
from .schema import metadata

if TYPE_CHECKING:  # pragma: no cover - typing only
    from .config import Settings

logger = get_logger(__name__)


def create_engine(settings: "Settings") -> AsyncEngine:
    """비동기 엔진 생성(Create the async engine from settings)."""

    logger.info("Initializing async engine")
    return create_async_engine(settings.postgres_dsn, future=True, echo=False, pool_pre_ping=True)


def create_session_factory(engine: AsyncEngine) -> sessionmaker:
    """세션 팩토리 생성(Create a session factory bound to the engine)."""

    return sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


async def create_schema(engine: AsyncEngine) -> None:
    """테이블 생성(Create tables that do not exist yet)."""

    async with engine.begin() as conn:
        await conn.run_sync(metadata.create_all)


async def check_connectivity(engine: AsyncEngine, timeout: float = 3.0) -> bool:
    """Check database connectivity with ``SELECT 1``; never raises."""

    try:
        await asyncio.wait_for(_ping(engine), timeout=timeout)
        return True
    except asyncio.TimeoutError:
        logger.warning("Database connectivity check timed out after %.1fs", timeout)
        return False
    except Exception as exc:
        logger.warning("Database connectivity check failed: %s", exc)
        return False


async def ensure_connectivity(engine: AsyncEngine, timeout: float = 3.0) -> None:
    """연결 불가 시 예외 발생(Raise StorageUnavailableError when unreachable)."""

    if not await check_connectivity(engine, timeout=timeout):
        raise StorageUnavailableError("connectivity check failed")


async def _ping(engine: AsyncEngine) -> None:
    async with engine.connect() as conn:
        await conn.execute(text("SELECT 1"))


@asynccontextmanager
async def session_scope(session_factory: sessionmaker) -> AsyncIterator[AsyncSession]:
    """세션 컨텍스트 관리자(Session context manager).

    Rolls back and re-raises on error; always closes the session.
    """

    session: AsyncSession = session_factory()
    try:
        yield session
    except Exception:
        try:
            await session.rollback()
        except Exception as rollback_exc:  # pragma: no cover - connection already gone
            logger.warning("Rollback after session error failed: %s", rollback_exc)
        raise
    finally:
        await _safe_close(session)


async def _safe_close(session: AsyncSession) -> None:
    """Close session with timeout to avoid hanging on network issues."""

    try:
        await asyncio.wait_for(session.close(), timeout=1.0)
    except asyncio.TimeoutError:
        logger.info("Database session close timed out; ignoring.")
    except Exception as exc:
        logger.info("Database session close failed; ignoring: %s", exc)

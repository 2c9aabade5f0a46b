#!/usr/bin/env python3
"""데이터베이스 초기화 스크립트(Database initialization script)."""
import asyncio
import sys

from common_lib.config import get_settings
from common_lib.db import check_connectivity, create_engine, create_schema
from common_lib.logger import get_logger

logger = get_logger(__name__)


async def init_database() -> int:
    """데이터베이스 초기화(Initialize database)."""
    settings = get_settings()
    engine = create_engine(settings)
    try:
        if not await check_connectivity(engine, timeout=settings.db_connect_timeout):
            print("✗ Database is unreachable; check NS_POSTGRES_DSN")
            return 1
        await create_schema(engine)
        print("✓ Database initialized successfully")
        return 0
    finally:
        await engine.dispose()


if __name__ == "__main__":
    sys.exit(asyncio.run(init_database()))

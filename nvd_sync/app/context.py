"""동기화 실행 컨텍스트(Synchronization runtime context).

Built once at process start and handed to every component, so nothing in the
engine reaches for module-level engines, clients or settings.
"""
from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Optional

import httpx
from sqlalchemy.ext.asyncio import AsyncEngine
from sqlalchemy.orm import sessionmaker

from common_lib.config import Settings
from common_lib.db import create_engine, create_session_factory
from common_lib.logger import get_logger
from common_lib.retry_config import FeedRetryPolicy, SleepFn

from .service import NVDFetcher, build_http_client

logger = get_logger(__name__)


@dataclass
class SyncContext:
    """Shared resources for one sync process."""

    settings: Settings
    engine: AsyncEngine
    session_factory: sessionmaker
    http_client: httpx.AsyncClient
    retry_policy: FeedRetryPolicy
    fetcher: NVDFetcher

    @classmethod
    def create(
        cls,
        settings: Settings,
        *,
        engine: Optional[AsyncEngine] = None,
        http_client: Optional[httpx.AsyncClient] = None,
        sleep: SleepFn = asyncio.sleep,
    ) -> "SyncContext":
        if engine is None:
            engine = create_engine(settings)
        if http_client is None:
            http_client = build_http_client(settings)
        retry_policy = FeedRetryPolicy.from_settings(settings, sleep=sleep)
        fetcher = NVDFetcher(
            http_client,
            retry_policy,
            api_url=settings.nvd_api_url,
            results_per_page=settings.nvd_results_per_page,
        )
        return cls(
            settings=settings,
            engine=engine,
            session_factory=create_session_factory(engine),
            http_client=http_client,
            retry_policy=retry_policy,
            fetcher=fetcher,
        )

    async def aclose(self) -> None:
        """HTTP 클라이언트와 엔진 정리(Close the HTTP client and dispose the engine)."""

        await self.http_client.aclose()
        await self.engine.dispose()
        logger.info("Sync context closed")

"""NVD 동기화 서비스 엔트리포인트(NVD sync service entrypoint)."""
from __future__ import annotations

import asyncio
from typing import Any, Dict, Optional

from fastapi import FastAPI

from common_lib.config import Settings, get_settings
from common_lib.logger import get_logger

from .context import SyncContext
from .scheduler import SyncScheduler

logger = get_logger(__name__)


def create_app(settings: Optional[Settings] = None, context: Optional[SyncContext] = None) -> FastAPI:
    """스케줄러를 품은 앱 생성(Build the app that hosts the sync scheduler)."""

    app = FastAPI(title="NVDSync")
    app.state.settings = settings or get_settings()
    app.state.context = context
    app.state.scheduler = None
    app.state.task = None

    @app.on_event("startup")
    async def startup_event() -> None:
        """서비스 시작 시 스케줄러 초기화(Initialize scheduler on startup)."""

        if app.state.context is None:
            app.state.context = SyncContext.create(app.state.settings)
        app.state.scheduler = SyncScheduler(app.state.context)
        app.state.task = asyncio.create_task(app.state.scheduler.start())
        logger.info("NVD sync scheduler started")

    @app.on_event("shutdown")
    async def shutdown_event() -> None:
        """서비스 종료 시 스케줄러 중지(Stop scheduler on shutdown)."""

        if app.state.scheduler is not None:
            await app.state.scheduler.stop()
        if app.state.task is not None:
            # a cycle in flight is cancelled rather than awaited
            app.state.task.cancel()
            await asyncio.gather(app.state.task, return_exceptions=True)
        if app.state.context is not None:
            await app.state.context.aclose()
        logger.info("NVD sync scheduler stopped")

    @app.get("/health", tags=["health"])
    async def health_check() -> Dict[str, Any]:
        """헬스체크 엔드포인트(Health check endpoint)."""

        scheduler = app.state.scheduler
        return {
            "status": "ok",
            "scheduler": scheduler.status() if scheduler is not None else None,
        }

    return app


app = create_app()

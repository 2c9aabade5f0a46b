"""QueryAPI FastAPI 애플리케이션(QueryAPI FastAPI application)."""
from __future__ import annotations

import uuid
from typing import Any, AsyncIterator, Optional

from fastapi import Depends, FastAPI, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession
from starlette.middleware.base import BaseHTTPMiddleware

from common_lib.config import Settings, get_settings
from common_lib.db import create_engine, create_session_factory, session_scope
from common_lib.errors import AppException, ExternalServiceError
from common_lib.logger import get_logger
from common_lib.observability import correlation_id_ctx

from .models import CVEDetail, CVEListResponse, ListFilters
from .repository import QueryRepository
from .service import QueryService

logger = get_logger(__name__)


class RequestIDMiddleware(BaseHTTPMiddleware):
    """요청 ID 추적 미들웨어(Middleware for request ID tracking and correlation)."""

    async def dispatch(self, request: Request, call_next: Any) -> Any:
        request_id = request.headers.get("X-Request-ID", str(uuid.uuid4()))
        token = correlation_id_ctx.set(request_id)
        try:
            response = await call_next(request)
            response.headers["X-Request-ID"] = request_id
            return response
        finally:
            correlation_id_ctx.reset(token)


async def get_session(request: Request) -> AsyncIterator[AsyncSession]:
    """요청별 세션 의존성(Per-request session dependency)."""

    factory = getattr(request.app.state, "session_factory", None)
    if factory is None:
        raise ExternalServiceError(service_name="Database", reason="Database connection unavailable")
    async with session_scope(factory) as session:
        yield session


def create_app(settings: Optional[Settings] = None, engine: Optional[AsyncEngine] = None) -> FastAPI:
    """조회 API 생성(Build the read API).

    Without ``engine`` one is created from settings on startup and disposed
    on shutdown; a supplied engine stays owned by the caller.
    """

    settings = settings or get_settings()
    app = FastAPI(title="QueryAPI")
    app.state.settings = settings
    app.state.engine = engine
    app.state.session_factory = create_session_factory(engine) if engine is not None else None
    service = QueryService()

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["GET"],
        allow_headers=["*"],
    )
    app.add_middleware(RequestIDMiddleware)

    @app.on_event("startup")
    async def startup_event() -> None:
        if app.state.engine is None:
            app.state.engine = create_engine(settings)
            app.state.session_factory = create_session_factory(app.state.engine)
            app.state.owns_engine = True
        logger.info("QueryAPI started")

    @app.on_event("shutdown")
    async def shutdown_event() -> None:
        if getattr(app.state, "owns_engine", False):
            await app.state.engine.dispose()
        logger.info("QueryAPI stopped")

    @app.exception_handler(AppException)
    async def app_exception_handler(request: Request, exc: AppException) -> JSONResponse:
        """Handle application exceptions with standardized error format."""
        logger.warning(
            "AppException: %s (code=%s)",
            exc.message,
            exc.error_code,
            extra={"details": exc.details},
        )
        return JSONResponse(status_code=exc.status_code, content=exc.to_dict())

    @app.exception_handler(Exception)
    async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        """Catch-all handler for unexpected errors."""
        logger.error(
            "Unexpected error: %s",
            str(exc),
            exc_info=exc,
            extra={"path": request.url.path, "method": request.method},
        )
        return JSONResponse(
            status_code=500,
            content={"error": {"code": "INTERNAL_ERROR", "message": "Unexpected server error"}},
        )

    @app.get("/cves/list", response_model=CVEListResponse, tags=["cves"])
    async def list_cves(
        page: int = Query(default=1),
        limit: int = Query(default=10),
        search: Optional[str] = Query(default=None),
        year: Optional[int] = Query(default=None),
        base_score: Optional[float] = Query(default=None, alias="baseScore"),
        last_modified_days: Optional[int] = Query(default=None, alias="lastModifiedDays"),
        session: AsyncSession = Depends(get_session),
    ) -> CVEListResponse:
        """취약점 목록 조회(List vulnerabilities with filters and pagination)."""

        filters = ListFilters(
            page=page,
            limit=limit,
            search=search or None,
            year=year,
            base_score=base_score,
            last_modified_days=last_modified_days,
        )
        return await service.list_cves(QueryRepository(session), filters)

    @app.get("/cves/{cve_id}", response_model=CVEDetail, tags=["cves"])
    async def get_cve(cve_id: str, session: AsyncSession = Depends(get_session)) -> CVEDetail:
        """단건 상세 조회(Fetch one vulnerability)."""

        return await service.get_cve(QueryRepository(session), cve_id)

    @app.get("/health", tags=["health"])
    async def health_check() -> dict[str, str]:
        """헬스체크 엔드포인트(Health check endpoint)."""

        return {"status": "ok"}

    return app


app = create_app()

"""QueryAPI 데이터 접근 계층(QueryAPI data access layer)."""
from __future__ import annotations

from datetime import timedelta
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import String, cast, desc, extract, func, or_, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from common_lib.errors import ExternalServiceError
from common_lib.logger import get_logger
from common_lib.schema import vulnerability
from common_lib.timestamps import utc_now
from nvd_sync.app.models import SCORE_PRIORITY

from .models import ListFilters

logger = get_logger(__name__)


def _coalesced_base_score():
    """점수 체계 우선순위대로 기본 점수 추출(Base score by scheme priority)."""

    metrics = vulnerability.c.metrics
    return func.coalesce(
        *(metrics[(scheme, 0, "cvssData", "baseScore")].as_float() for scheme in SCORE_PRIORITY)
    )


class QueryRepository:
    """취약점 조회 저장소(Repository for vulnerability lookups)."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    @staticmethod
    def _conditions(filters: ListFilters) -> List[Any]:
        table = vulnerability.c
        conditions: List[Any] = []
        if filters.search:
            pattern = f"%{filters.search}%"
            conditions.append(
                or_(
                    table.cve_id.ilike(pattern),
                    table.source_identifier.ilike(pattern),
                    cast(table.descriptions, String).ilike(pattern),
                )
            )
        if filters.year is not None:
            conditions.append(extract("year", table.published) == filters.year)
        if filters.last_modified_days is not None:
            conditions.append(table.last_modified >= utc_now() - timedelta(days=filters.last_modified_days))
        if filters.base_score is not None:
            conditions.append(_coalesced_base_score() == filters.base_score)
        return conditions

    async def list_records(self, filters: ListFilters) -> Tuple[List[Dict[str, Any]], int]:
        """필터 적용 목록과 전체 개수(Filtered page of rows plus the total count)."""

        conditions = self._conditions(filters)
        count_query = select(func.count()).select_from(vulnerability).where(*conditions)
        page_query = (
            select(vulnerability)
            .where(*conditions)
            .order_by(desc(vulnerability.c.last_modified), vulnerability.c.cve_id)
            .limit(filters.limit)
            .offset(filters.offset)
        )
        try:
            total = (await self._session.execute(count_query)).scalar_one()
            rows = (await self._session.execute(page_query)).fetchall()
        except SQLAlchemyError as exc:
            logger.error("Database error in list_records: %s", exc, exc_info=exc)
            raise ExternalServiceError(
                service_name="Database",
                reason="Failed to query vulnerability list",
                details=filters.applied(),
            ) from exc
        return [dict(row._mapping) for row in rows], int(total)

    async def find_by_cve(self, cve_id: str) -> Optional[Dict[str, Any]]:
        """CVE로 조회(Look up by CVE)."""

        query = select(vulnerability).where(vulnerability.c.cve_id == cve_id)
        try:
            row = (await self._session.execute(query)).first()
        except SQLAlchemyError as exc:
            logger.error("Database error in find_by_cve: %s", exc, exc_info=exc)
            raise ExternalServiceError(
                service_name="Database",
                reason="Failed to query CVE data",
                details={"cve_id": cve_id},
            ) from exc
        return dict(row._mapping) if row is not None else None

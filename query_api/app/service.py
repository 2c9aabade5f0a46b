"""QueryAPI 서비스 레이어(QueryAPI service layer)."""
from __future__ import annotations

from typing import Any, Dict

from common_lib.errors import InvalidInputError, ResourceNotFound
from common_lib.logger import get_logger
from common_lib.timestamps import parse_feed_timestamp
from nvd_sync.app.models import VulnerabilityRecord

from .models import CVEDetail, CVEListResponse, CVESummary, ListFilters
from .repository import QueryRepository

logger = get_logger(__name__)

MAX_PAGE_SIZE = 100
MIN_YEAR = 1999
MAX_YEAR = 2099


class QueryService:
    """쿼리 처리 서비스(Query handling service)."""

    @staticmethod
    def validate(filters: ListFilters) -> None:
        """입력 검증, 위반 시 400(Validate filters; raises InvalidInputError)."""

        if filters.page < 1:
            raise InvalidInputError(field="page", reason="Page number must be positive")
        if filters.limit < 1 or filters.limit > MAX_PAGE_SIZE:
            raise InvalidInputError(field="limit", reason=f"Limit must be between 1 and {MAX_PAGE_SIZE}")
        if filters.year is not None and not MIN_YEAR <= filters.year <= MAX_YEAR:
            raise InvalidInputError(field="year", reason=f"Year must be between {MIN_YEAR} and {MAX_YEAR}")
        if filters.last_modified_days is not None and filters.last_modified_days < 1:
            raise InvalidInputError(field="lastModifiedDays", reason="Last modified days must be positive")

    async def list_cves(self, repository: QueryRepository, filters: ListFilters) -> CVEListResponse:
        self.validate(filters)
        rows, total = await repository.list_records(filters)
        logger.info("Found %d records out of %d total", len(rows), total, extra=filters.applied())
        return CVEListResponse(
            data=[self._summarize(row) for row in rows],
            total_records=total,
            current_page=filters.page,
            limit=filters.limit,
            applied_filters=filters.applied(),
        )

    async def get_cve(self, repository: QueryRepository, cve_id: str) -> CVEDetail:
        row = await repository.find_by_cve(cve_id)
        if row is None:
            raise ResourceNotFound(resource_type="CVE", identifier=cve_id)
        return CVEDetail(
            cve_id=row["cve_id"],
            source_identifier=row.get("source_identifier"),
            published=parse_feed_timestamp(row.get("published")),
            last_modified=parse_feed_timestamp(row.get("last_modified")),
            vuln_status=row.get("vuln_status"),
            descriptions=row.get("descriptions") or [],
            metrics=row.get("metrics") or {},
            weakness=row.get("weakness") or [],
            configurations=row.get("configurations") or [],
        )

    @staticmethod
    def _summarize(row: Dict[str, Any]) -> CVESummary:
        record = VulnerabilityRecord.from_row(row)
        return CVESummary(
            id=record.id,
            source_identifier=record.source_identifier,
            published=record.published,
            last_modified=record.last_modified,
            vuln_status=record.status,
            base_score=record.base_score(),
            severity=record.severity(),
            metrics=record.metrics,
        )

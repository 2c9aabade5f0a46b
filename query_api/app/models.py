"""QueryAPI 데이터 모델(QueryAPI data models)."""
from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class ListFilters(BaseModel):
    """목록 조회 필터(List query filters).

    ``page`` and ``limit`` always carry a value; the remaining filters are
    optional and only applied when set.
    """

    page: int = 1
    limit: int = 10
    search: Optional[str] = None
    year: Optional[int] = None
    base_score: Optional[float] = None
    last_modified_days: Optional[int] = None

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.limit

    def applied(self) -> Dict[str, Any]:
        return {
            "search": self.search or "",
            "year": self.year if self.year is not None else "",
            "baseScore": self.base_score if self.base_score is not None else "",
            "lastModifiedDays": self.last_modified_days if self.last_modified_days is not None else "",
        }


class CVESummary(BaseModel):
    """목록 항목(List entry)."""

    model_config = ConfigDict(populate_by_name=True)

    id: str
    source_identifier: Optional[str] = Field(default=None, alias="sourceIdentifier")
    published: Optional[datetime] = None
    last_modified: Optional[datetime] = Field(default=None, alias="lastModified")
    vuln_status: Optional[str] = Field(default=None, alias="vulnStatus")
    base_score: Optional[float] = Field(default=None, alias="baseScore")
    severity: Optional[str] = None
    metrics: Dict[str, Any] = Field(default_factory=dict)


class CVEListResponse(BaseModel):
    """목록 응답 모델(List response model)."""

    model_config = ConfigDict(populate_by_name=True)

    data: List[CVESummary]
    total_records: int = Field(alias="totalRecords")
    current_page: int = Field(alias="currentPage")
    limit: int
    applied_filters: Dict[str, Any] = Field(alias="appliedFilters")


class CVEDetail(BaseModel):
    """CVE 상세 정보 모델(CVE detail model).

    Mirrors one stored row; the structured columns are returned as stored.
    """

    model_config = ConfigDict(populate_by_name=True)

    cve_id: str = Field(alias="cveId")
    source_identifier: Optional[str] = Field(default=None, alias="sourceIdentifier")
    published: Optional[datetime] = None
    last_modified: Optional[datetime] = Field(default=None, alias="lastModified")
    vuln_status: Optional[str] = Field(default=None, alias="vulnStatus")
    descriptions: List[Dict[str, Any]] = Field(default_factory=list)
    metrics: Dict[str, Any] = Field(default_factory=dict)
    weakness: List[Dict[str, Any]] = Field(default_factory=list)
    configurations: List[Dict[str, Any]] = Field(default_factory=list)

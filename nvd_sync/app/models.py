"""NVD 동기화 데이터 모델(NVD sync data models)."""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from common_lib.timestamps import format_feed_timestamp, parse_feed_timestamp

# 점수 체계 우선순위(Scoring scheme priority, highest first)
SCORE_PRIORITY = ("cvssMetricV40", "cvssMetricV31", "cvssMetricV30", "cvssMetricV2")


class WindowKind(str, Enum):
    """조회 윈도우 기준(Which timestamp a window filters on)."""

    LAST_MODIFIED = "last_modified"
    PUBLISHED = "published"


_WINDOW_PARAMS = {
    WindowKind.LAST_MODIFIED: ("lastModStartDate", "lastModEndDate"),
    WindowKind.PUBLISHED: ("pubStartDate", "pubEndDate"),
}


class QueryWindow(BaseModel):
    """시간 범위 조회 윈도우(Time-bounded feed query window)."""

    model_config = ConfigDict(frozen=True)

    kind: WindowKind
    start: datetime
    end: datetime

    @model_validator(mode="after")
    def _check_bounds(self) -> "QueryWindow":
        if self.end < self.start:
            raise ValueError("window end must not precede its start")
        return self

    @classmethod
    def trailing(cls, kind: WindowKind, reference: datetime, hours: int) -> "QueryWindow":
        """기준 시각에서 끝나는 윈도우(Window of ``hours`` ending at ``reference``)."""

        return cls(kind=kind, start=reference - timedelta(hours=hours), end=reference)

    def to_params(self) -> Dict[str, str]:
        start_key, end_key = _WINDOW_PARAMS[self.kind]
        return {
            start_key: format_feed_timestamp(self.start),
            end_key: format_feed_timestamp(self.end),
        }

    def describe(self) -> str:
        return f"{self.kind.value}[{format_feed_timestamp(self.start)} .. {format_feed_timestamp(self.end)}]"


class FeedPage(BaseModel):
    """피드 한 페이지(One page of feed results)."""

    start_index: int
    results_per_page: int = Field(..., description="요청한 페이지 크기(Requested page size)")
    total_results: int = 0
    vulnerabilities: List[Dict[str, Any]] = Field(default_factory=list)

    @classmethod
    def from_response(cls, payload: Mapping[str, Any], start_index: int, results_per_page: int) -> "FeedPage":
        vulnerabilities = payload.get("vulnerabilities") or []
        if not isinstance(vulnerabilities, list):
            raise ValueError("'vulnerabilities' must be a list")
        return cls(
            start_index=start_index,
            results_per_page=results_per_page,
            total_results=int(payload.get("totalResults") or 0),
            vulnerabilities=vulnerabilities,
        )

    def cve_ids(self) -> List[str]:
        ids: List[str] = []
        for item in self.vulnerabilities:
            cve = item.get("cve") if isinstance(item, dict) else None
            cve_id = cve.get("id") if isinstance(cve, dict) else None
            if isinstance(cve_id, str) and cve_id:
                ids.append(cve_id)
        return ids

    @property
    def is_last(self) -> bool:
        """빈 페이지 또는 덜 찬 페이지는 마지막(Empty or short page ends the walk)."""

        return len(self.vulnerabilities) < self.results_per_page


class Description(BaseModel):
    """언어별 설명(Localized description)."""

    lang: str
    value: str


class VulnerabilityRecord(BaseModel):
    """
    저장되는 취약점 레코드(Canonical persisted vulnerability record).

    Built from one entry of the feed's ``vulnerabilities`` array. ``id`` is the
    primary key and every other field is overwritten on each upsert.
    """

    id: str
    source_identifier: Optional[str] = None
    published: Optional[datetime] = None
    last_modified: Optional[datetime] = None
    status: Optional[str] = None
    descriptions: List[Description] = Field(default_factory=list)
    metrics: Dict[str, Any] = Field(default_factory=dict)
    weaknesses: List[Dict[str, Any]] = Field(default_factory=list)
    configurations: List[Dict[str, Any]] = Field(default_factory=list)

    @field_validator("published", "last_modified", mode="before")
    @classmethod
    def _parse_timestamp(cls, value: Any) -> Optional[datetime]:
        return parse_feed_timestamp(value)

    @field_validator("metrics", mode="before")
    @classmethod
    def _default_metrics(cls, value: Any) -> Any:
        return {} if value is None else value

    @field_validator("descriptions", "weaknesses", "configurations", mode="before")
    @classmethod
    def _default_list(cls, value: Any) -> Any:
        return [] if value is None else value

    @classmethod
    def from_feed(cls, entry: Mapping[str, Any]) -> "VulnerabilityRecord":
        """피드 항목을 레코드로 변환(Transform a feed entry into a record)."""

        cve = entry.get("cve", entry)
        if not isinstance(cve, Mapping) or not cve.get("id"):
            raise ValueError("feed entry has no CVE identifier")
        return cls(
            id=cve["id"],
            source_identifier=cve.get("sourceIdentifier"),
            published=cve.get("published"),
            last_modified=cve.get("lastModified"),
            status=cve.get("vulnStatus"),
            descriptions=cve.get("descriptions"),
            metrics=cve.get("metrics"),
            weaknesses=cve.get("weaknesses"),
            configurations=cve.get("configurations"),
        )

    def to_row(self) -> Dict[str, Any]:
        """테이블 컬럼 매핑(Map to table columns)."""

        data = self.model_dump(mode="json", include={"descriptions", "metrics", "weaknesses", "configurations"})
        return {
            "cve_id": self.id,
            "source_identifier": self.source_identifier,
            "published": self.published,
            "last_modified": self.last_modified,
            "vuln_status": self.status,
            "descriptions": data["descriptions"],
            "metrics": data["metrics"],
            "weakness": data["weaknesses"],
            "configurations": data["configurations"],
        }

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "VulnerabilityRecord":
        return cls(
            id=row["cve_id"],
            source_identifier=row.get("source_identifier"),
            published=row.get("published"),
            last_modified=row.get("last_modified"),
            status=row.get("vuln_status"),
            descriptions=row.get("descriptions"),
            metrics=row.get("metrics"),
            weaknesses=row.get("weakness"),
            configurations=row.get("configurations"),
        )

    def _primary_metric(self) -> Optional[Dict[str, Any]]:
        for scheme in SCORE_PRIORITY:
            variants = self.metrics.get(scheme)
            if isinstance(variants, list) and variants and isinstance(variants[0], dict):
                return variants[0]
        return None

    def base_score(self) -> Optional[float]:
        """최우선 점수 체계의 기본 점수(Base score of the highest-priority scheme)."""

        metric = self._primary_metric()
        if metric is None:
            return None
        score = (metric.get("cvssData") or {}).get("baseScore")
        return float(score) if score is not None else None

    def severity(self) -> Optional[str]:
        metric = self._primary_metric()
        if metric is None:
            return None
        # v2 keeps the label next to cvssData, v3/v4 inside it
        return (metric.get("cvssData") or {}).get("baseSeverity") or metric.get("baseSeverity")

    def vector(self) -> Optional[str]:
        metric = self._primary_metric()
        if metric is None:
            return None
        return (metric.get("cvssData") or {}).get("vectorString")

    def english_description(self) -> Optional[str]:
        for desc in self.descriptions:
            if desc.lang == "en":
                return desc.value
        return None


class UpsertOutcome(str, Enum):
    """단건 처리 결과(Per-identifier processing outcome)."""

    WRITTEN = "written"
    SKIPPED = "skipped"
    FAILED = "failed"


@dataclass
class UpsertResult:
    cve_id: str
    outcome: UpsertOutcome
    error: Optional[str] = None


@dataclass
class ProcessingSummary:
    """배치 처리 요약(Summary of one BatchProcessor run)."""

    total: int = 0
    written: int = 0
    skipped: int = 0
    failed: int = 0
    batches: int = 0
    failed_ids: List[str] = field(default_factory=list)

    def record(self, result: UpsertResult) -> None:
        if result.outcome is UpsertOutcome.WRITTEN:
            self.written += 1
        elif result.outcome is UpsertOutcome.SKIPPED:
            self.skipped += 1
        else:
            self.failed += 1
            self.failed_ids.append(result.cve_id)

    @property
    def processed(self) -> int:
        return self.written + self.skipped + self.failed

    def as_dict(self) -> Dict[str, Any]:
        return {
            "total": self.total,
            "written": self.written,
            "skipped": self.skipped,
            "failed": self.failed,
            "batches": self.batches,
        }


@dataclass
class CycleReport:
    """한 사이클 결과(Result of one scheduler cycle)."""

    cycle_id: str
    started_at: datetime
    duration_seconds: float
    work_set_size: int
    summary: ProcessingSummary

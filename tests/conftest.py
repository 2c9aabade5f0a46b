"""Pytest configuration and shared fixtures."""
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional

import httpx
import pytest
from sqlalchemy.ext.asyncio import create_async_engine

from common_lib.config import Settings, build_settings
from common_lib.db import create_schema, create_session_factory
from common_lib.logger import get_logger
from common_lib.retry_config import FeedRetryPolicy
from nvd_sync.app.service import NVDFetcher, build_http_client

logger = get_logger(__name__)

API_URL = "https://nvd.test/rest/json/cves/2.0"
REFERENCE_TIME = datetime(2024, 1, 15, 12, 0, 0, tzinfo=timezone.utc)


class SleepRecorder:
    """Stands in for asyncio.sleep and records requested delays."""

    def __init__(self) -> None:
        self.calls: List[float] = []

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)


def make_entry(
    cve_id: str,
    *,
    description: str = "Example vulnerability",
    published: str = "2024-01-10T08:00:00.000",
    last_modified: str = "2024-01-15T10:15:07.577",
    metrics: Optional[Dict[str, Any]] = None,
    status: str = "Analyzed",
) -> Dict[str, Any]:
    """Build one element of the feed's ``vulnerabilities`` array."""

    if metrics is None:
        metrics = {
            "cvssMetricV31": [
                {
                    "source": "nvd@nist.gov",
                    "type": "Primary",
                    "cvssData": {
                        "version": "3.1",
                        "vectorString": "CVSS:3.1/AV:N/AC:L/PR:N/UI:N/S:U/C:H/I:N/A:N",
                        "baseScore": 7.5,
                        "baseSeverity": "HIGH",
                    },
                }
            ]
        }
    return {
        "cve": {
            "id": cve_id,
            "sourceIdentifier": "cve@mitre.org",
            "published": published,
            "lastModified": last_modified,
            "vulnStatus": status,
            "descriptions": [{"lang": "en", "value": description}],
            "metrics": metrics,
            "weaknesses": [
                {
                    "source": "nvd@nist.gov",
                    "type": "Primary",
                    "description": [{"lang": "en", "value": "CWE-79"}],
                }
            ],
            "configurations": [],
        }
    }


def feed_payload(entries: List[Dict[str, Any]], start_index: int = 0, total: Optional[int] = None) -> Dict[str, Any]:
    """Wrap entries in a feed response envelope."""

    return {
        "resultsPerPage": len(entries),
        "startIndex": start_index,
        "totalResults": len(entries) if total is None else total,
        "format": "NVD_CVE",
        "version": "2.0",
        "timestamp": "2024-01-15T12:00:00.000",
        "vulnerabilities": entries,
    }


@pytest.fixture
def entry_factory() -> Callable[..., Dict[str, Any]]:
    return make_entry


@pytest.fixture
def payload_factory() -> Callable[..., Dict[str, Any]]:
    return feed_payload


@pytest.fixture
def sleep_recorder() -> SleepRecorder:
    return SleepRecorder()


@pytest.fixture
def settings(tmp_path) -> Settings:
    """Settings pointing at a throwaway SQLite database and a fake feed."""

    return build_settings(
        {
            "postgres_dsn": f"sqlite+aiosqlite:///{tmp_path / 'nvd.sqlite'}",
            "nvd_api_url": API_URL,
            "nvd_api_key": "test-key",
            "nvd_user_agent": "nvd-sync-tests/1.0",
            "nvd_results_per_page": 3,
            "sync_batch_size": 2,
            "sync_interval_seconds": 86400,
            "sync_error_cooldown_seconds": 300,
        }
    )


@pytest.fixture
async def engine(settings):
    engine = create_async_engine(settings.postgres_dsn, future=True)
    await create_schema(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return create_session_factory(engine)


@pytest.fixture
async def fetcher_factory(settings, sleep_recorder):
    """Build NVDFetcher instances backed by httpx.MockTransport handlers."""

    clients: List[httpx.AsyncClient] = []

    def _make(handler, results_per_page: int = 3, **policy_overrides: Any) -> NVDFetcher:
        client = build_http_client(settings, transport=httpx.MockTransport(handler))
        clients.append(client)
        policy = FeedRetryPolicy(sleep=sleep_recorder, **policy_overrides)
        return NVDFetcher(client, policy, api_url=API_URL, results_per_page=results_per_page)

    yield _make

    for client in clients:
        await client.aclose()

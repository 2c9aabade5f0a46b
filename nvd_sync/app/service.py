"""NVD 피드 호출 서비스(Service for NVD feed calls)."""
from __future__ import annotations

from typing import Any, Dict, Optional

import httpx
from tenacity import RetryCallState

from common_lib.config import Settings
from common_lib.errors import FetchError, FetchErrorKind, RateLimitedError
from common_lib.logger import get_logger
from common_lib.retry_config import TRANSIENT_NETWORK_ERRORS, FeedRetryPolicy

from .models import FeedPage, QueryWindow

logger = get_logger(__name__)


def build_http_client(
    settings: Settings,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> httpx.AsyncClient:
    """피드용 HTTP 클라이언트 생성(Create the shared HTTP client for the feed)."""

    headers = {"User-Agent": settings.nvd_user_agent}
    if settings.nvd_api_key:
        headers["apiKey"] = settings.nvd_api_key
    else:
        logger.warning("NVD API 키가 설정되지 않음 - 제한된 속도로 실행됩니다 (API key not set - running with rate limits)")
    return httpx.AsyncClient(headers=headers, timeout=settings.nvd_request_timeout, transport=transport)


class NVDFetcher:
    """NVD CVE 2.0 피드 조회기(Single-request fetcher for the NVD CVE 2.0 feed).

    Every call goes through one retry loop from ``FeedRetryPolicy``:
    HTTP 429 waits a fixed cooldown and repeats the same call, resets and
    timeouts share one bounded retry budget for the whole call. Any other
    failure, including a refused connection, is raised as
    ``FetchError(kind=OTHER)`` straight away.
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        retry_policy: FeedRetryPolicy,
        api_url: str = "https://services.nvd.nist.gov/rest/json/cves/2.0",
        results_per_page: int = 2000,
    ) -> None:
        self._client = client
        self._policy = retry_policy
        self._api_url = api_url
        self._results_per_page = results_per_page

    @property
    def results_per_page(self) -> int:
        return self._results_per_page

    async def fetch_page(
        self,
        window: QueryWindow,
        start_index: int = 0,
        results_per_page: Optional[int] = None,
    ) -> FeedPage:
        """윈도우의 한 페이지 조회(Fetch one page of a query window)."""

        size = results_per_page or self._results_per_page
        params: Dict[str, Any] = {
            **window.to_params(),
            "startIndex": start_index,
            "resultsPerPage": size,
        }
        payload = await self._get(params)
        try:
            return FeedPage.from_response(payload, start_index=start_index, results_per_page=size)
        except (TypeError, ValueError) as exc:
            raise FetchError(FetchErrorKind.OTHER, f"malformed page payload: {exc}", params=params) from exc

    async def fetch_one(self, cve_id: str) -> Optional[Dict[str, Any]]:
        """단건 조회, 없으면 None(Fetch a single entry, or None if the feed has none)."""

        params: Dict[str, Any] = {
            "cveId": cve_id,
            "startIndex": 0,
            "resultsPerPage": self._results_per_page,
        }
        payload = await self._get(params)
        vulnerabilities = payload.get("vulnerabilities") or []
        if not isinstance(vulnerabilities, list):
            raise FetchError(FetchErrorKind.OTHER, "'vulnerabilities' must be a list", params=params)
        if not vulnerabilities:
            return None
        return vulnerabilities[0]

    async def _get(self, params: Dict[str, Any]) -> Dict[str, Any]:
        payload: Dict[str, Any] = {}
        try:
            async for attempt in self._policy.retrying(before_sleep=self._on_retry(params)):
                with attempt:
                    payload = await self._request_once(params, attempt.retry_state.attempt_number)
        except RateLimitedError as exc:
            logger.error("Rate limit waiting cap exhausted for %s (Retry-After=%s)", params, exc.retry_after)
            raise FetchError(FetchErrorKind.RATE_LIMIT, str(exc), status_code=429, params=params) from exc
        except TRANSIENT_NETWORK_ERRORS as exc:
            logger.error(
                "NVD request failed after %d network retries for %s: %r",
                self._policy.network_retries,
                params,
                exc,
            )
            raise FetchError(FetchErrorKind.TRANSIENT_NETWORK, repr(exc), params=params) from exc
        return payload

    async def _request_once(self, params: Dict[str, Any], attempt: int) -> Dict[str, Any]:
        logger.info("Requesting NVD feed %s (attempt %d)", params, attempt, extra={"feed_params": params})
        try:
            response = await self._client.get(self._api_url, params=params)
        except TRANSIENT_NETWORK_ERRORS:
            raise
        except httpx.HTTPError as exc:
            raise FetchError(FetchErrorKind.OTHER, repr(exc), params=params) from exc

        if response.status_code == 429:
            raise RateLimitedError(response.headers.get("Retry-After"))
        if response.status_code >= 400:
            logger.error("NVD API HTTP error %d for %s", response.status_code, params)
            raise FetchError(
                FetchErrorKind.OTHER,
                response.reason_phrase or "HTTP error",
                status_code=response.status_code,
                params=params,
            )

        try:
            data = response.json()
        except ValueError as exc:
            raise FetchError(FetchErrorKind.OTHER, "response is not valid JSON", params=params) from exc
        if not isinstance(data, dict):
            raise FetchError(FetchErrorKind.OTHER, "response is not a JSON object", params=params)
        return data

    def _on_retry(self, params: Dict[str, Any]):
        network_failures = 0

        def _log(retry_state: RetryCallState) -> None:
            nonlocal network_failures
            exc = retry_state.outcome.exception() if retry_state.outcome else None
            wait = retry_state.next_action.sleep if retry_state.next_action else 0.0
            if isinstance(exc, RateLimitedError):
                logger.warning(
                    "Rate limited by NVD for %s (Retry-After=%s), waiting %.0f seconds...",
                    params,
                    exc.retry_after,
                    wait,
                )
                return
            network_failures += 1
            logger.warning(
                "NVD request failed for %s, retrying in %.0f seconds... (%d attempts left): %r",
                params,
                wait,
                self._policy.network_retries - network_failures,
                exc,
            )

        return _log

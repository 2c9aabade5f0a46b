"""단건 조회-저장 작성기(Fetch-and-upsert writer for one identifier)."""
from __future__ import annotations

import asyncio
from typing import Optional

from common_lib.errors import FetchError
from common_lib.logger import get_logger

from .models import UpsertOutcome, UpsertResult, VulnerabilityRecord
from .repository import VulnerabilityRepository
from .service import NVDFetcher

logger = get_logger(__name__)


class UpsertWriter:
    """
    식별자 하나를 조회 후 저장(Fetch one identifier and persist it).

    Fetches run concurrently; writes share the cycle's session and are
    serialized through ``write_lock``. Each write is committed on its own and
    rolled back on failure so one bad item leaves the session usable.
    """

    def __init__(
        self,
        fetcher: NVDFetcher,
        repository: VulnerabilityRepository,
        write_lock: Optional[asyncio.Lock] = None,
    ) -> None:
        self._fetcher = fetcher
        self._repository = repository
        self._write_lock = write_lock or asyncio.Lock()

    async def upsert(self, cve_id: str) -> UpsertResult:
        try:
            entry = await self._fetcher.fetch_one(cve_id)
        except FetchError as exc:
            logger.error("Error updating %s: fetch failed: %s", cve_id, exc, extra={"cve_id": cve_id})
            return UpsertResult(cve_id, UpsertOutcome.FAILED, str(exc))

        if entry is None:
            logger.info("No feed entry for %s; skipping", cve_id)
            return UpsertResult(cve_id, UpsertOutcome.SKIPPED)

        try:
            record = VulnerabilityRecord.from_feed(entry)
        except ValueError as exc:
            logger.error("Error updating %s: malformed feed entry: %s", cve_id, exc, extra={"cve_id": cve_id})
            return UpsertResult(cve_id, UpsertOutcome.FAILED, str(exc))

        if record.id != cve_id:
            logger.warning("Feed returned %s when asked for %s; storing under %s", record.id, cve_id, record.id)

        async with self._write_lock:
            try:
                await self._repository.upsert_record(record)
                await self._repository.commit()
            except Exception as exc:
                logger.error("Error updating %s: write failed: %s", cve_id, exc, exc_info=True, extra={"cve_id": cve_id})
                try:
                    await self._repository.rollback()
                except Exception as rollback_exc:  # pragma: no cover - connection already gone
                    logger.warning("Rollback after failed write for %s failed: %s", cve_id, rollback_exc)
                return UpsertResult(cve_id, UpsertOutcome.FAILED, str(exc))

        logger.info("Updated CVE: %s", record.id)
        return UpsertResult(cve_id, UpsertOutcome.WRITTEN)

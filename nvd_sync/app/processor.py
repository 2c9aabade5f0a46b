"""배치 처리기(Batch processor with bounded concurrency)."""
from __future__ import annotations

import asyncio
from typing import Callable, Iterable, List, Optional

from common_lib.logger import get_logger

from .models import ProcessingSummary, UpsertOutcome, UpsertResult
from .writer import UpsertWriter

logger = get_logger(__name__)

ProgressCallback = Callable[[int, int], None]


def partition(identifiers: Iterable[str], batch_size: int) -> List[List[str]]:
    """고정 크기 배치로 분할(Split identifiers into fixed-size batches)."""

    if batch_size <= 0:
        raise ValueError("batch_size must be positive")
    ordered = sorted(set(identifiers))
    return [ordered[i:i + batch_size] for i in range(0, len(ordered), batch_size)]


class BatchProcessor:
    """
    작업 집합 배치 처리(Process a work set batch by batch).

    Batches run strictly one after another; inside a batch every upsert runs
    concurrently and the batch waits for all of them to settle. At most one
    batch width of upserts is in flight.
    """

    def __init__(
        self,
        writer: UpsertWriter,
        batch_size: int = 50,
        progress_cb: Optional[ProgressCallback] = None,
    ) -> None:
        if batch_size <= 0:
            raise ValueError("batch_size must be positive")
        self._writer = writer
        self._batch_size = batch_size
        self._progress_cb = progress_cb

    async def process_all(self, work_set: Iterable[str]) -> ProcessingSummary:
        batches = partition(work_set, self._batch_size)
        summary = ProcessingSummary(total=sum(len(batch) for batch in batches), batches=len(batches))

        for index, batch in enumerate(batches, start=1):
            results = await asyncio.gather(
                *(self._writer.upsert(cve_id) for cve_id in batch),
                return_exceptions=True,
            )
            for cve_id, result in zip(batch, results):
                if isinstance(result, asyncio.CancelledError):
                    raise result
                if isinstance(result, BaseException):
                    logger.error("Unexpected error updating %s: %r", cve_id, result, exc_info=result)
                    result = UpsertResult(cve_id, UpsertOutcome.FAILED, repr(result))
                summary.record(result)

            logger.info(
                "Processed batch %d of %d (written=%d, skipped=%d, failed=%d)",
                index,
                len(batches),
                summary.written,
                summary.skipped,
                summary.failed,
            )
            if self._progress_cb is not None:
                self._progress_cb(index, len(batches))

        return summary

"""Tests for batch partitioning and bounded-concurrency processing."""
import asyncio

import pytest

from nvd_sync.app.models import UpsertOutcome, UpsertResult
from nvd_sync.app.processor import BatchProcessor, partition


class RecordingWriter:
    """Fake writer that tracks concurrency and batch boundaries."""

    def __init__(self, failing=(), raising=()):
        self.failing = set(failing)
        self.raising = set(raising)
        self.in_flight = 0
        self.max_in_flight = 0
        self.events = []
        self.calls = []

    async def upsert(self, cve_id: str) -> UpsertResult:
        self.calls.append(cve_id)
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        self.events.append(("start", cve_id))
        try:
            await asyncio.sleep(0)
            if cve_id in self.raising:
                raise RuntimeError(f"unexpected failure for {cve_id}")
            if cve_id in self.failing:
                return UpsertResult(cve_id, UpsertOutcome.FAILED, "fetch failed")
            return UpsertResult(cve_id, UpsertOutcome.WRITTEN)
        finally:
            self.in_flight -= 1
            self.events.append(("end", cve_id))


def _ids(count: int):
    return [f"CVE-2024-{n:05d}" for n in range(count)]


class TestPartition:
    """partition() helper."""

    def test_chunks_sorted_unique_ids(self):
        batches = partition(["CVE-3", "CVE-1", "CVE-2", "CVE-1"], 2)
        assert batches == [["CVE-1", "CVE-2"], ["CVE-3"]]

    def test_empty_input(self):
        assert partition([], 50) == []

    def test_rejects_non_positive_size(self):
        with pytest.raises(ValueError):
            partition(["CVE-1"], 0)


class TestBatchProcessor:
    """BatchProcessor.process_all()."""

    async def test_one_failure_does_not_block_the_batch(self):
        identifiers = _ids(50)
        writer = RecordingWriter(failing={identifiers[17]})
        processor = BatchProcessor(writer, batch_size=50)

        summary = await processor.process_all(set(identifiers))

        assert summary.total == 50
        assert summary.written == 49
        assert summary.failed == 1
        assert summary.failed_ids == [identifiers[17]]
        assert summary.batches == 1

    async def test_unexpected_exception_counts_as_failure(self):
        identifiers = _ids(4)
        writer = RecordingWriter(raising={identifiers[1]})
        processor = BatchProcessor(writer, batch_size=2)

        summary = await processor.process_all(identifiers)

        assert summary.written == 3
        assert summary.failed == 1
        assert sorted(writer.calls) == identifiers

    async def test_batches_run_sequentially_with_bounded_concurrency(self):
        identifiers = _ids(25)
        writer = RecordingWriter()
        processor = BatchProcessor(writer, batch_size=10)

        summary = await processor.process_all(identifiers)

        assert summary.batches == 3
        assert summary.written == 25
        assert writer.max_in_flight == 10

        batches = partition(identifiers, 10)
        positions = {event: index for index, event in enumerate(writer.events)}
        for current, following in zip(batches, batches[1:]):
            last_end = max(positions[("end", cve_id)] for cve_id in current)
            first_start = min(positions[("start", cve_id)] for cve_id in following)
            assert last_end < first_start

    async def test_each_identifier_processed_once(self):
        writer = RecordingWriter()
        processor = BatchProcessor(writer, batch_size=3)

        await processor.process_all(["CVE-1", "CVE-2", "CVE-1", "CVE-3", "CVE-2"])

        assert sorted(writer.calls) == ["CVE-1", "CVE-2", "CVE-3"]

    async def test_progress_callback(self):
        progress = []
        processor = BatchProcessor(RecordingWriter(), batch_size=2, progress_cb=lambda done, total: progress.append((done, total)))

        await processor.process_all(_ids(5))

        assert progress == [(1, 3), (2, 3), (3, 3)]

    async def test_empty_work_set(self):
        writer = RecordingWriter()
        summary = await BatchProcessor(writer, batch_size=50).process_all(set())

        assert summary.total == 0
        assert summary.batches == 0
        assert summary.processed == 0
        assert writer.calls == []

    def test_rejects_non_positive_batch_size(self):
        with pytest.raises(ValueError):
            BatchProcessor(RecordingWriter(), batch_size=0)

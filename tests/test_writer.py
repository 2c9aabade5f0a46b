"""Tests for the repository upsert and the fetch-and-write step."""
from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock

from common_lib.db import session_scope
from common_lib.errors import FetchError, FetchErrorKind
from nvd_sync.app.models import UpsertOutcome, VulnerabilityRecord
from nvd_sync.app.processor import BatchProcessor
from nvd_sync.app.repository import VulnerabilityRepository
from nvd_sync.app.writer import UpsertWriter

from conftest import make_entry


def _fetcher(**kwargs) -> MagicMock:
    fetcher = MagicMock()
    fetcher.fetch_one = AsyncMock(**kwargs)
    return fetcher


class TestVulnerabilityRepository:
    """INSERT .. ON CONFLICT DO UPDATE behaviour."""

    async def test_insert_then_overwrite(self, session_factory):
        first = VulnerabilityRecord.from_feed(make_entry("CVE-2024-0001", description="first"))
        second = VulnerabilityRecord.from_feed(
            make_entry(
                "CVE-2024-0001",
                description="second",
                last_modified="2024-01-16T09:00:00.000",
                status="Modified",
                metrics={},
            )
        )

        async with session_scope(session_factory) as session:
            repository = VulnerabilityRepository(session)
            await repository.upsert_record(first)
            await repository.commit()
            await repository.upsert_record(second)
            await repository.commit()

            stored = await repository.get_record("CVE-2024-0001")
            assert await repository.count() == 1

        assert stored is not None
        assert stored.english_description() == "second"
        assert stored.status == "Modified"
        assert stored.metrics == {}
        assert stored.last_modified == datetime(2024, 1, 16, 9, 0, tzinfo=timezone.utc)
        assert stored.weaknesses[0]["description"][0]["value"] == "CWE-79"

    async def test_same_record_twice_is_idempotent(self, session_factory):
        record = VulnerabilityRecord.from_feed(make_entry("CVE-2024-0002"))

        async with session_scope(session_factory) as session:
            repository = VulnerabilityRepository(session)
            for _ in range(2):
                await repository.upsert_record(record)
                await repository.commit()
            stored = await repository.get_record("CVE-2024-0002")
            assert await repository.count() == 1

        assert stored == record

    async def test_missing_record_is_none(self, session_factory):
        async with session_scope(session_factory) as session:
            assert await VulnerabilityRepository(session).get_record("CVE-1999-0001") is None


class TestUpsertWriter:
    """UpsertWriter.upsert() outcomes."""

    async def test_written(self, session_factory):
        fetcher = _fetcher(return_value=make_entry("CVE-2024-0100"))

        async with session_scope(session_factory) as session:
            repository = VulnerabilityRepository(session)
            result = await UpsertWriter(fetcher, repository).upsert("CVE-2024-0100")
            assert await repository.count() == 1

        assert result.outcome is UpsertOutcome.WRITTEN
        fetcher.fetch_one.assert_awaited_once_with("CVE-2024-0100")

    async def test_skipped_when_feed_has_no_entry(self, session_factory):
        fetcher = _fetcher(return_value=None)

        async with session_scope(session_factory) as session:
            repository = VulnerabilityRepository(session)
            result = await UpsertWriter(fetcher, repository).upsert("CVE-2024-0101")
            assert await repository.count() == 0

        assert result.outcome is UpsertOutcome.SKIPPED

    async def test_failed_fetch(self, session_factory):
        fetcher = _fetcher(side_effect=FetchError(FetchErrorKind.TRANSIENT_NETWORK, "reset"))

        async with session_scope(session_factory) as session:
            repository = VulnerabilityRepository(session)
            result = await UpsertWriter(fetcher, repository).upsert("CVE-2024-0102")
            assert await repository.count() == 0

        assert result.outcome is UpsertOutcome.FAILED
        assert "transient_network" in result.error

    async def test_malformed_entry(self, session_factory):
        fetcher = _fetcher(return_value={"cve": {"descriptions": []}})

        async with session_scope(session_factory) as session:
            result = await UpsertWriter(fetcher, VulnerabilityRepository(session)).upsert("CVE-2024-0103")

        assert result.outcome is UpsertOutcome.FAILED

    async def test_write_failure_rolls_back(self):
        fetcher = _fetcher(return_value=make_entry("CVE-2024-0104"))
        repository = MagicMock()
        repository.upsert_record = AsyncMock(side_effect=RuntimeError("disk full"))
        repository.commit = AsyncMock()
        repository.rollback = AsyncMock()

        result = await UpsertWriter(fetcher, repository).upsert("CVE-2024-0104")

        assert result.outcome is UpsertOutcome.FAILED
        assert result.error == "disk full"
        repository.rollback.assert_awaited_once()
        repository.commit.assert_not_awaited()

    async def test_session_usable_after_failed_write(self, session_factory):
        good = _fetcher(return_value=make_entry("CVE-2024-0105"))

        async with session_scope(session_factory) as session:
            repository = VulnerabilityRepository(session)
            original_upsert = repository.upsert_record
            repository.upsert_record = AsyncMock(side_effect=RuntimeError("constraint"))
            failed = await UpsertWriter(good, repository).upsert("CVE-2024-0105")

            repository.upsert_record = original_upsert
            written = await UpsertWriter(good, repository).upsert("CVE-2024-0105")
            assert await repository.count() == 1

        assert failed.outcome is UpsertOutcome.FAILED
        assert written.outcome is UpsertOutcome.WRITTEN


class TestBatchIsolation:
    """One failed write inside a batch on the shared session."""

    async def test_one_failed_write_keeps_the_other_49(self, session_factory):
        ids = [f"CVE-2024-{n:04d}" for n in range(1, 51)]
        broken_id = "CVE-2024-0025"
        fetcher = _fetcher(side_effect=lambda cve_id: make_entry(cve_id))

        async with session_scope(session_factory) as session:
            repository = VulnerabilityRepository(session)
            original_upsert = repository.upsert_record

            async def upsert_record(record):
                if record.id == broken_id:
                    raise RuntimeError("value too long")
                await original_upsert(record)

            repository.upsert_record = upsert_record
            summary = await BatchProcessor(UpsertWriter(fetcher, repository), batch_size=50).process_all(ids)

            assert await repository.count() == 49
            assert await repository.get_record(broken_id) is None

        assert summary.batches == 1
        assert summary.written == 49
        assert summary.failed == 1
        assert summary.failed_ids == [broken_id]

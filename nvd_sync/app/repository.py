"""취약점 데이터 저장소(Vulnerability data repository)."""
from __future__ import annotations

from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.ext.asyncio import AsyncSession

from common_lib.logger import get_logger
from common_lib.schema import vulnerability

from .models import VulnerabilityRecord

logger = get_logger(__name__)

_INSERT_BY_DIALECT = {
    "postgresql": postgresql.insert,
    "sqlite": sqlite.insert,
}


class VulnerabilityRepository:
    """취약점 저장 레이어(Storage layer for vulnerability records)."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    def _insert(self):
        dialect = self._session.get_bind().dialect.name
        try:
            return _INSERT_BY_DIALECT[dialect]
        except KeyError:
            raise NotImplementedError(f"upsert is not supported for dialect '{dialect}'") from None

    async def upsert_record(self, record: VulnerabilityRecord) -> None:
        """레코드 저장 또는 전체 덮어쓰기(Insert, or overwrite every column on conflict).

        A single INSERT .. ON CONFLICT (cve_id) DO UPDATE statement, so no
        read-then-write window exists.
        """

        row = record.to_row()
        stmt = self._insert()(vulnerability).values(**row)
        stmt = stmt.on_conflict_do_update(
            index_elements=[vulnerability.c.cve_id],
            set_={column: stmt.excluded[column] for column in row if column != "cve_id"},
        )
        await self._session.execute(stmt)

    async def get_record(self, cve_id: str) -> Optional[VulnerabilityRecord]:
        result = await self._session.execute(select(vulnerability).where(vulnerability.c.cve_id == cve_id))
        row = result.first()
        if row is None:
            return None
        return VulnerabilityRecord.from_row(row._mapping)

    async def count(self) -> int:
        result = await self._session.execute(select(func.count()).select_from(vulnerability))
        return int(result.scalar_one())

    async def commit(self) -> None:
        await self._session.commit()

    async def rollback(self) -> None:
        await self._session.rollback()

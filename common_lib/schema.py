"""취약점 테이블 정의(Vulnerability table definition).

Structured columns use the JSON type (JSONB on PostgreSQL), which is the single
encoding boundary: Python structures go in and come back out.
"""
from __future__ import annotations

from sqlalchemy import JSON, Column, DateTime, MetaData, String, Table
from sqlalchemy.dialects.postgresql import JSONB

metadata = MetaData()

StructuredJSON = JSON().with_variant(JSONB(), "postgresql")

vulnerability = Table(
    "vulnerability",
    metadata,
    Column("cve_id", String(32), primary_key=True),
    Column("source_identifier", String(255)),
    Column("published", DateTime(timezone=True)),
    Column("last_modified", DateTime(timezone=True), index=True),
    Column("vuln_status", String(64)),
    Column("descriptions", StructuredJSON, nullable=False),
    Column("metrics", StructuredJSON, nullable=False),
    Column("weakness", StructuredJSON, nullable=False),
    Column("configurations", StructuredJSON, nullable=False),
)

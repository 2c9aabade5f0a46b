"""관찰성 및 구조화 로깅(Observability and structured logging)."""
from __future__ import annotations

import logging
import uuid
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Any, Dict

from pythonjsonlogger import jsonlogger

# 동기화 사이클 ID 또는 API 요청 ID(Sync cycle id or API request id)
correlation_id_ctx: ContextVar[str] = ContextVar("correlation_id", default="system")


def get_correlation_id() -> str:
    """상관 ID 조회(Retrieve the current correlation ID).

    Returns:
        Current correlation ID from context, or "system" if not set.
    """
    return correlation_id_ctx.get()


def new_correlation_id(prefix: str) -> str:
    """접두사가 붙은 짧은 상관 ID 생성(Create a short prefixed correlation ID)."""

    return f"{prefix}-{uuid.uuid4().hex[:12]}"


class CustomJsonFormatter(jsonlogger.JsonFormatter):
    """사용자 정의 JSON 포매터(Custom JSON formatter with correlation ID injection).

    Extends pythonjsonlogger.JsonFormatter to inject correlation_id
    and manually handle all field creation to avoid KeyErrors.
    """

    def add_fields(
        self,
        log_record: Dict[str, Any],
        record: logging.LogRecord,
        message_dict: Dict[str, Any],
    ) -> None:
        """
        필드 추가 및 상관 ID 삽입(Add fields and inject correlation ID).

        Args:
            log_record: The log record dictionary
            record: The LogRecord object
            message_dict: The message dictionary
        """
        super().add_fields(log_record, record, message_dict)

        if "timestamp" not in log_record:
            log_record["timestamp"] = datetime.fromtimestamp(record.created, timezone.utc).isoformat()

        log_record.pop("asctime", None)

        log_record["correlation_id"] = getattr(record, "correlation_id", None) or get_correlation_id()

        if "level" not in log_record:
            log_record["level"] = record.levelname

        if "message" not in log_record:
            log_record["message"] = record.getMessage()

        if "name" not in log_record:
            log_record["name"] = record.name

import logging
import sys

from .observability import CustomJsonFormatter, get_correlation_id

_logging_configured = False

_TEXT_FORMAT = '[%(asctime)s] %(levelname)s in %(module)s [%(correlation_id)s]: %(message)s'


class _CorrelationFilter(logging.Filter):
    """텍스트 로그에 상관 ID 주입(Inject correlation id into text records)."""

    def filter(self, record: logging.LogRecord) -> bool:
        if not hasattr(record, "correlation_id"):
            record.correlation_id = get_correlation_id()
        return True


def setup_logging(level: str = "INFO", fmt: str = "text", force: bool = False) -> None:
    """루트 로거 구성(Configure the root logger once).

    Args:
        level: Log level name
        fmt: "text" for human readable lines, "json" for structured output
        force: Reconfigure even if logging was already set up
    """
    global _logging_configured
    if _logging_configured and not force:
        return

    handler = logging.StreamHandler(sys.stdout)
    handler.addFilter(_CorrelationFilter())
    if fmt == "json":
        handler.setFormatter(CustomJsonFormatter("%(levelname)s %(name)s %(message)s"))
    else:
        handler.setFormatter(logging.Formatter(_TEXT_FORMAT))

    logging.basicConfig(
        level=level.upper(),
        handlers=[handler],
        force=True  # 기존 설정 강제 덮어쓰기
    )

    # 라이브러리 로그 레벨 조정
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)

    _logging_configured = True


def get_logger(name: str):
    """명명된 로거 가져오기(Get a named logger).

    Args:
        name: Logger name (typically __name__)

    Returns:
        Configured logger instance
    """
    setup_logging()
    return logging.getLogger(name)

"""NVD 동기화 실행기(NVD sync command-line runner)."""
from __future__ import annotations

import argparse
import asyncio
import json
import signal
import sys
from typing import Iterable, Optional

from dotenv import load_dotenv

from common_lib.config import Settings, get_settings, load_environment
from common_lib.errors import StorageUnavailableError
from common_lib.logger import get_logger, setup_logging
from nvd_sync.app.context import SyncContext
from nvd_sync.app.scheduler import SyncScheduler

# Load .env file at startup
load_dotenv()

logger = get_logger(__name__)


def parse_args(argv: Optional[Iterable[str]] = None) -> argparse.Namespace:
    """커맨드라인 인자 파싱(Parse CLI arguments)."""

    parser = argparse.ArgumentParser(description="NVD CVE 동기화 실행기(NVD CVE sync runner)")
    parser.add_argument(
        "--once",
        action="store_true",
        help="한 사이클만 실행 후 종료(Run one cycle and exit)",
    )
    parser.add_argument(
        "--window-hours",
        type=int,
        default=None,
        help="조회 윈도우 시간(Trailing window in hours)",
    )
    parser.add_argument(
        "--batch-size",
        type=int,
        default=None,
        help="배치 크기(Identifiers per batch)",
    )
    return parser.parse_args(argv)


def resolve_settings(args: argparse.Namespace, base: Optional[Settings] = None) -> Settings:
    """인자로 설정 재정의(Apply CLI overrides to settings)."""

    settings = base or get_settings()
    overrides = {}
    if args.window_hours is not None:
        overrides["sync_window_hours"] = args.window_hours
    if args.batch_size is not None:
        overrides["sync_batch_size"] = args.batch_size
    if not overrides:
        return settings
    # re-validate so bad CLI values fail the same way bad env values do
    return Settings.model_validate({**settings.model_dump(), **overrides})


async def run_once(scheduler: SyncScheduler) -> int:
    """단일 사이클 실행, 종료 코드 반환(Run one cycle and return the exit code)."""

    try:
        report = await scheduler.run_once()
    except StorageUnavailableError as exc:
        logger.critical("Storage unreachable, aborting: %s", exc)
        return 1
    except Exception:
        logger.exception("Fatal error during sync cycle")
        return 1

    print(
        json.dumps(
            {
                "cycle_id": report.cycle_id,
                "started_at": report.started_at.isoformat(),
                "duration_seconds": round(report.duration_seconds, 3),
                "work_set_size": report.work_set_size,
                **report.summary.as_dict(),
            },
            indent=2,
        )
    )
    return 0


async def run_forever(scheduler: SyncScheduler) -> int:
    """중지 신호까지 스케줄러 실행(Run the scheduler until a stop signal)."""

    loop = asyncio.get_running_loop()

    def signal_handler() -> None:
        logger.info("Shutdown signal received")
        loop.create_task(scheduler.stop())

    for sig in (signal.SIGTERM, signal.SIGINT):
        try:
            loop.add_signal_handler(sig, signal_handler)
        except NotImplementedError:
            # Windows does not support add_signal_handler
            pass

    await scheduler.start()
    return 0


async def main_async(args: argparse.Namespace) -> int:
    """비동기 메인 루틴(Async main routine)."""

    settings = resolve_settings(args)
    setup_logging(settings.log_level, settings.log_format, force=True)
    context = SyncContext.create(settings)
    scheduler = SyncScheduler(context)
    try:
        if args.once:
            return await run_once(scheduler)
        return await run_forever(scheduler)
    finally:
        await context.aclose()


def main(argv: Optional[Iterable[str]] = None) -> None:
    """동기 진입점(Synchronous entrypoint) with fast shutdown."""

    load_environment()
    args = parse_args(argv)
    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)
    try:
        code = loop.run_until_complete(main_async(args))
        loop.run_until_complete(loop.shutdown_asyncgens())
    finally:
        _shutdown_default_executor(loop)
        loop.close()
    sys.exit(code)


def _shutdown_default_executor(loop: asyncio.AbstractEventLoop) -> None:
    """Ensure default executor threads do not block process exit."""

    executor = getattr(loop, "_default_executor", None)
    if executor is None:
        return

    loop._default_executor = None  # type: ignore[attr-defined]
    executor.shutdown(wait=False, cancel_futures=True)


if __name__ == "__main__":
    main()

#!/usr/bin/env python3
# main.py
"""
Главная точка входа движка подбора водителей.
Запускает воркер матчинга или проверку окружения в зависимости от аргументов.
"""

from __future__ import annotations

import asyncio
import signal
import sys

from ride_matcher.common.constants import TypeMsg
from ride_matcher.common.localization import validate_lang_dict
from ride_matcher.common.logger import log_error, log_info, setup_logging
from ride_matcher.config import settings


MODES = ("worker", "check")

# Событие остановки для graceful shutdown
_shutdown_event: asyncio.Event | None = None


def setup_signal_handlers() -> asyncio.Event:
    """Настраивает обработчики SIGINT и SIGTERM."""
    global _shutdown_event
    _shutdown_event = asyncio.Event()

    def signal_handler(sig: int) -> None:
        if _shutdown_event and not _shutdown_event.is_set():
            print(f"\nПолучен сигнал остановки (sig={sig}), завершаем работу...")
            _shutdown_event.set()

    try:
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, lambda s=sig: signal_handler(s))
    except NotImplementedError:
        # Windows не поддерживает add_signal_handler
        signal.signal(signal.SIGINT, lambda s, f: signal_handler(s))
        signal.signal(signal.SIGTERM, lambda s, f: signal_handler(s))

    return _shutdown_event


async def run_check() -> bool:
    """Проверяет локализацию, PostgreSQL и Redis."""
    from ride_matcher.infra.database import close_db, init_db
    from ride_matcher.infra.redis_client import close_redis, init_redis

    ok = True
    errors = validate_lang_dict()
    if errors:
        ok = False
        await log_error(f"Ошибки lang_dict.json: {'; '.join(errors)}")

    db = await init_db()
    try:
        if not await db.health_check():
            ok = False
            await log_error("PostgreSQL недоступен")

        redis = await init_redis()
        try:
            if not await redis.health_check():
                ok = False
                await log_error("Redis недоступен")
        finally:
            await close_redis(redis)
    finally:
        await close_db(db)

    await log_info(f"Проверка окружения: {'OK' if ok else 'FAILED'}", type_msg=TypeMsg.INFO)
    return ok


async def run(mode: str = "worker") -> int:
    """
    Запускает компонент.

    Args:
        mode: worker (воркер матчинга) или check (проверка окружения)
    """
    setup_logging()
    await log_info(
        f"{settings.system.PROJECT_NAME} v{settings.system.VERSION}: запуск в режиме '{mode}'",
        type_msg=TypeMsg.INFO,
    )

    if mode == "check":
        return 0 if await run_check() else 1

    from ride_matcher.worker.runner import run_workers

    stop_event = setup_signal_handlers()
    await run_workers(stop_event)
    return 0


def print_usage() -> None:
    print("""
Использование:
    python main.py [режим]

Режимы:
    worker    Воркер матчинга заявок (по умолчанию)
    check     Проверка конфигурации, PostgreSQL и Redis
    """)


def main() -> None:
    """Точка входа командной строки."""
    mode = "worker"
    if len(sys.argv) > 1:
        arg = sys.argv[1].lower()
        if arg in ("--help", "-h"):
            print_usage()
            sys.exit(0)
        if arg not in MODES:
            print(f"Ошибка: неизвестный режим '{arg}'")
            print_usage()
            sys.exit(1)
        mode = arg

    try:
        sys.exit(asyncio.run(run(mode)))
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    main()

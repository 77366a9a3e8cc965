# ride_matcher/worker/runner.py
"""
Запускалка воркеров.
"""

from __future__ import annotations

import asyncio
from typing import List, Optional

from ride_matcher.common.constants import TypeMsg
from ride_matcher.common.logger import log_error, log_info
from ride_matcher.core.matching.service import MatchingEngine
from ride_matcher.core.meetups.tracker import MeetupCompletionTracker
from ride_matcher.core.notifications.dispatcher import NotificationDispatcher, RedisNotificationTransport
from ride_matcher.infra.database import close_db, init_db
from ride_matcher.infra.redis_client import close_redis, init_redis
from ride_matcher.infra.store import Store
from ride_matcher.worker.base import PeriodicWorker
from ride_matcher.worker.matching import MatchingWorker


def build_matching_worker(
    store: Store,
    dispatcher: NotificationDispatcher,
    interval: Optional[float] = None,
) -> MatchingWorker:
    """Собирает движок с трекером встреч и оборачивает его в воркер."""
    tracker = MeetupCompletionTracker(store, dispatcher)
    engine = MatchingEngine(store, dispatcher, tracker=tracker)
    return MatchingWorker(engine, interval=interval)


async def run_workers(stop_event: Optional[asyncio.Event] = None) -> None:
    """
    Поднимает PostgreSQL и Redis, запускает MatchingWorker и ждёт остановки.

    Args:
        stop_event: Событие остановки; без него работаем до отмены задачи
    """
    from ride_matcher.config import settings

    await log_info("Запуск MatchingWorker...", type_msg=TypeMsg.INFO)

    db = await init_db()
    try:
        redis = await init_redis()
    except Exception:
        await close_db(db)
        raise

    dispatcher = NotificationDispatcher(
        RedisNotificationTransport(redis, settings.notifications.NOTIFY_CHANNEL_PREFIX)
    )
    workers: List[PeriodicWorker] = [build_matching_worker(Store(db), dispatcher)]
    stop_event = stop_event or asyncio.Event()

    try:
        for worker in workers:
            await worker.start()

        await log_info(f"Запущено {len(workers)} воркеров", type_msg=TypeMsg.INFO)
        await stop_event.wait()

    except asyncio.CancelledError:
        await log_info("Получен сигнал остановки", type_msg=TypeMsg.INFO)
    except Exception as e:
        await log_error(f"Критическая ошибка: {e}", exc_info=True)
        raise
    finally:
        for worker in workers:
            await worker.stop()

        await close_redis(redis)
        await close_db(db)

        await log_info("Воркеры остановлены", type_msg=TypeMsg.INFO)

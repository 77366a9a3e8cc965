# ride_matcher/worker/base.py
"""
Базовый класс для периодических воркеров.
"""

from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from typing import Any, List, Optional

from ride_matcher.common.constants import TypeMsg
from ride_matcher.common.logger import log_error, log_info


class PeriodicWorker(ABC):
    """
    Воркер, выполняющий одну единицу работы за интервал.

    Цикл живёт в одной asyncio.Task; остановка через asyncio.Event,
    поэтому stop() детерминированно дожидается завершения текущего прохода.
    Исключение в проходе логируется, следующий проход выполняется по расписанию.
    """

    def __init__(self, interval: float) -> None:
        """
        Args:
            interval: Пауза между проходами в секундах
        """
        if interval <= 0:
            raise ValueError(f"Интервал воркера должен быть положительным: {interval}")
        self.interval = interval
        self._stop_event = asyncio.Event()
        self._running = False
        self._tasks: List[asyncio.Task] = []
        self.runs = 0
        self.failures = 0

    @property
    @abstractmethod
    def name(self) -> str:
        """Имя воркера."""
        pass

    @abstractmethod
    async def run_once(self) -> Any:
        """Одна единица работы."""
        pass

    @property
    def is_running(self) -> bool:
        return self._running

    async def start(self) -> None:
        """Запускает воркер."""
        if self._running:
            return

        self._running = True
        self._stop_event.clear()
        self._tasks.append(asyncio.create_task(self._loop(), name=self.name))
        await log_info(f"Воркер {self.name} запущен, интервал {self.interval} с", type_msg=TypeMsg.INFO)

    async def stop(self) -> None:
        """Останавливает воркер и дожидается завершения цикла."""
        if not self._running:
            return

        self._running = False
        self._stop_event.set()

        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)

        self._tasks.clear()
        await log_info(f"Воркер {self.name} остановлен", type_msg=TypeMsg.INFO)

    async def _loop(self) -> None:
        while not self._stop_event.is_set():
            await self._run_safely()
            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=self.interval)
            except asyncio.TimeoutError:
                continue

    async def _run_safely(self) -> Optional[Any]:
        self.runs += 1
        try:
            return await self.run_once()
        except Exception as e:
            self.failures += 1
            await log_error(f"Ошибка в воркере {self.name}: {e}", exc_info=True)
            return None

# ride_matcher/worker/matching.py
"""
Воркер матчинга заявок с водителями.
"""

from __future__ import annotations

from typing import Optional

from ride_matcher.common.constants import TypeMsg
from ride_matcher.common.logger import log_info
from ride_matcher.core.matching.service import MatchingEngine, TickOutcome, TickResult
from ride_matcher.worker.base import PeriodicWorker


class MatchingWorker(PeriodicWorker):
    """
    Вызывает MatchingEngine.tick() каждые MATCHING_TICK_INTERVAL секунд.
    За один тик назначается не больше одной заявки.
    """

    def __init__(self, engine: MatchingEngine, interval: Optional[float] = None) -> None:
        if interval is None:
            from ride_matcher.config import settings
            interval = settings.matching.MATCHING_TICK_INTERVAL
        super().__init__(interval)
        self.engine = engine
        self.last_result: Optional[TickResult] = None

    @property
    def name(self) -> str:
        return "MatchingWorker"

    async def run_once(self) -> TickResult:
        result = await self.engine.tick()
        self.last_result = result
        if result.outcome == TickOutcome.NO_CANDIDATE:
            await log_info(
                f"Заявка {result.ride_id} ждёт свободного водителя",
                type_msg=TypeMsg.DEBUG,
            )
        return result

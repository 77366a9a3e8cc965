# ride_matcher/worker/__init__.py
"""
Фоновые воркеры: периодический матчинг заявок.
"""

from ride_matcher.worker.base import PeriodicWorker
from ride_matcher.worker.matching import MatchingWorker

__all__ = ["PeriodicWorker", "MatchingWorker"]

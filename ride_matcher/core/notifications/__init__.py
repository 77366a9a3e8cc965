# ride_matcher/core/notifications/__init__.py
"""
Уведомления: типизированные payload'ы, сборщики и диспетчер.
"""

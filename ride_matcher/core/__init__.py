# ride_matcher/core/__init__.py
"""
Доменный слой: заявки, водители, встречи, матчинг, уведомления.
"""

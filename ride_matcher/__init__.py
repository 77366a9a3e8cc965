# ride_matcher/__init__.py
"""
Ride Matcher: подбор водителей для заявок на поездку и отслеживание встреч.
"""

__version__ = "0.1.0"

# ride_matcher/core/rides/__init__.py
from ride_matcher.core.rides.models import BookRideRequest, Ride, RideCreateDTO

__all__ = ["BookRideRequest", "Ride", "RideCreateDTO"]

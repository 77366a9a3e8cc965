# ride_matcher/core/drivers/__init__.py
from ride_matcher.core.drivers.models import Driver, DriverCreateDTO, RegisterDriverRequest

__all__ = ["Driver", "DriverCreateDTO", "RegisterDriverRequest"]

# ride_matcher/core/geo/__init__.py
from ride_matcher.core.geo.service import (
    EtaEstimate,
    FareBreakdown,
    calculate_distance,
    calculate_eta,
    calculate_fare,
    is_valid_coordinate,
)

__all__ = [
    "EtaEstimate",
    "FareBreakdown",
    "calculate_distance",
    "calculate_eta",
    "calculate_fare",
    "is_valid_coordinate",
]

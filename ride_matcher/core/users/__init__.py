# ride_matcher/core/users/__init__.py
from ride_matcher.core.users.models import User

__all__ = ["User"]

from .charge_point import ChargePointRepository
from .check_in import CheckInQuery, CheckInRepository
from .user import UserRepository

__all__ = [
    "ChargePointRepository",
    "CheckInQuery",
    "CheckInRepository",
    "UserRepository",
]

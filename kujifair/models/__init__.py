from .base import Base

# import models so Alembic/autoloaders can discover mappers
from .activity import Activity, ActivityEvent, ActivityStatus, PrizeLevel  # noqa: F401
from .draw import DrawRecord  # noqa: F401

__all__ = [
    "Base",
    "Activity",
    "ActivityEvent",
    "ActivityStatus",
    "PrizeLevel",
    "DrawRecord",
]

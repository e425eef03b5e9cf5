"""FastAPI dependencies.

Why this module exists:
- Endpoints `Depends(get_parking_manager)` instead of building stores themselves.
- One manager (and so one set of stores) is shared by every request of the
  process; the backend is picked from `PARKING_STORE_BACKEND`.
- Tests swap the manager via `app.dependency_overrides`.
"""

from functools import lru_cache

from core.config import get_settings
from core.parking_manager import ParkingManager

from .database import SessionLocal


@lru_cache
def get_parking_manager() -> ParkingManager:
    """Process-wide ParkingManager for the configured backend."""
    settings = get_settings()
    if settings.store_backend == "memory":
        return ParkingManager.in_memory(settings)
    return ParkingManager.with_sql(SessionLocal, settings)

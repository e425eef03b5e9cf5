"""Runtime configuration for the parking core and its HTTP layer.

Values come from environment variables prefixed with ``PARKING_`` (for
example ``PARKING_STORE_BACKEND=sql``). Defaults are suitable for local runs
and tests.
"""

from functools import lru_cache
from typing import List, Literal, Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class ParkingSettings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="PARKING_", case_sensitive=False)

    database_url: str = "sqlite:///./parking_garage.db"
    store_backend: Literal["memory", "sql"] = "sql"

    # Number of fresh availability snapshots a check-in may read before
    # giving up with NoSpotsAvailable.
    reservation_attempts: int = Field(default=3, ge=1)

    store_lock_timeout_seconds: float = Field(default=5.0, gt=0)
    operation_timeout_seconds: float = Field(default=15.0, gt=0)

    log_level: str = "INFO"
    # Comma-separated list, "*" for any origin.
    cors_origins: str = "*"

    # When set, the app seeds this garage with the default layout at startup
    # if it has no spots yet.
    demo_garage_id: Optional[str] = None

    @property
    def cors_origin_list(self) -> List[str]:
        return [origin.strip() for origin in self.cors_origins.split(",") if origin.strip()]


@lru_cache
def get_settings() -> ParkingSettings:
    return ParkingSettings()

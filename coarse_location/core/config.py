from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field
from typing import Optional

# Coarse locations are never reported more precisely than this.
MIN_ACCURACY_METERS = 200.0

class Settings(BaseSettings):
    PROJECT_NAME: str = "coarse-location"
    VERSION: str = "0.1.0"
    ENV: str = Field("development", description="Application environment (e.g., production, development)")
    LOG_LEVEL: str = Field("INFO", description="Root log level")

    # --- Coarsening ---
    MIN_ACCURACY_METERS: float = Field(
        MIN_ACCURACY_METERS,
        description="Accuracy floor and grid cell size in meters (values below 200 are raised to 200)",
    )
    OFFSET_UPDATE_INTERVAL_MS: int = Field(
        60 * 60 * 1000, gt=0, description="How often the random offset drifts"
    )
    OFFSET_CHANGE_FRACTION: float = Field(
        0.03, gt=0, lt=1, description="Weight of the fresh gaussian sample on each drift step"
    )

    # --- Feature Flags ---
    DENSITY_COARSENING_ENABLED: bool = Field(
        False, description="Snap to density-sized S2 cells instead of the fixed grid"
    )

    # --- Density Source ---
    DENSITY_CACHE_SIZE: int = Field(20, gt=0, description="Number of density cells kept in memory")
    DENSITY_API_URL: Optional[str] = Field(None, description="Base URL of the population density service")
    DENSITY_MAX_RETRIES: int = 2
    DENSITY_INITIAL_BACKOFF: float = 0.5 # seconds
    DENSITY_TIMEOUT: float = 5.0 # seconds

    # Pydantic configuration
    model_config = SettingsConfigDict(
        env_file=".env",
        extra="ignore"
    )

settings = Settings()

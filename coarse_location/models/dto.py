from pydantic import BaseModel, ConfigDict, Field
from typing import Any, Dict, List, Optional

# --- Geometry ---

class Coordinate(BaseModel):
    """A point on the sphere in decimal degrees."""
    model_config = ConfigDict(frozen=True)

    latitude: float = Field(..., description="Latitude in degrees.")
    longitude: float = Field(..., description="Longitude in degrees.")

# --- Readings ---

class FineReading(BaseModel):
    """Precise reading handed in by the location pipeline. Never mutated."""
    model_config = ConfigDict(frozen=True)

    latitude: float = Field(..., description="Latitude in degrees.")
    longitude: float = Field(..., description="Longitude in degrees.")
    accuracy_meters: float = Field(0.0, description="Horizontal accuracy radius in meters.")
    timestamp_ms: int = Field(0, description="Wall clock time of the fix (ms since epoch).")
    elapsed_realtime_ms: Optional[int] = Field(None, description="Monotonic time of the fix.")
    provider: Optional[str] = Field(None, description="Name of the producing provider.")
    bearing: Optional[float] = Field(None, description="Bearing in degrees (stripped when coarsened).")
    speed: Optional[float] = Field(None, description="Speed in m/s (stripped when coarsened).")
    altitude: Optional[float] = Field(None, description="Altitude in meters (stripped when coarsened).")
    extras: Optional[Dict[str, Any]] = Field(None, description="Opaque provider extras (stripped when coarsened).")

class CoarseReading(BaseModel):
    """Reading safe to hand to a consumer holding only coarse location trust."""
    model_config = ConfigDict(frozen=True, extra="forbid")

    latitude: float = Field(..., description="Snapped latitude in degrees.")
    longitude: float = Field(..., description="Snapped longitude in degrees.")
    accuracy_meters: float = Field(..., description="Reported accuracy, never below the coarse floor.")
    timestamp_ms: int = Field(0, description="Wall clock time of the source fix.")
    elapsed_realtime_ms: Optional[int] = None
    provider: Optional[str] = None

    # Fields a fine reading may carry that must never leave in coarse form.
    @property
    def bearing(self) -> None:
        return None

    @property
    def speed(self) -> None:
        return None

    @property
    def altitude(self) -> None:
        return None

    @property
    def extras(self) -> None:
        return None

# Fields dropped when a fine reading is copied into a coarse one.
SENSITIVE_FIELDS = {"bearing", "speed", "altitude", "extras"}

# --- Batches ---

class LocationResult(BaseModel):
    """Ordered batch of fine readings delivered together."""
    model_config = ConfigDict(frozen=True)

    readings: List[FineReading] = Field(..., min_length=1)

class CoarseLocationResult(BaseModel):
    """Ordered batch of coarse readings, one per input reading."""
    model_config = ConfigDict(frozen=True)

    readings: List[CoarseReading] = Field(..., min_length=1)

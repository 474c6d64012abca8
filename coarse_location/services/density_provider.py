import random
import time
from typing import Optional, Protocol

import httpx
import structlog

from coarse_location.core.config import settings
from coarse_location.core.exceptions import DensityProviderError

logger = structlog.get_logger(__name__)

DEFAULT_LEVEL_PATH = "/default-level"
LEVEL_PATH = "/level"


class DensityProvider(Protocol):
    """Blocking source of population density levels. Called off the hot path."""
    def fetch_default_level(self) -> int: ...
    def fetch_level(self, lat: float, lon: float) -> int: ...


class HttpDensityProvider:
    """
    Population density service client.

    Endpoints (both answer `{"level": <int>}`):
        GET {base_url}/default-level
        GET {base_url}/level?lat=<lat>&lon=<lon>

    Timeouts are retried with exponential backoff; anything else fails fast.
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        max_retries: Optional[int] = None,
        initial_backoff: Optional[float] = None,
        client: Optional[httpx.Client] = None,
    ):
        base_url = base_url or settings.DENSITY_API_URL
        if not base_url:
            raise ValueError("DENSITY_API_URL is not set in the environment")
        self.max_retries = settings.DENSITY_MAX_RETRIES if max_retries is None else max_retries
        self.initial_backoff = settings.DENSITY_INITIAL_BACKOFF if initial_backoff is None else initial_backoff
        self._client = client or httpx.Client(
            base_url=base_url,
            timeout=settings.DENSITY_TIMEOUT if timeout is None else timeout,
        )

    def fetch_default_level(self) -> int:
        return self._get_level(DEFAULT_LEVEL_PATH, params=None)

    def fetch_level(self, lat: float, lon: float) -> int:
        return self._get_level(LEVEL_PATH, params={"lat": lat, "lon": lon})

    def close(self) -> None:
        self._client.close()

    def _get_level(self, path: str, params: Optional[dict]) -> int:
        for attempt in range(self.max_retries + 1):
            try:
                response = self._client.get(path, params=params)
                response.raise_for_status()
                data = response.json()
            except httpx.TimeoutException:
                logger.warning("density_request_timeout", path=path, attempt=attempt + 1)
                if attempt < self.max_retries:
                    # Wait with exponential backoff and jitter
                    wait_time = self.initial_backoff * (2 ** attempt) + random.uniform(0, 0.1)
                    time.sleep(wait_time)
                    continue
                raise DensityProviderError(f"density service timed out after {attempt + 1} attempts")
            except httpx.HTTPStatusError as e:
                logger.error("density_request_status_error", path=path, status_code=e.response.status_code)
                raise DensityProviderError(f"density service returned {e.response.status_code}") from e
            except (httpx.HTTPError, ValueError) as e:
                logger.error("density_request_failed", path=path, error=str(e))
                raise DensityProviderError(f"density request failed: {e}") from e

            level = data.get("level") if isinstance(data, dict) else None
            if not isinstance(level, int) or isinstance(level, bool):
                raise DensityProviderError(f"malformed density payload: {data!r}")
            return level

        # Should be unreachable, but for completeness
        raise DensityProviderError("density request logic failed to return a level")

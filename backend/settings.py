import os
from pathlib import Path

# Basic settings helper to read environment configuration.

BACKEND_DIR = Path(__file__).resolve().parent


def _as_bool(val: str | None, default: bool = False) -> bool:
    if val is None:
        return default
    return val.lower() in ("1", "true", "yes", "on")


def _as_float(val: str | None, default: float) -> float:
    if val is None or val.strip() == "":
        return default
    return float(val)


def _as_int(val: str | None, default: int) -> int:
    if val is None or val.strip() == "":
        return default
    return int(val)


class Settings:
    def __init__(self) -> None:
        self.RESOURCE_DB_PATH: str = os.getenv(
            "RESOURCE_DB_PATH", str(BACKEND_DIR / "data" / "resources.sqlite")
        )
        self.LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO").upper()

        # Cache lifetimes
        self.GEO_CACHE_TTL_SECONDS: int = _as_int(os.getenv("GEO_CACHE_TTL_SECONDS"), 7 * 24 * 3600)
        self.QUERY_CACHE_TTL_SECONDS: int = _as_int(os.getenv("QUERY_CACHE_TTL_SECONDS"), 24 * 3600)
        self.CACHE_SWEEP_INTERVAL_SECONDS: float = _as_float(
            os.getenv("CACHE_SWEEP_INTERVAL_SECONDS"), 3600.0
        )
        self.CACHE_SWEEPER_ENABLED: bool = _as_bool(os.getenv("CACHE_SWEEPER_ENABLED"), True)

        # Search policy
        self.BASE_RADIUS_DEGREES: float = _as_float(os.getenv("BASE_RADIUS_DEGREES"), 0.01)
        self.MIN_RESOURCE_CONFIDENCE: float = _as_float(os.getenv("MIN_RESOURCE_CONFIDENCE"), 0.15)

        # Nominatim (reverse / forward geocoding)
        self.NOMINATIM_BASE_URL: str = os.getenv(
            "NOMINATIM_BASE_URL", "https://nominatim.openstreetmap.org"
        )
        self.NOMINATIM_USER_AGENT: str | None = os.getenv("NOMINATIM_USER_AGENT")
        self.NOMINATIM_REFERER: str | None = os.getenv("NOMINATIM_REFERER")
        self.NOMINATIM_MIN_INTERVAL: float = _as_float(os.getenv("NOMINATIM_MIN_INTERVAL"), 1.1)
        self.REVERSE_GEOCODE_TIMEOUT: float = _as_float(os.getenv("REVERSE_GEOCODE_TIMEOUT"), 3.0)
        self.FORWARD_GEOCODE_TIMEOUT: float = _as_float(os.getenv("FORWARD_GEOCODE_TIMEOUT"), 5.0)

        # Providers
        self.OVERPASS_URL: str = os.getenv("OVERPASS_URL", "https://overpass-api.de/api/interpreter")
        self.OVERPASS_TIMEOUT: float = _as_float(os.getenv("OVERPASS_TIMEOUT"), 30.0)
        self.GOOGLE_PLACES_API_KEY: str = os.getenv("GOOGLE_PLACES_API_KEY", "")
        self.PLACES_TIMEOUT: float = _as_float(os.getenv("PLACES_TIMEOUT"), 10.0)
        self.PROVIDER_MAX_ATTEMPTS: int = _as_int(os.getenv("PROVIDER_MAX_ATTEMPTS"), 3)
        self.PROVIDER_BACKOFF_BASE_SECONDS: float = _as_float(
            os.getenv("PROVIDER_BACKOFF_BASE_SECONDS"), 1.0
        )


settings = Settings()

from .geo_cache import GeoCache
from .query_cache import QueryCache
from . import models

__all__ = ["GeoCache", "QueryCache", "models"]

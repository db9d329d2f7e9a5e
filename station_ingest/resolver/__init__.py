from .entity_cache import EntityCache
from .entity_resolver import EntityResolver, default_station_name

__all__ = ["EntityCache", "EntityResolver", "default_station_name"]

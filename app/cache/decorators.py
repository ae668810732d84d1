from functools import wraps
from typing import Callable

from app.cache.layer import CacheLayer, cache_layer


def async_cached(key_builder: Callable[..., str], ttl: Callable[[], int] | int):
    """
    Read-through cache for async loaders. key_builder receives same args/kwargs.

    On a hit the cached value is returned as stored. On a miss the loader
    runs and the cache is populated after the call, via ``effects`` when
    the caller passes one, so the response does not wait on Redis.
    Example:
      @async_cached(lambda project_id, *_, **__: f"project:{project_id}", ttl=60)
      async def get_project(project_id, db, *, effects=None): ...
    """

    def decorator(fn: Callable):
        @wraps(fn)
        async def wrapper(*args, **kwargs):
            effects = kwargs.get("effects")
            cache: CacheLayer = effects.cache if effects is not None else cache_layer
            key = key_builder(*args, **kwargs)

            cached = await cache.get(key)
            if cached is not None:
                return cached

            value = await fn(*args, **kwargs)
            if value is None:
                return None
            if hasattr(value, "model_dump"):
                value = value.model_dump(mode="json")
            elif isinstance(value, list):
                value = [v.model_dump(mode="json") if hasattr(v, "model_dump") else v for v in value]

            seconds = ttl() if callable(ttl) else ttl
            if effects is not None:
                effects.defer(cache.set, key, value, seconds)
            else:
                await cache.set(key, value, seconds)
            return value

        return wrapper

    return decorator

"""
Duration cache

Cache-aside wrapper around the duration computations. Entries are keyed
``duration_<type>_<id>`` and live for DURATION_CACHE_TTL seconds unless
invalidated explicitly by the propagation engine.
"""
import logging

from django.conf import settings
from django.core.cache import caches

logger = logging.getLogger(__name__)


class DurationCache:
    """
    Keyed cache for computed durations.

    backend can be any object exposing the Django cache API subset used here
    (get_or_set, delete, delete_many). Defaults to the cache alias named by
    DURATION_CACHE_ALIAS.
    """
    KEY_PREFIX = 'duration_'

    def __init__(self, backend=None, ttl=None):
        if backend is None:
            backend = caches[getattr(settings, 'DURATION_CACHE_ALIAS', 'default')]
        if ttl is None:
            ttl = getattr(settings, 'DURATION_CACHE_TTL', 3600)
        self.backend = backend
        self.ttl = ttl

    @classmethod
    def make_key(cls, entity_type, entity_id):
        return f"{cls.KEY_PREFIX}{entity_type}_{entity_id}"

    def get(self, entity_type, entity_id, compute):
        """
        Return the cached value for the entity, computing and storing it on a miss.
        Entities without an id are computed directly and never stored.
        """
        if not entity_id:
            return compute()
        key = self.make_key(entity_type, entity_id)
        return self.backend.get_or_set(key, compute, self.ttl)

    def invalidate(self, entity_type, entity_id):
        if not entity_id:
            return
        key = self.make_key(entity_type, entity_id)
        self.backend.delete(key)
        logger.debug(f"Invalidated duration cache key={key}")

    def invalidate_many(self, entries):
        """Drop several entries at once, entries being (entity_type, entity_id) pairs"""
        keys = [self.make_key(entity_type, entity_id) for entity_type, entity_id in entries if entity_id]
        if keys:
            self.backend.delete_many(keys)
        return len(keys)

"""
Redis read-through cache for catalog lookups.

Caches single entries, list pages and search results as JSON. Any Redis
failure degrades to a cache miss so the catalog keeps working without it.
"""

import hashlib
import json
import logging
from typing import Any, Dict, Optional

import redis
from redis.exceptions import RedisError

logger = logging.getLogger(__name__)


class CatalogCache:
    """
    Redis-backed cache for catalog reads.

    Keys:
        <prefix>dataset:<id>      single entry
        <prefix>list:<digest>     list page for a parameter set
        <prefix>search:<keyword>  search results
    """

    KEY_PREFIX = "dualstore:catalog:"

    def __init__(
        self,
        redis_url: str = "redis://localhost:6379/0",
        ttl_seconds: int = 3600,
        list_ttl_seconds: int = 300,
        client: Optional[redis.Redis] = None,
    ):
        """
        Initialize catalog cache.

        Args:
            redis_url: Redis connection URL
            ttl_seconds: TTL for single entries
            list_ttl_seconds: TTL for list pages and search results
            client: Preconfigured Redis client
        """
        self.redis_url = redis_url
        self.ttl_seconds = ttl_seconds
        self.list_ttl_seconds = list_ttl_seconds
        self._client = client

    def _get_client(self) -> redis.Redis:
        """Get or create Redis client."""
        if self._client is None:
            self._client = redis.Redis.from_url(
                self.redis_url,
                decode_responses=True,
                socket_connect_timeout=5,
            )
        return self._client

    @staticmethod
    def list_key_suffix(params: Dict[str, Any]) -> str:
        """Stable digest of list parameters."""
        payload = json.dumps(params, sort_keys=True, default=str)
        return hashlib.sha256(payload.encode("utf-8")).hexdigest()[:16]

    def _key(self, kind: str, name: str) -> str:
        return f"{self.KEY_PREFIX}{kind}:{name}"

    def _get(self, key: str) -> Optional[Any]:
        try:
            raw = self._get_client().get(key)
        except RedisError as e:
            logger.warning(f"Cache read failed for {key}: {e}")
            return None
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except ValueError:
            logger.warning(f"Discarding unreadable cache value for {key}")
            return None

    def _set(self, key: str, value: Any, ttl: int) -> None:
        try:
            self._get_client().setex(key, ttl, json.dumps(value, default=str))
        except RedisError as e:
            logger.warning(f"Cache write failed for {key}: {e}")

    def get_entry(self, dataset_id: str) -> Optional[Dict[str, Any]]:
        return self._get(self._key("dataset", dataset_id))

    def set_entry(self, dataset_id: str, value: Dict[str, Any]) -> None:
        self._set(self._key("dataset", dataset_id), value, self.ttl_seconds)

    def get_list(self, params: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        return self._get(self._key("list", self.list_key_suffix(params)))

    def set_list(self, params: Dict[str, Any], value: Dict[str, Any]) -> None:
        self._set(self._key("list", self.list_key_suffix(params)), value, self.list_ttl_seconds)

    def get_search(self, keyword: str) -> Optional[Any]:
        return self._get(self._key("search", keyword.lower()))

    def set_search(self, keyword: str, value: Any) -> None:
        self._set(self._key("search", keyword.lower()), value, self.list_ttl_seconds)

    def invalidate(self, dataset_id: Optional[str] = None) -> int:
        """
        Drop cached pages and searches, and the entry for dataset_id.

        Returns:
            Number of keys deleted
        """
        deleted = 0
        if dataset_id:
            deleted += self._delete_keys([self._key("dataset", dataset_id)])
        deleted += self.clear("list:*")
        deleted += self.clear("search:*")
        return deleted

    def clear(self, pattern: str = "*") -> int:
        """
        Delete cache keys matching a pattern under the cache prefix.

        Args:
            pattern: Glob pattern relative to the prefix (e.g. 'dataset:*')

        Returns:
            Number of keys deleted
        """
        try:
            keys = list(self._get_client().scan_iter(match=f"{self.KEY_PREFIX}{pattern}"))
        except RedisError as e:
            logger.warning(f"Cache scan failed for pattern {pattern}: {e}")
            return 0
        return self._delete_keys(keys)

    def _delete_keys(self, keys) -> int:
        if not keys:
            return 0
        try:
            return int(self._get_client().delete(*keys))
        except RedisError as e:
            logger.warning(f"Cache delete failed: {e}")
            return 0

    def ping(self) -> bool:
        try:
            return bool(self._get_client().ping())
        except RedisError:
            return False

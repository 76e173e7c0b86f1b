"""
Valkey (Redis-compatible) storage for browser sessions.

Values are JSON documents with a TTL. Connection errors propagate;
there is no in-process fallback.
"""

import json
import logging

import redis

logger = logging.getLogger(__name__)


class ValkeyClient:
    """JSON documents keyed by string, each written with an expiry."""

    def __init__(self, url: str):
        """Raises redis.ConnectionError when the server cannot be reached."""
        self._client = redis.from_url(url, decode_responses=True)
        self._client.ping()
        logger.info("ValkeyClient connected")

    def ping(self) -> bool:
        self._client.ping()
        return True

    def set_json(self, key: str, value: dict, expire_seconds: int) -> None:
        """Overwrites `key` and resets its TTL."""
        self._client.setex(key, expire_seconds, json.dumps(value))

    def get_json(self, key: str) -> dict | None:
        """
        Stored document, or None once the key is gone.

        Raises ValueError when the stored value is not JSON.
        """
        raw = self._client.get(key)
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except json.JSONDecodeError as e:
            raise ValueError(f"Invalid JSON in key '{key}': {e}") from e

    def delete(self, key: str) -> bool:
        """True when the key existed."""
        return self._client.delete(key) > 0

    def close(self) -> None:
        self._client.close()
        logger.info("ValkeyClient closed")

"""Redis tree store adapter using redis-py.

The whole tree is kept as one JSON value under a single key, so a read
or a write always covers the root.
"""

import asyncio
import json
import logging
from typing import Any, Optional

import redis
from redis.exceptions import RedisError

from ecobin_backup.core.exceptions import StoreError, StoreWriteError
from ecobin_backup.stores.base import TreeStoreAdapter


logger = logging.getLogger(__name__)


class RedisTreeStore(TreeStoreAdapter):
    """Tree store backed by a JSON string at one Redis key."""

    def __init__(
        self,
        url: str = "redis://localhost:6379/0",
        key: str = "ecobin:tree",
        client: Optional[redis.Redis] = None
    ):
        self.key = key
        self._client = client or redis.Redis.from_url(url, decode_responses=True)

    async def read_tree(self) -> Any:
        try:
            raw = await asyncio.to_thread(self._client.get, self.key)
        except RedisError as e:
            raise StoreError(f"Failed to read tree at {self.key}: {e}", store=self.name) from e

        if raw is None:
            return None
        return json.loads(raw)

    async def write_tree(self, value: Any) -> None:
        try:
            if value is None:
                await asyncio.to_thread(self._client.delete, self.key)
            else:
                await asyncio.to_thread(self._client.set, self.key, json.dumps(value))
        except RedisError as e:
            raise StoreWriteError(f"Failed to write tree at {self.key}: {e}", store=self.name) from e

        logger.debug(f"Wrote tree root to {self.key}")

    async def close(self) -> None:
        await asyncio.to_thread(self._client.close)

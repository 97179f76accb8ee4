# branchplayer/state/redis_state.py

from __future__ import annotations

import json
import logging
from typing import Any, Optional

from redis.asyncio import Redis
from redis.asyncio.client import PubSub
from redis.exceptions import ConnectionError, TimeoutError

log = logging.getLogger("redis.state")


class RedisUnavailable(Exception):
    pass


class RedisState:
    """
    Single Redis wrapper for the device session.

    - Safe JSON
    - Sets for collection membership
    - Pub/Sub
    - Reads degrade to "no data"; writes raise RedisUnavailable so
      call sites can turn the failure into a status label
    """

    def __init__(self, redis: Redis):
        self.redis = redis

    # =========================
    # JSON HELPERS
    # =========================

    async def get_json(self, key: str) -> Optional[Any]:
        try:
            raw = await self.redis.get(key)
            if raw is None:
                return None
            return json.loads(raw)
        except (ConnectionError, TimeoutError):
            log.exception("redis_get_json_connection_error", extra={"key": key})
            return None
        except json.JSONDecodeError:
            log.error("redis_get_json_decode_error", extra={"key": key})
            return None

    async def get_many_json(self, keys: list[str]) -> list[Optional[Any]]:
        if not keys:
            return []
        try:
            raws = await self.redis.mget(keys)
        except (ConnectionError, TimeoutError):
            log.exception("redis_mget_connection_error", extra={"count": len(keys)})
            return [None] * len(keys)

        out: list[Optional[Any]] = []
        for key, raw in zip(keys, raws):
            if raw is None:
                out.append(None)
                continue
            try:
                out.append(json.loads(raw))
            except json.JSONDecodeError:
                log.error("redis_get_json_decode_error", extra={"key": key})
                out.append(None)
        return out

    async def set_json(self, key: str, value: Any) -> None:
        try:
            await self.redis.set(key, json.dumps(value))
        except (ConnectionError, TimeoutError) as e:
            log.exception("redis_set_json_connection_error", extra={"key": key})
            raise RedisUnavailable(str(e)) from e

    # =========================
    # SETS
    # =========================

    async def members(self, key: str) -> list[str]:
        try:
            raw = await self.redis.smembers(key)
        except (ConnectionError, TimeoutError):
            log.exception("redis_smembers_connection_error", extra={"key": key})
            return []
        return sorted(m.decode("utf-8") if isinstance(m, bytes) else str(m) for m in raw)

    async def add_member(self, key: str, member: str) -> None:
        try:
            await self.redis.sadd(key, member)
        except (ConnectionError, TimeoutError) as e:
            log.exception("redis_sadd_connection_error", extra={"key": key})
            raise RedisUnavailable(str(e)) from e

    async def remove_member(self, key: str, member: str) -> None:
        try:
            await self.redis.srem(key, member)
        except (ConnectionError, TimeoutError) as e:
            log.exception("redis_srem_connection_error", extra={"key": key})
            raise RedisUnavailable(str(e)) from e

    # =========================
    # PUB / SUB
    # =========================

    async def publish_event(self, channel: str, payload: dict) -> None:
        """
        Publish a change notification to subscribed devices
        """
        try:
            await self.redis.publish(channel, json.dumps(payload))
        except (ConnectionError, TimeoutError):
            log.exception(
                "redis_publish_error",
                extra={"channel": channel, "payload": payload},
            )

    def pubsub(self) -> PubSub:
        return self.redis.pubsub()

    # =========================
    # SAFE OPS
    # =========================

    async def exists(self, key: str) -> bool:
        try:
            return bool(await self.redis.exists(key))
        except (ConnectionError, TimeoutError):
            return False

    async def delete(self, key: str) -> None:
        try:
            await self.redis.delete(key)
        except (ConnectionError, TimeoutError) as e:
            log.exception("redis_delete_connection_error", extra={"key": key})
            raise RedisUnavailable(str(e)) from e

# Copyright (c) 2025-2026 OptimNow. All Rights Reserved.
# Licensed under the Apache License, Version 2.0.
# See LICENSE file in the project root for full license information.

"""Message transport for tally summaries and billable usage.

Messages are JSON payloads tagged with a partition key (the account id).
The Redis Streams implementation appends one stream entry per message.
"""

import json
import logging
from typing import Any, Optional, Protocol

import redis.asyncio as redis
from redis.exceptions import RedisError

logger = logging.getLogger(__name__)


class TransientDeliveryError(Exception):
    """Raised when a message could not be handed to the transport but may succeed later."""

    pass


class MessageTransport(Protocol):
    """Boundary used by the tally pipeline and the billing producer."""

    async def send(self, topic: str, key: str, payload: dict[str, Any]) -> None: ...

    async def read(self, topic: str, count: int = 10, block_ms: int = 0) -> list[dict[str, Any]]: ...


class RedisStreamTransport:
    """
    Redis Streams transport.

    Each topic is a stream; entries carry ``key`` and a JSON ``payload``.
    Reads track the last delivered entry id per topic.
    """

    def __init__(self, client: redis.Redis, max_stream_length: Optional[int] = 100_000):
        """
        Args:
            client: Redis client created with ``decode_responses=True``
            max_stream_length: Approximate cap applied on every append (None disables trimming)
        """
        self._client = client
        self._max_stream_length = max_stream_length
        self._last_ids: dict[str, str] = {}

    @classmethod
    def from_url(cls, redis_url: str, **kwargs) -> "RedisStreamTransport":
        return cls(redis.from_url(redis_url, decode_responses=True), **kwargs)

    async def send(self, topic: str, key: str, payload: dict[str, Any]) -> None:
        fields = {"key": key, "payload": json.dumps(payload, sort_keys=True)}
        try:
            if self._max_stream_length:
                await self._client.xadd(
                    topic, fields, maxlen=self._max_stream_length, approximate=True
                )
            else:
                await self._client.xadd(topic, fields)
        except RedisError as e:
            raise TransientDeliveryError(f"Failed to publish to {topic}: {str(e)}") from e
        logger.debug(f"Published message for {key} to {topic}")

    async def read(self, topic: str, count: int = 10, block_ms: int = 0) -> list[dict[str, Any]]:
        """Read up to ``count`` messages appended after the last one read from ``topic``."""
        last_id = self._last_ids.get(topic, "0-0")
        try:
            response = await self._client.xread(
                {topic: last_id}, count=count, block=block_ms or None
            )
        except RedisError as e:
            raise TransientDeliveryError(f"Failed to read from {topic}: {str(e)}") from e

        messages: list[dict[str, Any]] = []
        for _stream, entries in response or []:
            for entry_id, fields in entries:
                self._last_ids[topic] = entry_id
                try:
                    messages.append(json.loads(fields["payload"]))
                except (KeyError, json.JSONDecodeError) as e:
                    logger.error(f"Skipping malformed entry {entry_id} on {topic}: {str(e)}")
        return messages

    async def close(self) -> None:
        await self._client.aclose()

# Copyright (c) 2025-2026 OptimNow. All Rights Reserved.
# Licensed under the Apache License, Version 2.0.
# See LICENSE file in the project root for full license information.

"""Publishes billable usage with bounded exponential-backoff retry."""

import asyncio
import hashlib
import json
import logging
from dataclasses import dataclass
from typing import Optional

from ..clients.cache import RedisCache
from ..clients.transport import MessageTransport, TransientDeliveryError
from ..models.billing import BillableUsage

logger = logging.getLogger(__name__)


class BillingDeliveryError(Exception):
    """Raised when billable usage could not be delivered within the allowed attempts."""

    def __init__(self, account_id: str, attempts: int, message: Optional[str] = None):
        self.account_id = account_id
        self.attempts = attempts
        self.message = message or (
            f"Failed to deliver billable usage for account {account_id} after {attempts} attempts"
        )
        super().__init__(self.message)


@dataclass(frozen=True)
class RetryPolicy:
    """Exponential backoff settings for billing delivery."""

    max_attempts: int = 5
    initial_interval: float = 1.0
    multiplier: float = 2.0
    max_interval: float = 60.0

    def delay_for(self, attempt: int) -> float:
        """Delay in seconds after the ``attempt``-th failure (1-based)."""
        return min(self.initial_interval * (self.multiplier ** (attempt - 1)), self.max_interval)


class BillingProducer:
    """
    Forwards billable usage to the billing topic.

    Empty usage is skipped. A payload identical to one already delivered
    is skipped as well; delivered fingerprints live in Redis when it is
    available and in process memory otherwise.
    """

    DEDUPE_KEY_PREFIX = "billing:delivered:"

    def __init__(
        self,
        transport: MessageTransport,
        topic: str = "usage.billable-usage",
        retry_policy: Optional[RetryPolicy] = None,
        cache: Optional[RedisCache] = None,
        dedupe_ttl: int = 86400,
    ):
        self._transport = transport
        self._topic = topic
        self._retry_policy = retry_policy or RetryPolicy()
        self._cache = cache
        self._dedupe_ttl = dedupe_ttl
        self._local_delivered: set[str] = set()

    @property
    def retry_policy(self) -> RetryPolicy:
        return self._retry_policy

    @staticmethod
    def fingerprint(payload: dict) -> str:
        canonical = json.dumps(payload, sort_keys=True, default=str)
        return hashlib.sha256(canonical.encode()).hexdigest()

    async def produce(self, usage: BillableUsage) -> bool:
        """
        Publish billable usage.

        Args:
            usage: Usage to forward

        Returns:
            True if published, False if skipped as empty or already delivered

        Raises:
            BillingDeliveryError: If every attempt failed
        """
        if not usage.billable_tally_snapshots:
            logger.warning(f"Skipping empty billable usage for account {usage.account_id}")
            return False

        payload = usage.model_dump(mode="json")
        # Re-rolled snapshots with unchanged totals only differ in last_updated
        fingerprint = self.fingerprint(
            usage.model_dump(
                mode="json", exclude={"billable_tally_snapshots": {"__all__": {"last_updated"}}}
            )
        )
        if await self._already_delivered(fingerprint):
            logger.info(f"Billable usage for account {usage.account_id} already delivered, skipping")
            return False

        await self._send_with_backoff(usage.account_id, payload)
        await self._mark_delivered(fingerprint)
        return True

    async def _send_with_backoff(self, account_id: str, payload: dict) -> None:
        policy = self._retry_policy
        for attempt in range(1, policy.max_attempts + 1):
            try:
                await self._transport.send(self._topic, account_id, payload)
                if attempt > 1:
                    logger.info(f"Billable usage for account {account_id} sent on attempt {attempt}")
                return
            except TransientDeliveryError as e:
                if attempt == policy.max_attempts:
                    logger.error(
                        f"Giving up on billable usage for account {account_id} "
                        f"after {attempt} attempts: {str(e)}"
                    )
                    raise BillingDeliveryError(account_id, attempt) from e
                delay = policy.delay_for(attempt)
                logger.debug(
                    f"Attempt {attempt} to send billable usage for account {account_id} failed, "
                    f"retrying in {delay:.2f}s: {str(e)}"
                )
                await asyncio.sleep(delay)

    async def _already_delivered(self, fingerprint: str) -> bool:
        if fingerprint in self._local_delivered:
            return True
        if self._cache is not None:
            return await self._cache.exists(f"{self.DEDUPE_KEY_PREFIX}{fingerprint}")
        return False

    async def _mark_delivered(self, fingerprint: str) -> None:
        if self._cache is not None and await self._cache.set(
            f"{self.DEDUPE_KEY_PREFIX}{fingerprint}", 1, ttl=self._dedupe_ttl
        ):
            return
        self._local_delivered.add(fingerprint)

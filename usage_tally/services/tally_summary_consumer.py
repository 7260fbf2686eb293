"""Consumes tally summaries and hands them to the billing producer."""

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Iterable, Optional

from pydantic import ValidationError

from ..clients.transport import MessageTransport
from ..models.billing import BillableUsage, TallySummary
from .billing_producer import BillingProducer

logger = logging.getLogger(__name__)


@dataclass
class ConsumeOutcome:
    """Result of processing one tally summary."""

    account_id: Optional[str]
    produced: bool
    error: Optional[str] = None


class TallySummaryMessageConsumer:
    """
    Turns tally summaries into billable usage.

    Each summary is processed independently; a failure for one summary is
    logged and reported without affecting the others in the batch.
    """

    def __init__(
        self,
        billing_producer: BillingProducer,
        transport: Optional[MessageTransport] = None,
        topic: str = "usage.tally-summary",
        concurrency: int = 3,
    ):
        if concurrency < 1:
            raise ValueError("concurrency must be at least 1")
        self._billing_producer = billing_producer
        self._transport = transport
        self._topic = topic
        self._concurrency = concurrency

    async def receive(self, summary: TallySummary) -> bool:
        logger.debug(f"Tally summary received for account {summary.account_id}")
        return await self._billing_producer.produce(BillableUsage.from_summary(summary))

    async def consume(self, messages: Iterable[TallySummary | dict[str, Any]]) -> list[ConsumeOutcome]:
        """Process a batch with bounded concurrency."""
        semaphore = asyncio.Semaphore(self._concurrency)

        async def _process(message: TallySummary | dict[str, Any]) -> ConsumeOutcome:
            async with semaphore:
                account_id = None
                try:
                    summary = (
                        message
                        if isinstance(message, TallySummary)
                        else TallySummary.model_validate(message)
                    )
                    account_id = summary.account_id
                    produced = await self.receive(summary)
                    return ConsumeOutcome(account_id=account_id, produced=produced)
                except ValidationError as e:
                    logger.error(f"Discarding malformed tally summary: {str(e)}")
                    return ConsumeOutcome(account_id=None, produced=False, error=str(e))
                except Exception as e:
                    logger.error(f"Failed to produce billable usage for account {account_id}: {str(e)}")
                    return ConsumeOutcome(account_id=account_id, produced=False, error=str(e))

        return list(await asyncio.gather(*(_process(m) for m in messages)))

    async def poll_once(self, count: int = 10, block_ms: int = 0) -> list[ConsumeOutcome]:
        """Read one batch of summaries from the summary topic and consume it."""
        if self._transport is None:
            raise RuntimeError("No transport configured for polling")
        messages = await self._transport.read(self._topic, count=count, block_ms=block_ms)
        if not messages:
            return []
        return await self.consume(messages)

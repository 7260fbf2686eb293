# Copyright (c) 2025-2026 OptimNow. All Rights Reserved.
# Licensed under the Apache License, Version 2.0.
# See LICENSE file in the project root for full license information.

"""Runs the tally pipeline for one account: collect, roll up, summarize."""

import logging
from typing import Optional

from ..clients.transport import MessageTransport
from ..models.billing import TallySummary
from ..models.date_range import DateRange
from ..models.enums import Granularity
from .metric_usage_collector import MetricUsageCollector
from .snapshot_roller import SnapshotRoller

logger = logging.getLogger(__name__)

# HOURLY must be rolled first: coarser rollups read the stored hourly snapshots
ROLLUP_GRANULARITIES = (
    Granularity.HOURLY,
    Granularity.DAILY,
    Granularity.WEEKLY,
    Granularity.MONTHLY,
    Granularity.QUARTERLY,
    Granularity.YEARLY,
)


class TallyController:
    """Produces snapshots from metric events and publishes the tally summary."""

    def __init__(
        self,
        collector: MetricUsageCollector,
        roller: SnapshotRoller,
        transport: Optional[MessageTransport] = None,
        summary_topic: str = "usage.tally-summary",
    ):
        self._collector = collector
        self._roller = roller
        self._transport = transport
        self._summary_topic = summary_topic

    async def produce_snapshots(
        self, account_id: str, service_type: str, date_range: DateRange
    ) -> Optional[TallySummary]:
        """
        Collect the range and roll the result up at every granularity.

        Returns:
            Summary of the hourly snapshots written, or None when there was nothing to collect
        """
        result = await self._collector.collect(service_type, account_id, date_range)
        if result is None:
            return None

        if result.was_recalculated:
            logger.info(f"Recalculated usage for account {account_id} over {result.range}")

        summary = TallySummary(account_id=account_id)
        for granularity in ROLLUP_GRANULARITIES:
            written = await self._roller.roll_snapshots(
                granularity, account_id, result.calculations
            )
            if granularity == Granularity.HOURLY:
                summary.tally_snapshots.extend(written)

        logger.info(
            f"Tally for account {account_id} / {service_type} produced "
            f"{len(summary.tally_snapshots)} hourly snapshots over {len(result.calculations)} hours"
        )

        if self._transport is not None and summary.tally_snapshots:
            await self._transport.send(
                self._summary_topic, account_id, summary.model_dump(mode="json")
            )
        return summary

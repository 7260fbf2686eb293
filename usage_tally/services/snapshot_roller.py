# Copyright (c) 2025-2026 OptimNow. All Rights Reserved.
# Licensed under the Apache License, Version 2.0.
# See LICENSE file in the project root for full license information.

"""Rolls hourly usage calculations up into tally snapshots.

Every rollup is a full recompute of the affected periods. HOURLY snapshots
come straight from the hourly calculations. Coarser granularities sum the
stored HOURLY snapshots of the period, with every hour present in the
incoming calculations taking precedence over what is stored for that hour,
so each granularity can be rebuilt from hourly data on its own.
"""

import logging
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime
from typing import Iterable, Optional

from ..clients.snapshot_store import TallySnapshotRepository
from ..models.enums import Granularity, HardwareMeasurementType
from ..models.snapshot import TallySnapshot
from ..models.usage import AccountUsageCalculation, UsageCalculationKey
from ..utils.clock import ApplicationClock

logger = logging.getLogger(__name__)


@dataclass
class _PeriodTotals:
    measurements: dict[HardwareMeasurementType, dict[str, float]] = field(default_factory=dict)
    has_unlimited_usage: bool = False

    def merge(
        self,
        measurements: dict[HardwareMeasurementType, dict[str, float]],
        has_unlimited_usage: bool,
    ) -> None:
        for measurement_type, values in measurements.items():
            target = self.measurements.setdefault(HardwareMeasurementType(measurement_type), {})
            for uom, value in values.items():
                target[uom] = target.get(uom, 0.0) + value
        # Unlimited is sticky for the whole period
        self.has_unlimited_usage = self.has_unlimited_usage or has_unlimited_usage


def _newest_first(snapshots: Iterable[TallySnapshot]) -> list[TallySnapshot]:
    return sorted(snapshots, key=lambda s: (s.last_updated, s.id or 0), reverse=True)


class SnapshotRoller:
    """Upserts snapshots for one account at any granularity."""

    def __init__(self, snapshot_repository: TallySnapshotRepository, clock: ApplicationClock):
        self._repository = snapshot_repository
        self._clock = clock

    async def roll_snapshots(
        self,
        granularity: Granularity,
        account_id: str,
        calculations: dict[datetime, AccountUsageCalculation],
    ) -> list[TallySnapshot]:
        """
        Recompute and upsert the snapshots of every period touched by ``calculations``.

        Args:
            granularity: Target granularity
            account_id: Account being rolled up
            calculations: Hourly calculations keyed by hour start

        Returns:
            Snapshots written by this rollup
        """
        hours_by_period: dict[datetime, list[datetime]] = defaultdict(list)
        for hour in calculations:
            hours_by_period[self._clock.start_of(granularity, hour)].append(hour)

        written: list[TallySnapshot] = []
        for period_start in sorted(hours_by_period):
            period_end = self._clock.end_of(granularity, period_start)
            period_calculations = {hour: calculations[hour] for hour in hours_by_period[period_start]}
            totals = await self._period_totals(
                granularity, account_id, period_start, period_end, period_calculations
            )
            written.extend(
                await self._upsert_period(granularity, account_id, period_start, period_end, totals)
            )

        logger.debug(
            f"Rolled {len(written)} {granularity.value} snapshots for account {account_id} "
            f"across {len(hours_by_period)} periods"
        )
        return written

    async def _period_totals(
        self,
        granularity: Granularity,
        account_id: str,
        period_start: datetime,
        period_end: datetime,
        calculations: dict[datetime, AccountUsageCalculation],
    ) -> dict[UsageCalculationKey, _PeriodTotals]:
        totals: dict[UsageCalculationKey, _PeriodTotals] = defaultdict(_PeriodTotals)

        if granularity != Granularity.HOURLY:
            stored_hourly = await self._repository.find_snapshots(
                account_id, Granularity.HOURLY, period_start, period_end
            )
            for snapshot in self._newest_per_key_and_period(stored_hourly):
                if snapshot.snapshot_date in calculations:
                    continue
                totals[snapshot.key].merge(snapshot.measurements, snapshot.has_unlimited_usage)

        for hour in sorted(calculations):
            for key, calculation in calculations[hour].calculations.items():
                totals[key].merge(calculation.totals, calculation.has_unlimited_usage)

        return dict(totals)

    async def _upsert_period(
        self,
        granularity: Granularity,
        account_id: str,
        period_start: datetime,
        period_end: datetime,
        totals: dict[UsageCalculationKey, _PeriodTotals],
    ) -> list[TallySnapshot]:
        existing = await self._repository.find_snapshots(
            account_id, granularity, period_start, period_end
        )
        rows_by_key: dict[UsageCalculationKey, list[TallySnapshot]] = defaultdict(list)
        for snapshot in existing:
            if snapshot.snapshot_date == period_start:
                rows_by_key[snapshot.key].append(snapshot)

        written: list[TallySnapshot] = []
        for key in sorted(totals):
            current = await self._remove_duplicates(rows_by_key.pop(key, []))
            period_totals = totals[key]
            if current is None:
                snapshot = TallySnapshot(
                    account_id=account_id,
                    product_id=key.product_id,
                    sla=key.sla,
                    usage=key.usage,
                    billing_provider=key.billing_provider,
                    billing_account_id=key.billing_account_id,
                    granularity=granularity,
                    snapshot_date=period_start,
                    period_end=period_end,
                    measurements=period_totals.measurements,
                    has_unlimited_usage=period_totals.has_unlimited_usage,
                )
            else:
                snapshot = current.model_copy(
                    update={
                        "period_end": period_end,
                        "measurements": period_totals.measurements,
                        "has_unlimited_usage": period_totals.has_unlimited_usage,
                    }
                )
            written.append(await self._repository.save(snapshot))

        # Keys not recomputed this time are left alone apart from duplicate removal
        for rows in rows_by_key.values():
            await self._remove_duplicates(rows)

        return written

    async def _remove_duplicates(self, rows: list[TallySnapshot]) -> Optional[TallySnapshot]:
        """Keep the most recently written row and delete the rest."""
        if not rows:
            return None
        newest, *duplicates = _newest_first(rows)
        if duplicates:
            logger.warning(
                f"Removing {len(duplicates)} duplicate {newest.granularity.value} snapshots for "
                f"account {newest.account_id}, product {newest.product_id}, "
                f"period {newest.snapshot_date.isoformat()}"
            )
            await self._repository.delete(s.id for s in duplicates if s.id is not None)
        return newest

    @staticmethod
    def _newest_per_key_and_period(snapshots: list[TallySnapshot]) -> list[TallySnapshot]:
        newest: dict[tuple[UsageCalculationKey, datetime], TallySnapshot] = {}
        for snapshot in _newest_first(snapshots):
            newest.setdefault((snapshot.key, snapshot.snapshot_date), snapshot)
        return list(newest.values())

# Copyright (c) 2025-2026 OptimNow. All Rights Reserved.
# Licensed under the Apache License, Version 2.0.
# See LICENSE file in the project root for full license information.

"""Usage calculation models produced by hourly collection."""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict

from .date_range import DateRange
from .enums import BillingProvider, HardwareMeasurementType, ServiceLevel, Usage


class UsageCalculationKey(BaseModel):
    """Identifies one billing dimension of an account's usage."""

    model_config = ConfigDict(frozen=True)

    product_id: str
    sla: ServiceLevel
    usage: Usage
    billing_provider: BillingProvider
    billing_account_id: Optional[str] = None

    def sort_key(self) -> tuple[str, str, str, str, str]:
        return (
            self.product_id,
            self.sla.value,
            self.usage.value,
            self.billing_provider.value,
            self.billing_account_id or "",
        )

    def __lt__(self, other: "UsageCalculationKey") -> bool:
        return self.sort_key() < other.sort_key()


@dataclass
class UsageCalculation:
    """Totals per hardware measurement type and unit for one key."""

    key: UsageCalculationKey
    totals: dict[HardwareMeasurementType, dict[str, float]] = field(default_factory=dict)
    has_unlimited_usage: bool = False

    def add(self, measurement_type: HardwareMeasurementType, uom: str, value: float) -> None:
        """Accumulate ``value`` under ``measurement_type`` and the TOTAL type."""
        for target in {measurement_type, HardwareMeasurementType.TOTAL}:
            bucket = self.totals.setdefault(target, {})
            bucket[uom] = bucket.get(uom, 0.0) + value

    def get_total(self, measurement_type: HardwareMeasurementType, uom: str) -> Optional[float]:
        return self.totals.get(measurement_type, {}).get(uom)


@dataclass
class AccountUsageCalculation:
    """Additive usage totals for one account, keyed by billing dimension."""

    account_id: str
    calculations: dict[UsageCalculationKey, UsageCalculation] = field(default_factory=dict)

    def _calculation(self, key: UsageCalculationKey) -> UsageCalculation:
        calc = self.calculations.get(key)
        if calc is None:
            calc = UsageCalculation(key=key)
            self.calculations[key] = calc
        return calc

    def add_usage(
        self,
        key: UsageCalculationKey,
        measurement_type: HardwareMeasurementType,
        uom: str,
        value: float,
    ) -> None:
        self._calculation(key).add(measurement_type, uom, value)

    def mark_unlimited(self, key: UsageCalculationKey) -> None:
        self._calculation(key).has_unlimited_usage = True

    def get_calculation(self, key: UsageCalculationKey) -> Optional[UsageCalculation]:
        return self.calculations.get(key)

    def keys(self) -> list[UsageCalculationKey]:
        return sorted(self.calculations)

    def is_empty(self) -> bool:
        return not self.calculations


@dataclass
class CollectionResult:
    """Outcome of collecting an hour-aligned range for an account."""

    range: DateRange
    calculations: dict[datetime, AccountUsageCalculation]
    was_recalculated: bool

# Copyright (c) 2025-2026 OptimNow. All Rights Reserved.
# Licensed under the Apache License, Version 2.0.
# See LICENSE file in the project root for full license information.

"""Per-instance state owned by an account service inventory."""

from datetime import datetime
from typing import Iterable, Optional

from pydantic import BaseModel, ConfigDict, Field

from .enums import BillingProvider, HardwareMeasurementType, HostHardwareType, ServiceLevel, Usage


class HostBucketKey(BaseModel):
    """Billing dimension an instance contributes to."""

    model_config = ConfigDict(frozen=True)

    product_id: str
    sla: ServiceLevel
    usage: Usage
    billing_provider: BillingProvider
    billing_account_id: Optional[str] = None


class InstanceState(BaseModel):
    """
    Latest known state of one instance within an account and service type.

    ``measurements`` only ever reflects the hour currently being processed;
    ``monthly_totals`` accumulates every measurement per month and unit.
    """

    instance_id: str
    account_id: Optional[str] = None
    service_type: Optional[str] = None
    display_name: Optional[str] = None
    billing_provider: Optional[BillingProvider] = None
    billing_account_id: Optional[str] = None
    cloud_provider: Optional[HardwareMeasurementType] = None
    hardware_type: Optional[HostHardwareType] = None
    is_guest: bool = False
    inventory_id: Optional[str] = None
    hypervisor_uuid: Optional[str] = None
    subscription_manager_id: Optional[str] = None
    last_seen: Optional[datetime] = None
    measurements: dict[str, float] = Field(default_factory=dict)
    monthly_totals: dict[str, dict[str, float]] = Field(
        default_factory=dict, description="Running totals keyed by month id, then unit of measure"
    )
    buckets: list[HostBucketKey] = Field(default_factory=list)

    def set_measurement(self, uom: str, value: float) -> None:
        self.measurements[uom] = value

    def add_to_monthly_total(self, month_id: str, uom: str, value: float) -> None:
        month = self.monthly_totals.setdefault(month_id, {})
        month[uom] = month.get(uom, 0.0) + value

    def get_monthly_total(self, month_id: str, uom: str) -> Optional[float]:
        return self.monthly_totals.get(month_id, {}).get(uom)

    def clear_monthly_totals(self, month_ids: Iterable[str]) -> None:
        for month in month_ids:
            self.monthly_totals.pop(month, None)

    def add_bucket(self, key: HostBucketKey) -> None:
        if key not in self.buckets:
            self.buckets.append(key)

    def reset_current_hour(self) -> None:
        """Drop the previous hour's measurements and buckets."""
        self.measurements.clear()
        self.buckets.clear()


class AccountServiceInventory(BaseModel):
    """All instances tracked for one account and service type."""

    account_id: str
    service_type: str
    service_instances: dict[str, InstanceState] = Field(default_factory=dict)

    def get_or_create_instance(self, instance_id: str) -> InstanceState:
        instance = self.service_instances.get(instance_id)
        if instance is None:
            instance = InstanceState(instance_id=instance_id)
            self.service_instances[instance_id] = instance
        return instance

    def newest_instance_timestamp(self) -> Optional[datetime]:
        seen = [i.last_seen for i in self.service_instances.values() if i.last_seen is not None]
        return max(seen) if seen else None

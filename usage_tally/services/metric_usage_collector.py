# Copyright (c) 2025-2026 OptimNow. All Rights Reserved.
# Licensed under the Apache License, Version 2.0.
# See LICENSE file in the project root for full license information.

"""Collects instances and tallies usage based on hourly metric events."""

import asyncio
import logging
import weakref
from collections import defaultdict
from datetime import datetime, timedelta
from typing import Optional

from ..clients.event_store import EventStore
from ..clients.inventory_store import AccountServiceInventoryRepository
from ..models.date_range import DateRange
from ..models.enums import (
    BillingProvider,
    HardwareMeasurementType,
    HostHardwareType,
    ServiceLevel,
    Usage,
)
from ..models.event import Event
from ..models.inventory import AccountServiceInventory, HostBucketKey, InstanceState
from ..models.tag_profile import TagMetaData
from ..models.usage import AccountUsageCalculation, CollectionResult, UsageCalculationKey
from ..utils.clock import ApplicationClock, month_id
from ..utils.key_variants import wildcard_variants
from .tag_profile_service import TagProfileService

logger = logging.getLogger(__name__)


class UnrecognizedValueError(ValueError):
    """Raised when an event carries an enumerated value the engine does not know."""

    pass


class InvalidInstanceStateError(RuntimeError):
    """Raised when an instance's state cannot be mapped to a measurement type."""

    pass


_HARDWARE_TYPES = {
    "physical": HostHardwareType.PHYSICAL,
    "virtual": HostHardwareType.VIRTUALIZED,
    "cloud": HostHardwareType.CLOUD,
}

_CLOUD_PROVIDERS = {
    "aws": HardwareMeasurementType.AWS,
    "azure": HardwareMeasurementType.AZURE,
    "alibaba": HardwareMeasurementType.ALIBABA,
    "google": HardwareMeasurementType.GOOGLE,
}

def _is_absent(value: Optional[str]) -> bool:
    return value is None or not value.strip()


def _lookup(table: dict, value: Optional[str], label: str):
    """Map an event value; missing or empty maps to None, unknown values raise."""
    if _is_absent(value):
        return None
    try:
        return table[value.strip().lower()]
    except KeyError:
        raise UnrecognizedValueError(f"Unsupported value for {label}: {value}") from None


def to_host_hardware_type(value: Optional[str]) -> Optional[HostHardwareType]:
    return _lookup(_HARDWARE_TYPES, value, "hardware type")


def to_cloud_provider(value: Optional[str]) -> Optional[HardwareMeasurementType]:
    return _lookup(_CLOUD_PROVIDERS, value, "cloud provider")


def to_billing_provider(value: Optional[str]) -> Optional[BillingProvider]:
    try:
        return BillingProvider.from_string(value)
    except ValueError as e:
        raise UnrecognizedValueError(str(e)) from None


def hardware_measurement_type(instance: InstanceState) -> HardwareMeasurementType:
    """
    Hardware dimension an instance's measurements are tallied under.

    Raises:
        InvalidInstanceStateError: If the instance is CLOUD without a cloud provider
    """
    if instance.hardware_type is None or instance.hardware_type == HostHardwareType.PHYSICAL:
        return HardwareMeasurementType.PHYSICAL
    if instance.hardware_type == HostHardwareType.VIRTUALIZED:
        return HardwareMeasurementType.VIRTUAL
    if instance.hardware_type == HostHardwareType.CLOUD:
        if instance.cloud_provider is None:
            raise InvalidInstanceStateError(
                f"Hardware type cloud, but no cloud provider specified for {instance.instance_id}"
            )
        return instance.cloud_provider
    raise UnrecognizedValueError(f"Unsupported hardware type: {instance.hardware_type}")


class MetricUsageCollector:
    """
    Folds usage events into per-instance state and tallies hourly usage.

    Collections for the same account and service type are serialized; the
    aggregate is loaded once, mutated hour by hour and saved once per range.
    """

    def __init__(
        self,
        tag_profile: TagProfileService,
        inventory_repository: AccountServiceInventoryRepository,
        event_store: EventStore,
        clock: ApplicationClock,
    ):
        self._tag_profile = tag_profile
        self._inventory_repository = inventory_repository
        self._event_store = event_store
        self._clock = clock
        self._locks: weakref.WeakValueDictionary[tuple[str, str], asyncio.Lock] = (
            weakref.WeakValueDictionary()
        )

    async def collect(
        self, service_type: str, account_id: str, date_range: DateRange
    ) -> Optional[CollectionResult]:
        """
        Collect usage for an hour-aligned range.

        Args:
            service_type: Service type of the instances to collect
            account_id: Account to collect
            date_range: Hour-aligned ``[start, end)`` range

        Returns:
            CollectionResult, or None when no events exist in the range

        Raises:
            InvalidRangeError: If the range is not hour-aligned
            UnrecognizedValueError: If an event carries an unknown enumerated value
            InvalidInstanceStateError: If a cloud instance has no cloud provider
        """
        self._clock.validate_hourly_range(date_range)

        if not await self._event_store.has_events_in_time_range(
            account_id, service_type, date_range.start, date_range.end
        ):
            logger.info(
                f"No event metrics to process for service type {service_type} in range: {date_range}"
            )
            return None

        # Entries drop out once no collection holds a reference to the lock
        lock = self._locks.get((account_id, service_type))
        if lock is None:
            lock = asyncio.Lock()
            self._locks[(account_id, service_type)] = lock
        async with lock:
            return await self._collect_range(service_type, account_id, date_range)

    async def _collect_range(
        self, service_type: str, account_id: str, date_range: DateRange
    ) -> CollectionResult:
        inventory = await self._inventory_repository.find_by_id(account_id, service_type)
        if inventory is None:
            inventory = AccountServiceInventory(account_id=account_id, service_type=service_type)

        existing_instances = list(inventory.service_instances.values())
        newest_instance_timestamp = inventory.newest_instance_timestamp()

        # Monthly totals must be rebuilt from the start of the month when re-tallying
        if newest_instance_timestamp is not None and newest_instance_timestamp > date_range.start:
            effective_range = DateRange(
                start=self._clock.start_of_month(date_range.start),
                end=self._clock.end_of_current_hour(),
            )
            is_recalculating = True
            logger.info(
                f"We appear to be retallying; adjusting range from {date_range} to {effective_range}"
            )
        else:
            effective_range = date_range
            is_recalculating = False
            logger.info(f"New tally for {account_id} / {service_type} in range {effective_range}")

        if is_recalculating:
            logger.info(f"Clearing monthly totals for {len(existing_instances)} instances")
            months = [
                month_id(m)
                for m in self._clock.month_starts_between(effective_range.start, effective_range.end)
            ]
            for instance in existing_instances:
                instance.clear_monthly_totals(months)

        calculations: dict[datetime, AccountUsageCalculation] = {}
        for hour in self._clock.hours_in(effective_range):
            calculation = await self.collect_hour(inventory, hour)
            if calculation is not None and not calculation.is_empty():
                calculations[hour] = calculation

        await self._inventory_repository.save(inventory)

        return CollectionResult(
            range=effective_range,
            calculations=calculations,
            was_recalculated=is_recalculating,
        )

    async def collect_hour(
        self, inventory: AccountServiceInventory, hour_start: datetime
    ) -> Optional[AccountUsageCalculation]:
        """
        Fold one hour of events into the inventory and tally the hour.

        Returns:
            The hour's AccountUsageCalculation, or None if no instance reported
        """
        service_type_meta = self._tag_profile.metadata_for_service_type(inventory.service_type)
        events = await self._event_store.fetch_events_in_time_range(
            inventory.account_id,
            inventory.service_type,
            hour_start,
            hour_start + timedelta(hours=1),
        )

        events_by_instance: dict[str, list[Event]] = defaultdict(list)
        for event in events:
            events_by_instance[event.instance_id].append(event)

        this_hours_instances: dict[str, InstanceState] = {}
        for instance_id, instance_events in events_by_instance.items():
            instance = inventory.get_or_create_instance(instance_id)
            # Stale values from an earlier pass must not leak into this hour
            instance.reset_current_hour()
            this_hours_instances[instance_id] = instance
            for event in instance_events:
                self._update_instance_from_event(event, instance, service_type_meta)

        return self._tally_current_account_state(inventory.account_id, this_hours_instances)

    def _tally_current_account_state(
        self, account_id: str, instances: dict[str, InstanceState]
    ) -> Optional[AccountUsageCalculation]:
        if not instances:
            return None

        calculation = AccountUsageCalculation(account_id=account_id)
        for instance in instances.values():
            if not instance.buckets:
                continue
            measurement_type = hardware_measurement_type(instance)
            for bucket in instance.buckets:
                key = UsageCalculationKey(
                    product_id=bucket.product_id,
                    sla=bucket.sla,
                    usage=bucket.usage,
                    billing_provider=bucket.billing_provider,
                    billing_account_id=bucket.billing_account_id,
                )
                for uom, value in instance.measurements.items():
                    calculation.add_usage(key, measurement_type, uom, value)
                if self._tag_profile.is_unlimited(bucket.product_id):
                    calculation.mark_unlimited(key)
        return calculation

    def _update_instance_from_event(
        self, event: Event, instance: InstanceState, service_type_meta: Optional[TagMetaData]
    ) -> None:
        instance.account_id = event.account_id
        instance.service_type = event.service_type
        instance.instance_id = event.instance_id

        if event.billing_account_id:
            instance.billing_account_id = event.billing_account_id
        billing_provider = to_billing_provider(event.billing_provider)
        if billing_provider is not None:
            instance.billing_provider = billing_provider
        cloud_provider = to_cloud_provider(event.cloud_provider)
        if cloud_provider is not None:
            instance.cloud_provider = cloud_provider
        hardware_type = to_host_hardware_type(event.hardware_type)
        if hardware_type is not None:
            instance.hardware_type = hardware_type

        instance.display_name = event.display_name or event.instance_id
        instance.last_seen = event.timestamp
        instance.is_guest = instance.hardware_type == HostHardwareType.VIRTUALIZED

        if event.inventory_id:
            instance.inventory_id = event.inventory_id
        if event.hypervisor_uuid:
            instance.hypervisor_uuid = event.hypervisor_uuid
        if event.subscription_manager_id:
            instance.subscription_manager_id = event.subscription_manager_id

        event_month = month_id(event.timestamp)
        for uom, value in event.measurements.items():
            instance.set_measurement(uom, value)
            instance.add_to_monthly_total(event_month, uom, value)

        for key in self.bucket_keys_for_event(event, service_type_meta):
            instance.add_bucket(key)

    def bucket_keys_for_event(
        self, event: Event, service_type_meta: Optional[TagMetaData]
    ) -> list[HostBucketKey]:
        """
        Billing dimensions an event contributes to.

        Every product id is paired with the concrete and wildcard variants of
        service level, usage and billing provider.
        """
        # Defaults apply only to absent values; unknown values stay EMPTY
        if _is_absent(event.sla) and service_type_meta is not None:
            effective_sla = service_type_meta.default_sla
        else:
            effective_sla = ServiceLevel.from_string(event.sla)

        if _is_absent(event.usage) and service_type_meta is not None:
            effective_usage = service_type_meta.default_usage
        else:
            effective_usage = Usage.from_string(event.usage)

        effective_provider = to_billing_provider(event.billing_provider)
        if effective_provider is None:
            effective_provider = (
                service_type_meta.default_provider if service_type_meta else BillingProvider.EMPTY
            )

        billing_account_id = event.billing_account_id or (
            service_type_meta.billing_account_id if service_type_meta else None
        )

        variants = wildcard_variants(
            (effective_sla, effective_usage, effective_provider),
            (ServiceLevel.ANY, Usage.ANY, BillingProvider.ANY),
        )
        keys: list[HostBucketKey] = []
        for product_id in sorted(self._product_ids(event)):
            for sla, usage, provider in variants:
                keys.append(
                    HostBucketKey(
                        product_id=product_id,
                        sla=sla,
                        usage=usage,
                        billing_provider=provider,
                        billing_account_id=billing_account_id,
                    )
                )
        return keys

    def _product_ids(self, event: Event) -> set[str]:
        product_ids = set(self._tag_profile.tags_for_role(event.role))
        for eng_id in event.product_ids:
            product_ids.update(self._tag_profile.tags_for_eng_product(eng_id))
        return product_ids

"""Unit tests for MetricUsageCollector."""

import asyncio
import gc
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock

import pytest

from usage_tally.models import (
    BillingProvider,
    DateRange,
    HardwareMeasurementType,
    HostHardwareType,
    InstanceState,
    ServiceLevel,
    Usage,
    UsageCalculationKey,
)
from usage_tally.services.metric_usage_collector import (
    InvalidInstanceStateError,
    UnrecognizedValueError,
    hardware_measurement_type,
    to_billing_provider,
    to_cloud_provider,
    to_host_hardware_type,
)
from usage_tally.utils.clock import InvalidRangeError

HOUR = datetime(2026, 3, 10, 9, 0, tzinfo=timezone.utc)
ONE_HOUR = DateRange(start=HOUR, end=HOUR + timedelta(hours=1))


def key(sla=ServiceLevel.PREMIUM, usage=Usage.ANY, provider=BillingProvider.ANY, product="RHEL"):
    return UsageCalculationKey(product_id=product, sla=sla, usage=usage, billing_provider=provider)


class TestValueMapping:
    """Tests for strict enumerated value mapping."""

    def test_hardware_types(self):
        assert to_host_hardware_type("physical") == HostHardwareType.PHYSICAL
        assert to_host_hardware_type("Virtual") == HostHardwareType.VIRTUALIZED
        assert to_host_hardware_type("CLOUD") == HostHardwareType.CLOUD
        assert to_host_hardware_type(None) is None
        assert to_host_hardware_type("  ") is None

    def test_unknown_hardware_type_raises(self):
        with pytest.raises(UnrecognizedValueError, match="hardware type"):
            to_host_hardware_type("mainframe")

    def test_cloud_and_billing_providers(self):
        assert to_cloud_provider("aws") == HardwareMeasurementType.AWS
        assert to_cloud_provider("google") == HardwareMeasurementType.GOOGLE
        assert to_billing_provider("red hat") == BillingProvider.RED_HAT
        assert to_billing_provider("Azure") == BillingProvider.AZURE
        assert to_billing_provider("RED_HAT") == BillingProvider.RED_HAT
        assert to_billing_provider("") is None
        with pytest.raises(UnrecognizedValueError):
            to_cloud_provider("digitalocean")
        with pytest.raises(UnrecognizedValueError, match="billing provider"):
            to_billing_provider("ibm")


class TestHardwareMeasurementType:
    """Tests for the measurement type of an instance."""

    def test_no_hardware_type_is_physical(self):
        assert hardware_measurement_type(InstanceState(instance_id="i")) == HardwareMeasurementType.PHYSICAL

    def test_virtualized_is_virtual(self):
        instance = InstanceState(instance_id="i", hardware_type=HostHardwareType.VIRTUALIZED)
        assert hardware_measurement_type(instance) == HardwareMeasurementType.VIRTUAL

    def test_cloud_uses_provider(self):
        instance = InstanceState(
            instance_id="i",
            hardware_type=HostHardwareType.CLOUD,
            cloud_provider=HardwareMeasurementType.AWS,
        )
        assert hardware_measurement_type(instance) == HardwareMeasurementType.AWS

    def test_cloud_without_provider_raises(self):
        instance = InstanceState(instance_id="i", hardware_type=HostHardwareType.CLOUD)
        with pytest.raises(InvalidInstanceStateError, match="no cloud provider"):
            hardware_measurement_type(instance)


class TestBucketKeys:
    """Tests for bucket key generation."""

    def test_explicit_sla_only_gives_eight_buckets(self, collector, make_event):
        keys = collector.bucket_keys_for_event(make_event(), None)

        assert len(keys) == 8
        assert len(set(keys)) == 8
        assert {k.product_id for k in keys} == {"RHEL"}
        assert {k.sla for k in keys} == {ServiceLevel.PREMIUM, ServiceLevel.ANY}
        assert {k.usage for k in keys} == {Usage.EMPTY, Usage.ANY}
        assert {k.billing_provider for k in keys} == {BillingProvider.EMPTY, BillingProvider.ANY}

    def test_role_and_eng_products_combined(self, collector, make_event):
        event = make_event(role="Red Hat Enterprise Linux Server")
        keys = collector.bucket_keys_for_event(event, None)
        assert {k.product_id for k in keys} == {"RHEL", "RHEL Server"}
        assert len(keys) == 16

    def test_unmapped_product_gives_no_buckets(self, collector, make_event):
        assert collector.bucket_keys_for_event(make_event(product_ids=["7"]), None) == []

    def test_service_type_defaults_fill_missing_values(self, collector, make_event, tag_profile_service):
        meta = tag_profile_service.metadata_for_service_type("Defaulted")
        keys = collector.bucket_keys_for_event(make_event(sla=None), meta)

        concrete = keys[0]
        assert concrete.sla == ServiceLevel.STANDARD
        assert concrete.usage == Usage.PRODUCTION
        assert concrete.billing_provider == BillingProvider.AWS
        assert all(k.billing_account_id == "ba-1" for k in keys)

    def test_unknown_sla_and_usage_do_not_take_defaults(
        self, collector, make_event, tag_profile_service
    ):
        meta = tag_profile_service.metadata_for_service_type("Defaulted")
        keys = collector.bucket_keys_for_event(
            make_event(service_type="Defaulted", sla="Gold", usage="Staging"), meta
        )

        assert {k.sla for k in keys} == {ServiceLevel.EMPTY, ServiceLevel.ANY}
        assert {k.usage for k in keys} == {Usage.EMPTY, Usage.ANY}
        assert BillingProvider.AWS in {k.billing_provider for k in keys}

    def test_blank_sla_takes_default(self, collector, make_event, tag_profile_service):
        meta = tag_profile_service.metadata_for_service_type("Defaulted")
        concrete = collector.bucket_keys_for_event(make_event(sla="  "), meta)[0]

        assert concrete.sla == ServiceLevel.STANDARD

    def test_event_values_override_defaults(self, collector, make_event, tag_profile_service):
        meta = tag_profile_service.metadata_for_service_type("Defaulted")
        event = make_event(usage="Development/Test", billing_provider="gcp", billing_account_id="ba-9")
        concrete = collector.bucket_keys_for_event(event, meta)[0]

        assert concrete.sla == ServiceLevel.PREMIUM
        assert concrete.usage == Usage.DEVELOPMENT_TEST
        assert concrete.billing_provider == BillingProvider.GCP
        assert concrete.billing_account_id == "ba-9"


class TestCollect:
    """Tests for range collection."""

    async def test_no_events_returns_none_without_writes(self, collector, inventory_repository):
        assert await collector.collect("S", "A", ONE_HOUR) is None
        assert await inventory_repository.find_by_id("A", "S") is None

    async def test_unaligned_range_rejected(self, collector):
        date_range = DateRange(start=HOUR + timedelta(minutes=5), end=HOUR + timedelta(hours=1))
        with pytest.raises(InvalidRangeError):
            await collector.collect("S", "A", date_range)

    async def test_collect_single_hour(self, collector, event_store, inventory_repository, make_event):
        await event_store.save_events([make_event()])

        result = await collector.collect("S", "A", ONE_HOUR)

        assert not result.was_recalculated
        assert result.range == ONE_HOUR
        assert list(result.calculations) == [HOUR]
        calculation = result.calculations[HOUR]
        assert len(calculation.calculations) == 8
        usage = calculation.get_calculation(key())
        assert usage.get_total(HardwareMeasurementType.PHYSICAL, "Cores") == 4.0
        assert usage.get_total(HardwareMeasurementType.TOTAL, "Cores") == 4.0
        assert not usage.has_unlimited_usage

        inventory = await inventory_repository.find_by_id("A", "S")
        instance = inventory.service_instances["i-1"]
        assert instance.last_seen == HOUR.replace(minute=15)
        assert instance.display_name == "i-1"
        assert instance.get_monthly_total("2026-03", "Cores") == 4.0

    async def test_last_event_in_hour_wins_for_measurement(self, collector, event_store, make_event):
        await event_store.save_events(
            [
                make_event(timestamp=HOUR.replace(minute=10), measurements={"Cores": 4.0}),
                make_event(timestamp=HOUR.replace(minute=40), measurements={"Cores": 6.0}),
            ]
        )
        result = await collector.collect("S", "A", ONE_HOUR)
        usage = result.calculations[HOUR].get_calculation(key())
        assert usage.get_total(HardwareMeasurementType.TOTAL, "Cores") == 6.0

    async def test_instances_are_summed_per_key(self, collector, event_store, make_event):
        await event_store.save_events(
            [
                make_event(instance_id="i-1", measurements={"Cores": 4.0}),
                make_event(
                    instance_id="i-2",
                    hardware_type="cloud",
                    cloud_provider="aws",
                    measurements={"Cores": 2.0},
                ),
            ]
        )
        result = await collector.collect("S", "A", ONE_HOUR)
        usage = result.calculations[HOUR].get_calculation(key())
        assert usage.get_total(HardwareMeasurementType.PHYSICAL, "Cores") == 4.0
        assert usage.get_total(HardwareMeasurementType.AWS, "Cores") == 2.0
        assert usage.get_total(HardwareMeasurementType.TOTAL, "Cores") == 6.0

    async def test_instance_only_counted_in_hours_it_reported(self, collector, event_store, make_event):
        await event_store.save_events(
            [
                make_event(instance_id="i-1", timestamp=HOUR),
                make_event(instance_id="i-2", timestamp=HOUR + timedelta(hours=1), measurements={"Cores": 2.0}),
            ]
        )
        result = await collector.collect(
            "S", "A", DateRange(start=HOUR, end=HOUR + timedelta(hours=2))
        )
        second = result.calculations[HOUR + timedelta(hours=1)].get_calculation(key())
        assert second.get_total(HardwareMeasurementType.TOTAL, "Cores") == 2.0

    async def test_unlimited_product_flagged(self, collector, event_store, make_event):
        await event_store.save_events([make_event(product_ids=["99"])])
        result = await collector.collect("S", "A", ONE_HOUR)
        usage = result.calculations[HOUR].get_calculation(key(product="OpenShift Dedicated"))
        assert usage.has_unlimited_usage

    async def test_unrecognized_value_aborts_without_saving(
        self, collector, event_store, inventory_repository, make_event
    ):
        await event_store.save_events([make_event(hardware_type="mainframe")])
        with pytest.raises(UnrecognizedValueError):
            await collector.collect("S", "A", ONE_HOUR)
        assert await inventory_repository.find_by_id("A", "S") is None

    async def test_cloud_without_provider_aborts(self, collector, event_store, make_event):
        await event_store.save_events([make_event(hardware_type="cloud")])
        with pytest.raises(InvalidInstanceStateError):
            await collector.collect("S", "A", ONE_HOUR)

    async def test_storage_error_propagates(self, collector, event_store, make_event):
        await event_store.save_events([make_event()])
        collector._inventory_repository.save = AsyncMock(side_effect=RuntimeError("disk full"))
        with pytest.raises(RuntimeError, match="disk full"):
            await collector.collect("S", "A", ONE_HOUR)


class TestRecalculation:
    """Tests for re-tallying ranges already collected."""

    async def test_recollect_extends_range_and_rebuilds_monthly_totals(
        self, collector, event_store, inventory_repository, make_event, clock
    ):
        await event_store.save_events([make_event()])
        await collector.collect("S", "A", ONE_HOUR)

        result = await collector.collect("S", "A", ONE_HOUR)

        assert result.was_recalculated
        assert result.range.start == datetime(2026, 3, 1, tzinfo=timezone.utc)
        assert result.range.end == clock.end_of_current_hour()
        inventory = await inventory_repository.find_by_id("A", "S")
        assert inventory.service_instances["i-1"].get_monthly_total("2026-03", "Cores") == 4.0

    async def test_recollect_past_current_hour_ends_at_current_hour(
        self, collector, event_store, make_event, clock
    ):
        await event_store.save_events([make_event()])
        await collector.collect("S", "A", ONE_HOUR)

        beyond_now = DateRange(start=HOUR, end=HOUR + timedelta(hours=6))
        result = await collector.collect("S", "A", beyond_now)

        assert result.was_recalculated
        assert result.range == DateRange(
            start=datetime(2026, 3, 1, tzinfo=timezone.utc),
            end=datetime(2026, 3, 10, 13, tzinfo=timezone.utc),
        )
        assert result.range.end == clock.end_of_current_hour()

    async def test_recollect_is_idempotent(self, collector, event_store, make_event):
        await event_store.save_events([make_event(), make_event(instance_id="i-2", sla="Standard")])

        first = await collector.collect("S", "A", ONE_HOUR)
        second = await collector.collect("S", "A", ONE_HOUR)

        assert first.calculations == second.calculations

    async def test_later_range_is_a_new_tally(self, collector, event_store, make_event):
        await event_store.save_events(
            [make_event(), make_event(timestamp=HOUR + timedelta(hours=2, minutes=5))]
        )
        await collector.collect("S", "A", ONE_HOUR)

        later = DateRange(start=HOUR + timedelta(hours=2), end=HOUR + timedelta(hours=3))
        result = await collector.collect("S", "A", later)

        assert not result.was_recalculated
        assert result.range == later


class TestConcurrentCollections:
    """Tests for serialized collection per account and service type."""

    async def test_concurrent_collects_run_one_at_a_time(
        self, collector, event_store, inventory_repository, make_event
    ):
        await event_store.save_events([make_event()])
        find_by_id = inventory_repository.find_by_id

        async def slow_find_by_id(*args, **kwargs):
            await asyncio.sleep(0.01)
            return await find_by_id(*args, **kwargs)

        inventory_repository.find_by_id = slow_find_by_id

        results = await asyncio.gather(*(collector.collect("S", "A", ONE_HOUR) for _ in range(4)))

        assert sum(not r.was_recalculated for r in results) == 1
        assert all(r.calculations == results[0].calculations for r in results)
        inventory = await find_by_id("A", "S")
        assert list(inventory.service_instances) == ["i-1"]
        assert inventory.service_instances["i-1"].get_monthly_total("2026-03", "Cores") == 4.0

    async def test_other_accounts_are_not_blocked(self, collector, event_store, make_event):
        await event_store.save_events([make_event(), make_event(account_id="B")])

        first, second = await asyncio.gather(
            collector.collect("S", "A", ONE_HOUR), collector.collect("S", "B", ONE_HOUR)
        )

        assert first.calculations[HOUR].account_id == "A"
        assert second.calculations[HOUR].account_id == "B"

    async def test_locks_released_after_collection(self, collector, event_store, make_event):
        await event_store.save_events([make_event()])

        await collector.collect("S", "A", ONE_HOUR)
        gc.collect()

        assert len(collector._locks) == 0

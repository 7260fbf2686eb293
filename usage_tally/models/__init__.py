"""Data models for the usage tally engine."""

from .enums import (
    BillingProvider,
    Granularity,
    HardwareMeasurementType,
    HostHardwareType,
    ServiceLevel,
    Usage,
)
from .date_range import DateRange
from .event import Event
from .inventory import AccountServiceInventory, HostBucketKey, InstanceState
from .usage import (
    AccountUsageCalculation,
    CollectionResult,
    UsageCalculation,
    UsageCalculationKey,
)
from .snapshot import TallySnapshot
from .billing import BillableUsage, TallySummary
from .tag_profile import TagMapping, TagMappingValueType, TagMetaData, TagProfile

__all__ = [
    "BillingProvider",
    "Granularity",
    "HardwareMeasurementType",
    "HostHardwareType",
    "ServiceLevel",
    "Usage",
    "DateRange",
    "Event",
    "AccountServiceInventory",
    "HostBucketKey",
    "InstanceState",
    "AccountUsageCalculation",
    "CollectionResult",
    "UsageCalculation",
    "UsageCalculationKey",
    "TallySnapshot",
    "BillableUsage",
    "TallySummary",
    "TagMapping",
    "TagMappingValueType",
    "TagMetaData",
    "TagProfile",
]

"""Services for the usage tally engine."""

from .billing_producer import BillingDeliveryError, BillingProducer, RetryPolicy
from .metric_usage_collector import (
    InvalidInstanceStateError,
    MetricUsageCollector,
    UnrecognizedValueError,
)
from .snapshot_roller import SnapshotRoller
from .tag_profile_service import (
    TagProfileNotFoundError,
    TagProfileService,
    TagProfileValidationError,
)
from .tally_controller import ROLLUP_GRANULARITIES, TallyController
from .tally_summary_consumer import ConsumeOutcome, TallySummaryMessageConsumer

__all__ = [
    "BillingDeliveryError",
    "BillingProducer",
    "RetryPolicy",
    "InvalidInstanceStateError",
    "MetricUsageCollector",
    "UnrecognizedValueError",
    "SnapshotRoller",
    "TagProfileNotFoundError",
    "TagProfileService",
    "TagProfileValidationError",
    "ROLLUP_GRANULARITIES",
    "TallyController",
    "ConsumeOutcome",
    "TallySummaryMessageConsumer",
]
